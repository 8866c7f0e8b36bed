from pathlib import Path
import sys
import threading
from datetime import datetime, timedelta, timezone

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from risk_alerts.lifecycle import AlertLifecycleManager
from risk_alerts.models import (
    FindingKind,
    GlucoseReading,
    PatientProfile,
    RiskFinding,
    Severity,
    SignalHistory,
)

BASE = datetime(2024, 7, 1, 10, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, start: datetime = BASE) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class _StubAnalyzer:
    def __init__(self, findings=None, on_analyze=None) -> None:
        self.findings = list(findings or [])
        self.on_analyze = on_analyze

    def analyze(self, history, profile):
        if self.on_analyze is not None:
            self.on_analyze()
        return list(self.findings)


def _finding(kind=FindingKind.TREND_HYPO, severity=Severity.HIGH, minutes: float = 0, **metrics) -> RiskFinding:
    return RiskFinding(
        kind=kind,
        severity=severity,
        observed_at=BASE + timedelta(minutes=minutes),
        rule_id=kind.value,
        metrics={"latest_glucose": 95.0, "slope_mg_dl_per_min": -2.0, "minutes_to_threshold": 12.0, **metrics},
    )


def _dropping_history(start: datetime = BASE) -> SignalHistory:
    readings = tuple(
        GlucoseReading(value=v, timestamp=start + timedelta(minutes=i * 10)) for i, v in enumerate([140, 120, 95])
    )
    return SignalHistory(readings=readings)


def test_duplicate_run_keeps_single_alert():
    manager = AlertLifecycleManager(clock=_Clock())

    first = manager.analyze_and_generate_alerts(_dropping_history(), PatientProfile())
    second = manager.analyze_and_generate_alerts(_dropping_history(), PatientProfile())

    assert [a.finding_kind for a in first] == [FindingKind.TREND_HYPO]
    assert second == []
    assert len(manager.get_active_alerts()) == 1


def test_alert_fields_come_from_finding_metadata():
    manager = AlertLifecycleManager(clock=_Clock())

    alert = manager.ingest_findings([_finding()])[0]

    assert alert.id.startswith("trend_hypo_")
    assert alert.title == "Hypoglycemia risk"
    assert "95 mg/dL" in alert.message
    assert alert.timeframe_minutes == 12
    assert alert.confidence == 85.0
    assert alert.recommended_actions
    assert alert.read is False
    assert alert.created_at == BASE


def test_findings_outside_window_create_new_alert():
    manager = AlertLifecycleManager(clock=_Clock(), dedup_window=timedelta(minutes=30))

    manager.ingest_findings([_finding(minutes=0)])
    created = manager.ingest_findings([_finding(minutes=45)])

    assert len(created) == 1
    assert len(manager.get_active_alerts()) == 2


def test_different_kinds_are_not_duplicates():
    manager = AlertLifecycleManager(clock=_Clock())

    created = manager.ingest_findings(
        [_finding(FindingKind.TREND_HYPO), _finding(FindingKind.VARIABILITY, Severity.MEDIUM, cv=0.4)]
    )

    assert {a.finding_kind for a in created} == {FindingKind.TREND_HYPO, FindingKind.VARIABILITY}


def test_more_severe_finding_replaces_active_alert():
    manager = AlertLifecycleManager(clock=_Clock())
    high = manager.ingest_findings([_finding(severity=Severity.HIGH)])[0]

    created = manager.ingest_findings([_finding(severity=Severity.CRITICAL, minutes=10)])
    active = manager.get_active_alerts()

    assert [a.severity for a in created] == [Severity.CRITICAL]
    assert [a.id for a in active] == [created[0].id]
    assert high.id not in {a.id for a in active}


def test_less_severe_finding_is_absorbed():
    manager = AlertLifecycleManager(clock=_Clock())
    manager.ingest_findings([_finding(severity=Severity.CRITICAL)])

    assert manager.ingest_findings([_finding(severity=Severity.HIGH, minutes=5)]) == []


def test_read_is_terminal_and_recurrence_gets_new_id():
    clock = _Clock()
    manager = AlertLifecycleManager(clock=clock)
    alert = manager.ingest_findings([_finding()])[0]

    assert manager.mark_alert_as_read(alert.id) is True
    assert manager.mark_alert_as_read(alert.id) is False
    assert manager.get_active_alerts() == []

    clock.advance(minutes=5)
    recurrence = manager.ingest_findings([_finding(minutes=5)])

    assert len(recurrence) == 1
    assert recurrence[0].id != alert.id


def test_mark_unknown_alert_is_noop():
    manager = AlertLifecycleManager(clock=_Clock())
    manager.ingest_findings([_finding()])
    version = manager.version

    assert manager.mark_alert_as_read("missing") is False
    assert manager.version == version
    assert len(manager.get_active_alerts()) == 1


def test_dismiss_all_clears_active_set():
    manager = AlertLifecycleManager(clock=_Clock())
    manager.ingest_findings([_finding(), _finding(FindingKind.VARIABILITY, Severity.MEDIUM)])

    assert manager.dismiss_all_alerts() == 2
    assert manager.get_active_alerts() == []
    assert manager.dismiss_all_alerts() == 0


def test_dismiss_all_during_run_keeps_alerts_inserted_after():
    manager = AlertLifecycleManager(clock=_Clock())
    old = manager.ingest_findings([_finding(FindingKind.VARIABILITY, Severity.MEDIUM)])[0]
    dismissed: list[int] = []

    manager._analyzer = _StubAnalyzer(
        findings=[_finding(FindingKind.TREND_HYPER, Severity.HIGH, minutes=20)],
        on_analyze=lambda: dismissed.append(manager.dismiss_all_alerts()),
    )
    created = manager.analyze_and_generate_alerts(SignalHistory(), PatientProfile())

    assert dismissed == [1]
    assert [a.id for a in manager.get_active_alerts()] == [created[0].id]
    assert old.id not in {a.id for a in manager.get_active_alerts()}


def test_concurrent_dismiss_and_insert_never_loses_new_alerts():
    manager = AlertLifecycleManager(clock=_Clock())
    barrier = threading.Barrier(2)
    inserted: list = []

    def _insert():
        barrier.wait()
        inserted.extend(manager.ingest_findings([_finding(minutes=i * 60) for i in range(50)]))

    def _dismiss():
        barrier.wait()
        manager.dismiss_all_alerts()

    threads = [threading.Thread(target=_insert), threading.Thread(target=_dismiss)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    active = manager.get_active_alerts()
    assert len(inserted) == 50
    # either the dismissal ran first and the batch survives, or it cleared all of it
    assert len(active) in (0, 50)


def test_active_alerts_ordered_by_severity_then_recency():
    manager = AlertLifecycleManager(clock=_Clock())
    manager.ingest_findings(
        [
            _finding(FindingKind.MISSED_CORRELATION, Severity.LOW, minutes=50),
            _finding(FindingKind.VARIABILITY, Severity.MEDIUM, minutes=10),
            _finding(FindingKind.TREND_HYPO, Severity.HIGH, minutes=0),
            _finding(FindingKind.POST_MEAL_SPIKE, Severity.MEDIUM, minutes=40),
            _finding(FindingKind.TREND_HYPER, Severity.CRITICAL, minutes=5),
        ]
    )

    kinds = [a.finding_kind for a in manager.get_active_alerts()]

    assert kinds == [
        FindingKind.TREND_HYPER,
        FindingKind.TREND_HYPO,
        FindingKind.POST_MEAL_SPIKE,
        FindingKind.VARIABILITY,
        FindingKind.MISSED_CORRELATION,
    ]


def test_alert_stats_counts_by_severity():
    manager = AlertLifecycleManager(clock=_Clock())
    manager.ingest_findings(
        [
            _finding(FindingKind.TREND_HYPO, Severity.CRITICAL),
            _finding(FindingKind.VARIABILITY, Severity.MEDIUM),
            _finding(FindingKind.POST_MEAL_SPIKE, Severity.MEDIUM),
        ]
    )

    assert manager.alert_stats() == {"total": 3, "low": 0, "medium": 2, "high": 0, "critical": 1}


def test_version_increments_on_changes():
    manager = AlertLifecycleManager(clock=_Clock())
    start = manager.version

    alert = manager.ingest_findings([_finding()])[0]
    manager.mark_alert_as_read(alert.id)

    assert manager.version == start + 2
