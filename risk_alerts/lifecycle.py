"""Alert lifecycle: de-duplication, read state and ranking of risk alerts."""
from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable

from .analyzer import RiskAnalyzer
from .config import DEDUP_WINDOW_MINUTES
from .finding_metadata import describe_finding
from .models import PatientProfile, RiskAlert, RiskFinding, Severity, SignalHistory

logger = logging.getLogger(__name__)


def alert_sort_key(alert: RiskAlert) -> tuple[int, float, float, str]:
    """Critical first, newest evidence first, then newest creation."""

    return (
        -alert.severity.rank,
        -alert.observed_at.timestamp(),
        -alert.created_at.timestamp(),
        alert.id,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_alert_id(finding: RiskFinding) -> str:
    return f"{finding.kind.value}_{uuid.uuid4().hex[:12]}"


class AlertLifecycleManager:
    """Owns the active alert set for one patient session.

    Alerts move ``created (active, unread) -> read`` and never come back; a
    later occurrence of the same finding gets a new id. All mutation happens
    under one lock so ``dismiss_all_alerts`` only clears what existed when it
    was called.
    """

    def __init__(
        self,
        analyzer: RiskAnalyzer | None = None,
        *,
        dedup_window: timedelta = timedelta(minutes=DEDUP_WINDOW_MINUTES),
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[RiskFinding], str] = _new_alert_id,
    ) -> None:
        self._analyzer = analyzer or RiskAnalyzer()
        self._dedup_window = dedup_window
        self._clock = clock
        self._id_factory = id_factory
        self._active: Dict[str, RiskAlert] = {}
        self._lock = threading.RLock()
        self._version = 0

    @property
    def version(self) -> int:
        """Counter bumped on every change to the active set."""

        with self._lock:
            return self._version

    def analyze_and_generate_alerts(self, history: SignalHistory, profile: PatientProfile) -> list[RiskAlert]:
        """Run the analyzer and return the alerts created by this run."""

        findings = self._analyzer.analyze(history, profile)
        return self.ingest_findings(findings)

    def ingest_findings(self, findings: Iterable[RiskFinding]) -> list[RiskAlert]:
        """Turn findings into alerts, skipping those already covered by an active alert."""

        created: list[RiskAlert] = []
        with self._lock:
            for finding in findings:
                existing = self._find_duplicate(finding)
                if existing is not None:
                    if finding.severity.rank <= existing.severity.rank:
                        logger.debug("Finding %s covered by active alert %s", finding.kind.value, existing.id)
                        continue
                    # escalation replaces the weaker alert in the same bucket
                    del self._active[existing.id]
                    created = [alert for alert in created if alert.id != existing.id]
                alert = self._build_alert(finding)
                self._active[alert.id] = alert
                created.append(alert)
            if created:
                self._version += 1
        created.sort(key=alert_sort_key)
        if created:
            logger.info("Created %d new risk alerts", len(created))
        return created

    def mark_alert_as_read(self, alert_id: str) -> bool:
        """Mark one alert read. Unknown or already-read ids are a no-op."""

        with self._lock:
            alert = self._active.pop(alert_id, None)
            if alert is None:
                return False
            self._version += 1
        logger.debug("Alert %s marked as read", alert_id)
        return True

    def dismiss_all_alerts(self) -> int:
        """Mark every currently active alert read in one step; returns the count."""

        with self._lock:
            dismissed = len(self._active)
            self._active.clear()
            if dismissed:
                self._version += 1
        logger.info("Dismissed %d active alerts", dismissed)
        return dismissed

    def get_active_alerts(self) -> list[RiskAlert]:
        with self._lock:
            alerts = list(self._active.values())
        alerts.sort(key=alert_sort_key)
        return alerts

    def alert_stats(self) -> dict[str, int]:
        alerts = self.get_active_alerts()
        stats = {"total": len(alerts)}
        for severity in Severity:
            stats[severity.value] = sum(alert.severity is severity for alert in alerts)
        return stats

    def _find_duplicate(self, finding: RiskFinding) -> RiskAlert | None:
        for alert in self._active.values():
            if alert.finding_kind is not finding.kind:
                continue
            if abs(alert.observed_at - finding.observed_at) <= self._dedup_window:
                return alert
        return None

    def _build_alert(self, finding: RiskFinding) -> RiskAlert:
        text = describe_finding(finding)
        return RiskAlert(
            id=self._id_factory(finding),
            title=text.title,
            message=text.message,
            severity=finding.severity,
            created_at=self._clock(),
            finding_kind=finding.kind,
            observed_at=finding.observed_at,
            recommended_actions=text.recommended_actions,
            timeframe_minutes=text.timeframe_minutes,
            confidence=text.confidence,
            metrics=dict(finding.metrics),
        )

