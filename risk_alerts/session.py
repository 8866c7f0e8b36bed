"""Per-patient analysis session and its single-flight scheduler."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence

from .config import DEBOUNCE_SECONDS, SCAN_INTERVAL_SECONDS
from .emergency import EmergencyEscalation
from .lifecycle import AlertLifecycleManager
from .models import EmergencyBroadcast, EmergencyType, NotificationRecord, RiskAlert, Severity
from .notifications import (
    NotificationQueue,
    analysis_failed_notification,
    emergency_notification,
    to_notification,
)
from .profile import PatientProfileProvider
from .signal_store import SignalStore

logger = logging.getLogger(__name__)

FAMILY_ALERT_SEVERITIES = (Severity.HIGH, Severity.CRITICAL)


class AnalysisStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class AnalysisOutcome:
    """Result of one run. A failed run is never reported as "no risks"."""

    status: AnalysisStatus
    alerts: tuple[RiskAlert, ...] = ()
    new_alerts: tuple[RiskAlert, ...] = ()
    error: Optional[str] = None
    notifications: tuple[NotificationRecord, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is AnalysisStatus.OK


class FamilyNotifier(Protocol):
    """Caregiver channel for urgent alerts and emergency broadcasts."""

    async def notify_alert(self, patient_id: str, alert: RiskAlert) -> None:
        ...

    async def notify_emergency(self, broadcast: EmergencyBroadcast) -> None:
        ...


class AnalysisSession:
    """Owns everything one patient's analysis needs.

    Runs are serialized with an ``asyncio.Lock`` so the lifecycle manager only
    ever sees one batch of findings at a time.
    """

    def __init__(
        self,
        patient_id: str,
        store: SignalStore,
        *,
        profile_provider: PatientProfileProvider | None = None,
        manager: AlertLifecycleManager | None = None,
        escalation: EmergencyEscalation | None = None,
        notification_queue: NotificationQueue | None = None,
        family_notifier: FamilyNotifier | None = None,
    ) -> None:
        if not patient_id:
            raise ValueError("patient_id is required")
        self.patient_id = patient_id
        self._store = store
        self._profiles = profile_provider or PatientProfileProvider()
        self._manager = manager or AlertLifecycleManager()
        self._escalation = escalation or EmergencyEscalation(patient_id)
        self._queue = notification_queue
        self._family = family_notifier
        self._lock = asyncio.Lock()

    @property
    def manager(self) -> AlertLifecycleManager:
        return self._manager

    @property
    def profile_provider(self) -> PatientProfileProvider:
        return self._profiles

    @property
    def escalation(self) -> EmergencyEscalation:
        return self._escalation

    async def run_analysis(self) -> AnalysisOutcome:
        async with self._lock:
            try:
                history = await self._store.load_history(self.patient_id)
                profile = self._profiles.snapshot()
                new_alerts = await asyncio.to_thread(
                    self._manager.analyze_and_generate_alerts, history, profile
                )
            except Exception as exc:
                logger.exception("Risk analysis failed for patient %s", self.patient_id)
                record = analysis_failed_notification(str(exc) or type(exc).__name__)
                self._enqueue([record])
                return AnalysisOutcome(
                    status=AnalysisStatus.FAILED,
                    alerts=tuple(self._manager.get_active_alerts()),
                    error=str(exc) or type(exc).__name__,
                    notifications=(record,),
                )

            records = [to_notification(alert) for alert in new_alerts]
            self._enqueue(records)
            await self._notify_family(new_alerts)
            return AnalysisOutcome(
                status=AnalysisStatus.OK,
                alerts=tuple(self._manager.get_active_alerts()),
                new_alerts=tuple(new_alerts),
                notifications=tuple(records),
            )

    def mark_alert_as_read(self, alert_id: str) -> bool:
        marked = self._manager.mark_alert_as_read(alert_id)
        remove = getattr(self._queue, "remove", None)
        if marked and remove is not None:
            remove(alert_id)
        return marked

    def dismiss_all_alerts(self) -> int:
        return self._manager.dismiss_all_alerts()

    def get_active_alerts(self) -> list[RiskAlert]:
        return self._manager.get_active_alerts()

    def trigger_emergency_alert(
        self,
        emergency_type: EmergencyType | str,
        current_glucose: float | None = None,
    ) -> EmergencyBroadcast:
        broadcast = self._escalation.trigger_emergency_alert(emergency_type, current_glucose)
        self._enqueue([emergency_notification(broadcast)])
        return broadcast

    async def escalate_emergency(
        self,
        emergency_type: EmergencyType | str,
        current_glucose: float | None = None,
    ) -> EmergencyBroadcast:
        """Trigger an emergency and also forward it to the family notifier."""

        broadcast = self.trigger_emergency_alert(emergency_type, current_glucose)
        if self._family is not None:
            try:
                await self._family.notify_emergency(broadcast)
            except Exception:
                logger.exception("Family notification failed for emergency of patient %s", self.patient_id)
        return broadcast

    def _enqueue(self, records: Sequence[NotificationRecord]) -> None:
        if self._queue is None:
            return
        for record in records:
            self._queue.enqueue(record)

    async def _notify_family(self, alerts: Sequence[RiskAlert]) -> None:
        if self._family is None:
            return
        for alert in alerts:
            if alert.severity not in FAMILY_ALERT_SEVERITIES:
                continue
            try:
                await self._family.notify_alert(self.patient_id, alert)
            except Exception:
                logger.exception("Family notification failed for alert %s", alert.id)


class AnalysisScheduler:
    """Coalesces data-change, periodic and manual triggers into serialized runs.

    At most one run is executing and at most one is queued behind it; any
    trigger arriving while a run is queued joins that run. Usage::

        async with AnalysisScheduler(session) as scheduler:
            scheduler.notify_data_changed()
            outcome = await scheduler.trigger()
    """

    def __init__(
        self,
        session: AnalysisSession,
        *,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        interval_seconds: float = SCAN_INTERVAL_SECONDS,
    ) -> None:
        if debounce_seconds < 0 or interval_seconds <= 0:
            raise ValueError("debounce must be >= 0 and interval > 0")
        self._session = session
        self._debounce_seconds = debounce_seconds
        self._interval_seconds = interval_seconds
        self._gate = asyncio.Lock()
        self._queued: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._periodic_task: asyncio.Task | None = None
        self.last_outcome: AnalysisOutcome | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._periodic_task is not None and not self._periodic_task.done()

    def start(self) -> None:
        """Start the periodic scan; the first run happens immediately."""

        if self.running:
            return
        self._periodic_task = asyncio.get_running_loop().create_task(self._periodic())

    async def stop(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._periodic_task is not None:
            self._periodic_task.cancel()
        if self._queued is not None:
            self._queued.cancel()
            self._queued = None
        pending = [task for task in (self._periodic_task, *self._tasks) if task is not None]
        await asyncio.gather(*pending, return_exceptions=True)
        self._periodic_task = None

    def trigger(self) -> asyncio.Task:
        """Request a run; returns the task that will carry it out."""

        if self._queued is not None and not self._queued.done():
            return self._queued
        task = asyncio.get_running_loop().create_task(self._run())
        self._queued = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def notify_data_changed(self) -> None:
        """Debounce bursts of new signals into a single run."""

        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self._debounce_seconds, self._debounce_elapsed)

    def _debounce_elapsed(self) -> None:
        self._debounce_handle = None
        self.trigger()

    async def _run(self) -> AnalysisOutcome:
        async with self._gate:
            if self._queued is asyncio.current_task():
                self._queued = None
            outcome = await self._session.run_analysis()
            self.runs += 1
            self.last_outcome = outcome
        if not outcome.ok:
            logger.warning("Scheduled analysis failed for patient %s: %s", self._session.patient_id, outcome.error)
        return outcome

    async def _periodic(self) -> None:
        while True:
            await asyncio.shield(self.trigger())
            await asyncio.sleep(self._interval_seconds)

    async def __aenter__(self) -> "AnalysisScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
