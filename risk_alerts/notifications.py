"""Translate alerts into presentation-agnostic notification records."""
from __future__ import annotations

import heapq
import itertools
import threading
from typing import Iterable, Protocol

from .models import EmergencyBroadcast, NotificationRecord, RiskAlert, Severity

DURATION_MS: dict[Severity, int] = {
    Severity.CRITICAL: 10000,
    Severity.HIGH: 8000,
    Severity.MEDIUM: 6000,
    Severity.LOW: 6000,
}

VARIANTS: dict[Severity, str] = {
    Severity.CRITICAL: "destructive",
    Severity.HIGH: "warning",
    Severity.MEDIUM: "default",
    Severity.LOW: "info",
}

ANALYSIS_FAILED_TITLE = "Could not analyze glucose data"


class NotificationQueue(Protocol):
    """Anything that accepts notification records for presentation."""

    def enqueue(self, record: NotificationRecord) -> None:
        ...


def to_notification(alert: RiskAlert) -> NotificationRecord:
    return NotificationRecord(
        title=alert.title,
        description=alert.message,
        variant=VARIANTS[alert.severity],
        priority=alert.severity,
        duration_ms=DURATION_MS[alert.severity],
        alert_id=alert.id,
    )


def analysis_failed_notification(error: str | None = None) -> NotificationRecord:
    """Record shown when a run failed, distinct from a run with no risks."""

    description = "Risk alerts may be out of date. Check your glucose manually."
    if error:
        description = f"{description} ({error})"
    return NotificationRecord(
        title=ANALYSIS_FAILED_TITLE,
        description=description,
        variant="destructive",
        priority=Severity.HIGH,
        duration_ms=DURATION_MS[Severity.HIGH],
    )


def emergency_notification(broadcast: EmergencyBroadcast) -> NotificationRecord:
    return NotificationRecord(
        title="Emergency alert sent",
        description=broadcast.message,
        variant=VARIANTS[Severity.CRITICAL],
        priority=Severity.CRITICAL,
        duration_ms=DURATION_MS[Severity.CRITICAL],
    )


class PriorityNotificationQueue:
    """In-memory queue releasing records critical → low, FIFO within a priority."""

    def __init__(self) -> None:
        self._heap: list[tuple[int, int, NotificationRecord]] = []
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def enqueue(self, record: NotificationRecord) -> None:
        with self._lock:
            heapq.heappush(self._heap, (-record.priority.rank, next(self._counter), record))

    def extend(self, records: Iterable[NotificationRecord]) -> None:
        for record in records:
            self.enqueue(record)

    def pop(self) -> NotificationRecord | None:
        with self._lock:
            if not self._heap:
                return None
            return heapq.heappop(self._heap)[2]

    def drain(self) -> list[NotificationRecord]:
        with self._lock:
            ordered = [heapq.heappop(self._heap)[2] for _ in range(len(self._heap))]
        return ordered

    def remove(self, alert_id: str) -> None:
        """Drop queued records for an alert that was read before being shown."""

        with self._lock:
            self._heap = [entry for entry in self._heap if entry[2].alert_id != alert_id]
            heapq.heapify(self._heap)

    def clear(self) -> None:
        with self._lock:
            self._heap.clear()

    def __len__(self) -> int:
        return len(self._heap)
