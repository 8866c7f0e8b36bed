"""Explicitly triggered emergency broadcasts and their bounded per-patient log."""
from __future__ import annotations

import json
import logging
import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, Optional, Protocol

from .config import EMERGENCY_LOG_CAPACITY
from .models import EmergencyBroadcast, EmergencyType

logger = logging.getLogger(__name__)

EMERGENCY_MESSAGES: dict[EmergencyType, str] = {
    EmergencyType.SEVERE_HYPOGLYCEMIA: (
        "EMERGENCY: severe hypoglycemia detected ({glucose}). Immediate intervention required."
    ),
    EmergencyType.SEVERE_HYPERGLYCEMIA: (
        "EMERGENCY: critical hyperglycemia ({glucose}). Risk of ketoacidosis."
    ),
    EmergencyType.NO_RESPONSE: "EMERGENCY: the patient has stopped responding to alerts.",
    EmergencyType.MEDICAL_EMERGENCY: "MEDICAL EMERGENCY: the patient activated the emergency alert.",
}


def emergency_message(emergency_type: EmergencyType, current_glucose: float | None) -> str:
    glucose = f"{current_glucose:.0f} mg/dL" if current_glucose is not None else "value unavailable"
    return EMERGENCY_MESSAGES[emergency_type].format(glucose=glucose)


class EmergencyLog(Protocol):
    """Newest-first log keeping at most ``capacity`` broadcasts per patient."""

    capacity: int

    def prepend(self, patient_id: str, broadcast: EmergencyBroadcast) -> None:
        ...

    def entries(self, patient_id: str) -> list[EmergencyBroadcast]:
        ...


class InMemoryEmergencyLog:
    def __init__(self, capacity: int = EMERGENCY_LOG_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._logs: Dict[str, Deque[EmergencyBroadcast]] = {}
        self._lock = threading.Lock()

    def prepend(self, patient_id: str, broadcast: EmergencyBroadcast) -> None:
        with self._lock:
            log = self._logs.setdefault(patient_id, deque(maxlen=self.capacity))
            # appendleft on a full deque evicts from the right, i.e. the oldest
            log.appendleft(broadcast)

    def entries(self, patient_id: str) -> list[EmergencyBroadcast]:
        with self._lock:
            return list(self._logs.get(patient_id, ()))


class JsonFileEmergencyLog:
    """File-backed log storing ``<patient_id>.json`` files in a directory.

    An unreadable log file is renamed to ``<patient_id>.json.corrupt`` and the
    log starts over, so later broadcasts keep being persisted.
    """

    def __init__(self, directory: Path | str, capacity: int = EMERGENCY_LOG_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, patient_id: str) -> Path:
        safe_id = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in patient_id)
        return self._directory / f"{safe_id}.json"

    def _read(self, patient_id: str) -> list[dict]:
        path = self._path(patient_id)
        if not path.exists():
            return []
        with path.open() as handle:
            payload = json.load(handle)
        if not isinstance(payload, list):
            raise ValueError(f"Emergency log {path} is not a JSON list")
        return payload

    def _load(self, patient_id: str) -> list[dict]:
        try:
            return self._read(patient_id)
        except ValueError:
            path = self._path(patient_id)
            quarantine = path.with_suffix(".json.corrupt")
            logger.exception("Unreadable emergency log %s, moving it to %s", path, quarantine)
            path.replace(quarantine)
            return []

    def prepend(self, patient_id: str, broadcast: EmergencyBroadcast) -> None:
        with self._lock:
            records = [broadcast.to_dict(), *self._load(patient_id)][: self.capacity]
            self._directory.mkdir(parents=True, exist_ok=True)
            path = self._path(patient_id)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(records))
            tmp_path.replace(path)

    def entries(self, patient_id: str) -> list[EmergencyBroadcast]:
        with self._lock:
            records = self._load(patient_id)
        broadcasts: list[EmergencyBroadcast] = []
        for record in records:
            try:
                broadcasts.append(EmergencyBroadcast.from_dict(record))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed emergency record for patient %s: %r", patient_id, record)
        return broadcasts


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmergencyEscalation:
    """Synchronous emergency path, independent of the risk-alert lifecycle."""

    def __init__(
        self,
        patient_id: str,
        log: Optional[EmergencyLog] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._patient_id = patient_id
        self._log = log if log is not None else InMemoryEmergencyLog()
        self._clock = clock

    @property
    def log(self) -> EmergencyLog:
        return self._log

    def trigger_emergency_alert(
        self,
        emergency_type: EmergencyType | str,
        current_glucose: float | None = None,
    ) -> EmergencyBroadcast:
        """Build, log and return a critical broadcast. Never de-duplicated."""

        emergency_type = EmergencyType(emergency_type)
        broadcast = EmergencyBroadcast(
            timestamp=self._clock(),
            type=emergency_type,
            message=emergency_message(emergency_type, current_glucose),
            glucose_value=current_glucose,
            patient_id=self._patient_id,
        )
        try:
            self._log.prepend(self._patient_id, broadcast)
        except (OSError, ValueError):
            logger.exception("Failed to persist emergency broadcast for patient %s", self._patient_id)
        logger.warning("Emergency broadcast %s for patient %s", emergency_type.value, self._patient_id)
        return broadcast

    def recent_broadcasts(self) -> list[EmergencyBroadcast]:
        return self._log.entries(self._patient_id)
