"""Read-only access to a patient's recorded signals."""
from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from .models import ActivityEntry, GlucoseReading, InsulinDose, MealEntry, SignalHistory


class SignalStore(Protocol):
    """Anything that can produce a ``SignalHistory`` snapshot for a patient."""

    async def load_history(self, patient_id: str) -> SignalHistory:
        ...


class InMemorySignalStore:
    """Store kept in process memory; mainly for embedding hosts and tests."""

    def __init__(self) -> None:
        self._readings: Dict[str, List[GlucoseReading]] = {}
        self._meals: Dict[str, List[MealEntry]] = {}
        self._activities: Dict[str, List[ActivityEntry]] = {}
        self._doses: Dict[str, List[InsulinDose]] = {}
        self._lock = threading.Lock()

    def add_reading(self, patient_id: str, reading: GlucoseReading) -> None:
        with self._lock:
            self._readings.setdefault(patient_id, []).append(reading)

    def add_meal(self, patient_id: str, meal: MealEntry) -> None:
        with self._lock:
            self._meals.setdefault(patient_id, []).append(meal)

    def add_activity(self, patient_id: str, activity: ActivityEntry) -> None:
        with self._lock:
            self._activities.setdefault(patient_id, []).append(activity)

    def add_insulin_dose(self, patient_id: str, dose: InsulinDose) -> None:
        with self._lock:
            self._doses.setdefault(patient_id, []).append(dose)

    async def load_history(self, patient_id: str, as_of: Optional[datetime] = None) -> SignalHistory:
        with self._lock:
            return SignalHistory(
                readings=tuple(self._readings.get(patient_id, ())),
                meals=tuple(self._meals.get(patient_id, ())),
                activities=tuple(self._activities.get(patient_id, ())),
                insulin_doses=tuple(self._doses.get(patient_id, ())),
                as_of=as_of,
            )


class CallableSignalStore:
    """Adapts an ``async (patient_id) -> SignalHistory`` callable to the protocol."""

    def __init__(self, loader: Callable[[str], Awaitable[SignalHistory]]) -> None:
        self._loader = loader

    async def load_history(self, patient_id: str) -> SignalHistory:
        history = await self._loader(patient_id)
        if not isinstance(history, SignalHistory):
            raise TypeError(f"Signal loader returned {type(history).__name__}, expected SignalHistory")
        return history
