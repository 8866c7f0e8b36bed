"""Patient profile snapshots for analysis runs."""
from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Mapping

from models.signal_models import ProfileParameters

from .models import PatientProfile

DEFAULT_PROFILE = PatientProfile()


class PatientProfileProvider:
    """Supplies one immutable profile per run.

    ``update`` swaps the stored profile atomically, so a run that already took
    its snapshot keeps computing against the old values.
    """

    def __init__(self, profile: PatientProfile | None = None) -> None:
        self._profile = profile or DEFAULT_PROFILE
        self._lock = threading.Lock()

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, Any] | None) -> "PatientProfileProvider":
        """Build from stored model parameters, using defaults for missing values."""

        params = ProfileParameters.model_validate(dict(parameters or {}))
        values = {
            "age": params.age,
            "diabetes_type": params.diabetes_type,
            "weight_kg": params.weight_kg,
            "insulin_sensitivity_factor": params.insulin_sensitivity_factor,
            "carb_ratio": params.carb_ratio,
            "target_glucose_mgdl": params.target_glucose,
        }
        return cls(replace(DEFAULT_PROFILE, **{k: v for k, v in values.items() if v is not None}))

    def snapshot(self) -> PatientProfile:
        with self._lock:
            return self._profile

    def update(self, **changes: Any) -> PatientProfile:
        """Apply changes for later runs; invalid values raise ``ValueError``."""

        with self._lock:
            self._profile = replace(self._profile, **changes)
            return self._profile
