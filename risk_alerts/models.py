"""Core data models for glucose risk analysis and alerting."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Sequence


class ReadingContext(str, Enum):
    """When a glucose reading was taken relative to the patient's day."""

    FASTING = "fasting"
    BEFORE_MEAL = "before_meal"
    AFTER_MEAL = "after_meal"
    BEDTIME = "bedtime"
    NIGHT = "night"
    RANDOM = "random"
    EXERCISE = "exercise"


class Severity(str, Enum):
    """Alert severity, ordered low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class FindingKind(str, Enum):
    """Kinds of risk observation the analyzer can produce."""

    TREND_HYPO = "trend_hypo"
    TREND_HYPER = "trend_hyper"
    POST_MEAL_SPIKE = "post_meal_spike"
    MISSED_CORRELATION = "missed_correlation"
    VARIABILITY = "variability"
    FASTING_TREND = "fasting_trend"
    POST_MEAL_PATTERN = "post_meal_pattern"
    AGE_VIGILANCE = "age_vigilance"


class EmergencyType(str, Enum):
    SEVERE_HYPOGLYCEMIA = "severe_hypoglycemia"
    SEVERE_HYPERGLYCEMIA = "severe_hyperglycemia"
    NO_RESPONSE = "no_response"
    MEDICAL_EMERGENCY = "medical_emergency"


@dataclass(frozen=True)
class GlucoseReading:
    """A single glucose measurement in mg/dL."""

    value: float
    timestamp: datetime
    context: Optional[ReadingContext] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class MealEntry:
    name: str
    carbs_grams: float
    timestamp: datetime


@dataclass(frozen=True)
class ActivityEntry:
    type: str
    duration_minutes: float
    intensity: str
    timestamp: datetime


@dataclass(frozen=True)
class InsulinDose:
    type: str
    units: float
    timestamp: datetime


@dataclass(frozen=True)
class PatientProfile:
    """Per-patient parameters that scale every risk formula.

    Defaults are the values used when nothing is stored for the patient:
    35 years old, type 1, 70 kg, ISF 50 mg/dL per unit, carb ratio 15 g per
    unit and a 100 mg/dL target.
    """

    age: int = 35
    diabetes_type: int = 1
    weight_kg: float = 70.0
    insulin_sensitivity_factor: float = 50.0
    carb_ratio: float = 15.0
    target_glucose_mgdl: float = 100.0

    def __post_init__(self) -> None:
        if self.diabetes_type not in (1, 2):
            raise ValueError(f"diabetes_type must be 1 or 2, got {self.diabetes_type!r}")
        for name in ("insulin_sensitivity_factor", "carb_ratio", "target_glucose_mgdl"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{name} must be positive")

    @property
    def carb_factor(self) -> float:
        """Glucose rise in mg/dL per uncovered gram of carbohydrate."""

        return self.insulin_sensitivity_factor / self.carb_ratio


@dataclass(frozen=True)
class SignalHistory:
    """Read-only snapshot of a patient's signals for one analysis run."""

    readings: Sequence[GlucoseReading] = field(default_factory=tuple)
    meals: Sequence[MealEntry] = field(default_factory=tuple)
    activities: Sequence[ActivityEntry] = field(default_factory=tuple)
    insulin_doses: Sequence[InsulinDose] = field(default_factory=tuple)
    as_of: Optional[datetime] = None


@dataclass(frozen=True)
class AnalysisContext:
    """Auxiliary settings passed to each rule."""

    profile: PatientProfile
    thresholds: Mapping[str, Any] = field(default_factory=dict)
    rule_settings: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def rule_threshold(self, rule_id: str, key: str, default: Any) -> Any:
        """Return rule-specific override, falling back to global thresholds"""

        rule_specific = self.rule_settings.get(rule_id, {})
        if key in rule_specific:
            return rule_specific[key]
        return self.thresholds.get(key, default)


@dataclass(frozen=True)
class RiskFinding:
    """Candidate risk observation produced by a rule."""

    kind: FindingKind
    severity: Severity
    observed_at: datetime
    rule_id: str
    metrics: Mapping[str, float] = field(default_factory=dict)
    evidence: Mapping[str, Any] = field(default_factory=dict)
    version: Optional[str] = None


@dataclass(frozen=True)
class RiskAlert:
    """Durable, de-duplicated alert derived from a finding."""

    id: str
    title: str
    message: str
    severity: Severity
    created_at: datetime
    finding_kind: FindingKind
    observed_at: datetime
    read: bool = False
    recommended_actions: tuple[str, ...] = ()
    timeframe_minutes: Optional[int] = None
    confidence: Optional[float] = None
    metrics: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class EmergencyBroadcast:
    """Explicitly triggered, always-critical emergency record."""

    timestamp: datetime
    type: EmergencyType
    message: str
    glucose_value: Optional[float] = None
    severity: Severity = Severity.CRITICAL
    patient_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "type": self.type.value,
            "message": self.message,
            "glucose_value": self.glucose_value,
            "severity": self.severity.value,
            "patient_id": self.patient_id,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "EmergencyBroadcast":
        return cls(
            timestamp=datetime.fromisoformat(payload["timestamp"]),
            type=EmergencyType(payload["type"]),
            message=payload["message"],
            glucose_value=payload.get("glucose_value"),
            severity=Severity(payload.get("severity", Severity.CRITICAL.value)),
            patient_id=payload.get("patient_id"),
        )


@dataclass(frozen=True)
class NotificationRecord:
    """Presentation-agnostic record handed to the host's notification queue."""

    title: str
    description: str
    variant: str
    priority: Severity
    duration_ms: int
    alert_id: Optional[str] = None
