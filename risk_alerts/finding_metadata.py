"""Structured presentation metadata for each finding kind."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .models import FindingKind, RiskFinding, Severity

FINDING_METADATA: dict[FindingKind, dict[str, Any]] = {
    FindingKind.TREND_HYPO: {
        "title": "Hypoglycemia risk",
        "message": "Glucose is {latest_glucose:.0f} mg/dL and falling ({slope_mg_dl_per_min:.1f} mg/dL/min).",
        "critical_message": "Glucose is {latest_glucose:.0f} mg/dL, below the safety limit.",
        "recommended_actions": (
            "Check your glucose now",
            "Take 15 g of fast-acting carbohydrates",
            "Avoid physical activity until glucose recovers",
            "Let a relative know if you are alone",
        ),
        "timeframe_metric": "minutes_to_threshold",
        "confidence": {Severity.CRITICAL: 95.0, Severity.HIGH: 85.0},
    },
    FindingKind.TREND_HYPER: {
        "title": "Hyperglycemia risk",
        "message": "Glucose is {latest_glucose:.0f} mg/dL and projected at {projected_glucose:.0f} mg/dL.",
        "critical_message": "Glucose is {latest_glucose:.0f} mg/dL, above the safety limit.",
        "recommended_actions": (
            "Check your insulin dose",
            "Drink water",
            "Avoid extra carbohydrates",
            "Check ketones",
            "Contact your doctor if it persists",
        ),
        "timeframe_metric": "minutes_to_threshold",
        "confidence": {Severity.CRITICAL: 95.0, Severity.HIGH: 85.0},
    },
    FindingKind.POST_MEAL_SPIKE: {
        "title": "Post-meal spike",
        "message": (
            "Glucose rose {rise_mg_dl:.0f} mg/dL after a {carbs_grams:.0f} g meal "
            "(expected about {expected_rise_mg_dl:.0f} mg/dL)."
        ),
        "recommended_actions": (
            "Review your meal bolus and carb ratio",
            "Consider smaller carbohydrate portions",
            "Pre-bolus before eating",
        ),
        "timeframe": 120,
        "confidence": 80.0,
    },
    FindingKind.MISSED_CORRELATION: {
        "title": "Glucose check missing",
        "message": "No glucose reading was logged in the {followup_minutes:.0f} minutes after this event.",
        "recommended_actions": (
            "Log a glucose reading",
            "Check glucose after meals and exercise",
        ),
        "timeframe": None,
        "confidence": 60.0,
    },
    FindingKind.VARIABILITY: {
        "title": "High glucose variability",
        "message": "Glucose varied widely over the last day (CV {cv:.0%}, SD {std_glucose:.0f} mg/dL).",
        "recommended_actions": (
            "Look for irregular meal or insulin timing",
            "Discuss basal settings with your care team",
        ),
        "timeframe": 1440,
        "confidence": 75.0,
    },
    FindingKind.FASTING_TREND: {
        "title": "Rising fasting glucose",
        "message": "Fasting glucose has risen {rise_per_day:.0f} mg/dL per day over the last mornings.",
        "recommended_actions": (
            "Review your evening long-acting insulin",
            "Check the previous evening's dinner",
            "Talk to your diabetologist",
            "Watch your sleep",
        ),
        "timeframe": 720,
        "confidence": 78.0,
    },
    FindingKind.POST_MEAL_PATTERN: {
        "title": "Frequent high readings after meals",
        "message": "{high_fraction:.0%} of after-meal readings this week were above range.",
        "recommended_actions": (
            "Adjust your rapid-acting insulin doses",
            "Reduce carbohydrate portions",
            "Eat more slowly",
            "See a nutritionist",
        ),
        "timeframe": 120,
        "confidence": 88.0,
    },
    FindingKind.AGE_VIGILANCE: {
        "title": "Closer monitoring advised",
        "message": "Glucose is {latest_glucose:.0f} mg/dL; closer monitoring is advised from age 65.",
        "recommended_actions": (
            "Check glucose more often",
            "Use age-adapted glucose targets",
            "Watch for atypical symptoms",
            "Contact your doctor if needed",
        ),
        "timeframe": 120,
        "confidence": 75.0,
    },
}


@dataclass(frozen=True)
class AlertText:
    title: str
    message: str
    recommended_actions: tuple[str, ...]
    timeframe_minutes: int | None
    confidence: float | None


class _Metrics(dict):
    def __missing__(self, key: str) -> float:
        return 0.0


def describe_finding(finding: RiskFinding) -> AlertText:
    """Render the user-facing text for a finding."""

    meta = FINDING_METADATA[finding.kind]
    template = meta["message"]
    if finding.severity is Severity.CRITICAL and "critical_message" in meta:
        template = meta["critical_message"]
    message = template.format_map(_Metrics(finding.metrics))

    timeframe = meta.get("timeframe")
    metric_key = meta.get("timeframe_metric")
    if metric_key is not None:
        timeframe = int(round(finding.metrics.get(metric_key, 0.0)))

    confidence = meta.get("confidence")
    if isinstance(confidence, Mapping):
        confidence = confidence.get(finding.severity)

    return AlertText(
        title=meta["title"],
        message=message,
        recommended_actions=tuple(meta["recommended_actions"]),
        timeframe_minutes=timeframe,
        confidence=confidence,
    )
