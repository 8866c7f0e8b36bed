"""Flag out-of-comfort-band readings for elderly patients."""
from __future__ import annotations

from ..features import PreparedSignals
from ..models import AnalysisContext, FindingKind, RiskFinding, Severity
from ..registry import register_rule
from ..rule_base import RiskRule


@register_rule
class AgeVigilanceRule(RiskRule):
    id = "age_vigilance"
    kind = FindingKind.AGE_VIGILANCE
    description = "Patient aged 65+ with latest reading below 100 or above 200 mg/dL"
    version = "1.0.0"

    def applies_to(self, context: AnalysisContext) -> bool:
        elderly_age = int(self.resolved_threshold(context, "elderly_age", 65))
        return context.profile.age >= elderly_age

    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        if signals.empty:
            return []

        low = float(self.resolved_threshold(context, "elderly_low", 100.0))
        high = float(self.resolved_threshold(context, "elderly_high", 200.0))
        latest = signals.latest
        value = float(latest["glucose_mg_dL"])
        if low <= value <= high:
            return []

        return [
            self.finding(
                Severity.MEDIUM,
                latest["timestamp"],
                metrics={"latest_glucose": value, "age": float(context.profile.age)},
                evidence={"direction": "low" if value < low else "high"},
            )
        ]
