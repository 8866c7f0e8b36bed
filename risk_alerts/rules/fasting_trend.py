"""Detect fasting glucose creeping upward across consecutive mornings."""
from __future__ import annotations

from ..features import PreparedSignals
from ..models import AnalysisContext, FindingKind, ReadingContext, RiskFinding, Severity
from ..registry import register_rule
from ..rule_base import RiskRule


@register_rule
class FastingTrendRule(RiskRule):
    id = "fasting_trend"
    kind = FindingKind.FASTING_TREND
    description = "Last 3 daily fasting readings strictly rising by >15 mg/dL per day"
    version = "1.0.0"

    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        if signals.empty:
            return []

        rise_per_day = float(self.resolved_threshold(context, "fasting_rise_per_day", 15.0))

        frame = signals.readings
        fasting = frame.loc[frame["context"] == ReadingContext.FASTING.value]
        if fasting.empty:
            return []

        # newest fasting reading per calendar day
        per_day = fasting.groupby(fasting["timestamp"].dt.date, sort=True).tail(1)
        recent = per_day.tail(3)
        if len(recent) < 3:
            return []

        values = recent["glucose_mg_dL"].to_numpy(dtype=float)
        if not all(later > earlier for earlier, later in zip(values, values[1:])):
            return []

        days = (recent["timestamp"].iloc[-1] - recent["timestamp"].iloc[0]).total_seconds() / 86400.0
        if days <= 0:
            return []
        slope = (values[-1] - values[0]) / days
        if slope <= rise_per_day:
            return []

        return [
            self.finding(
                Severity.MEDIUM,
                recent["timestamp"].iloc[-1],
                metrics={
                    "rise_per_day": slope,
                    "first_fasting_glucose": float(values[0]),
                    "latest_fasting_glucose": float(values[-1]),
                },
                evidence={"fasting_dates": [ts.date().isoformat() for ts in recent["timestamp"]]},
            )
        ]
