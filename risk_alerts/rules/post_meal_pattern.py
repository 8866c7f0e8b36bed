"""Detect a week where most after-meal readings land above range."""
from __future__ import annotations

import pandas as pd

from ..features import PreparedSignals
from ..models import AnalysisContext, FindingKind, ReadingContext, RiskFinding, Severity
from ..registry import register_rule
from ..rule_base import RiskRule


@register_rule
class PostMealPatternRule(RiskRule):
    id = "post_meal_pattern"
    kind = FindingKind.POST_MEAL_PATTERN
    description = ">60% of after-meal readings above 180 mg/dL over the last 7 days"
    version = "1.0.0"

    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        if signals.empty:
            return []

        high_threshold = float(self.resolved_threshold(context, "high_threshold", 180.0))
        lookback_days = float(self.resolved_threshold(context, "pattern_lookback_days", 7.0))
        min_readings = int(self.resolved_threshold(context, "pattern_min_readings", 3))
        high_fraction = float(self.resolved_threshold(context, "pattern_high_fraction", 0.6))

        frame = signals.readings
        cutoff = signals.now - pd.Timedelta(days=lookback_days)
        post_meal = frame.loc[(frame["context"] == ReadingContext.AFTER_MEAL.value) & (frame["timestamp"] >= cutoff)]
        if len(post_meal) < min_readings:
            return []

        high = post_meal.loc[post_meal["glucose_mg_dL"] > high_threshold]
        fraction = len(high) / len(post_meal)
        if fraction <= high_fraction:
            return []

        return [
            self.finding(
                Severity.MEDIUM,
                post_meal["timestamp"].iloc[-1],
                metrics={
                    "high_fraction": fraction,
                    "after_meal_readings": float(len(post_meal)),
                    "high_readings": float(len(high)),
                },
                evidence={"lookback_days": lookback_days, "high_threshold": high_threshold},
            )
        ]
