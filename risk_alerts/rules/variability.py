"""Detect elevated glycemic variability over the last day."""
from __future__ import annotations

import pandas as pd

from ..features import PreparedSignals, variability_metrics
from ..models import AnalysisContext, FindingKind, RiskFinding, Severity
from ..registry import register_rule
from ..rule_base import RiskRule


@register_rule
class VariabilityRule(RiskRule):
    id = "variability"
    kind = FindingKind.VARIABILITY
    description = "CV ≥36% or SD above half the target over the last 24 hours"
    version = "1.0.0"

    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        if signals.empty:
            return []

        window_hours = float(self.resolved_threshold(context, "variability_window_hours", 24.0))
        min_readings = int(self.resolved_threshold(context, "variability_min_readings", 6))
        cv_threshold = float(self.resolved_threshold(context, "cv_threshold", 0.36))
        std_ratio = float(self.resolved_threshold(context, "variability_std_ratio", 0.5))

        frame = signals.readings
        recent = frame.loc[frame["timestamp"] >= signals.now - pd.Timedelta(hours=window_hours)]
        if len(recent) < min_readings:
            return []

        metrics = variability_metrics(recent["glucose_mg_dL"])
        if metrics is None:
            return []

        std_limit = context.profile.target_glucose_mgdl * std_ratio
        if metrics["cv"] < cv_threshold and metrics["std_glucose"] <= std_limit:
            return []

        return [
            self.finding(
                Severity.MEDIUM,
                signals.now,
                metrics={**metrics, "cv_threshold": cv_threshold, "std_limit": std_limit},
                evidence={
                    "window_start": recent["timestamp"].iloc[0].isoformat(),
                    "window_hours": window_hours,
                },
            )
        ]
