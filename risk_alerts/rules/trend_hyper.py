"""Predict a rise above the high threshold from the short-term trend."""
from __future__ import annotations

from ..features import PreparedSignals, linear_slope, minutes_to_threshold, trend_window
from ..models import AnalysisContext, FindingKind, RiskFinding, Severity
from ..registry import register_rule
from ..rule_base import RiskRule


@register_rule
class TrendHyperRule(RiskRule):
    id = "trend_hyper"
    kind = FindingKind.TREND_HYPER
    description = "Latest reading above 300 mg/dL, or high and not falling, or projected above 180 mg/dL"
    version = "1.0.0"

    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        if signals.empty:
            return []

        high_threshold = float(self.resolved_threshold(context, "high_threshold", 180.0))
        hard_high = float(self.resolved_threshold(context, "hard_high", 300.0))
        horizon = float(self.resolved_threshold(context, "horizon_minutes", 30.0))
        count = int(self.resolved_threshold(context, "trend_readings", 4))
        span = float(self.resolved_threshold(context, "trend_span_minutes", 90.0))

        latest = signals.latest
        latest_value = float(latest["glucose_mg_dL"])
        observed_at = latest["timestamp"]

        window = trend_window(signals.readings, count, span)
        slope = linear_slope(window)
        projected = latest_value + slope * horizon if slope is not None else latest_value
        metrics = {
            "latest_glucose": latest_value,
            "slope_mg_dl_per_min": slope if slope is not None else 0.0,
            "projected_glucose": projected,
            "horizon_minutes": horizon,
            "mean_recent_glucose": float(window["glucose_mg_dL"].mean()),
        }

        if latest_value > hard_high:
            return [
                self.finding(
                    Severity.CRITICAL,
                    observed_at,
                    metrics={**metrics, "minutes_to_threshold": 0.0},
                    evidence={"trigger": "above_hard_high", "hard_high": hard_high},
                )
            ]

        if latest_value >= high_threshold and (slope is None or slope >= 0):
            trigger = "sustained_high"
            minutes = 0.0
        elif slope is not None and slope > 0 and projected >= high_threshold:
            trigger = "rising_trend"
            minutes = minutes_to_threshold(latest_value, slope, high_threshold) or 0.0
        else:
            return []

        return [
            self.finding(
                Severity.HIGH,
                observed_at,
                metrics={**metrics, "minutes_to_threshold": float(minutes)},
                evidence={"trigger": trigger, "high_threshold": high_threshold},
            )
        ]
