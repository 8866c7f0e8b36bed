"""Predict a fall below the low threshold from the short-term trend."""
from __future__ import annotations

import pandas as pd

from ..features import (
    RAPID_INSULIN_TYPES,
    PreparedSignals,
    absorbed_within,
    insulin_on_board,
    linear_slope,
    minutes_to_threshold,
    trend_window,
)
from ..models import AnalysisContext, FindingKind, RiskFinding, Severity
from ..registry import register_rule
from ..rule_base import RiskRule


@register_rule
class TrendHypoRule(RiskRule):
    id = "trend_hypo"
    kind = FindingKind.TREND_HYPO
    description = "Latest reading below 55 mg/dL, or trend/IOB projecting below 70 mg/dL within 30 minutes"
    version = "1.1.0"

    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        if signals.empty:
            return []

        low_threshold = float(self.resolved_threshold(context, "low_threshold", 70.0))
        hard_low = float(self.resolved_threshold(context, "hard_low", 55.0))
        horizon = float(self.resolved_threshold(context, "horizon_minutes", 30.0))
        count = int(self.resolved_threshold(context, "trend_readings", 4))
        span = float(self.resolved_threshold(context, "trend_span_minutes", 90.0))
        action_minutes = float(self.resolved_threshold(context, "insulin_action_minutes", 240.0))
        absorption_minutes = float(self.resolved_threshold(context, "carb_absorption_minutes", 180.0))
        flat_tolerance = float(self.resolved_threshold(context, "flat_slope_tolerance", 0.05))

        latest = signals.latest
        latest_value = float(latest["glucose_mg_dL"])
        observed_at: pd.Timestamp = latest["timestamp"]

        window = trend_window(signals.readings, count, span)
        slope = linear_slope(window)
        projected = latest_value + slope * horizon if slope is not None else latest_value

        # net effect of insulin and carbs acting inside the horizon only
        profile = context.profile
        iob = insulin_on_board(signals.doses, observed_at, action_minutes)
        insulin_units = absorbed_within(
            signals.doses, "units", observed_at, horizon, action_minutes, types=RAPID_INSULIN_TYPES
        )
        carbs = absorbed_within(signals.meals, "carbs_grams", observed_at, horizon, absorption_minutes)
        insulin_effect = insulin_units * profile.insulin_sensitivity_factor
        carb_effect = carbs * profile.carb_factor
        net_drop = insulin_effect - carb_effect
        iob_projected = latest_value - net_drop

        metrics = {
            "latest_glucose": latest_value,
            "slope_mg_dl_per_min": slope if slope is not None else 0.0,
            "projected_glucose": projected,
            "horizon_minutes": horizon,
            "insulin_on_board": iob,
            "insulin_effect_mg_dl": insulin_effect,
            "carb_effect_mg_dl": carb_effect,
            "iob_projected_glucose": iob_projected,
            "readings_in_trend": float(len(window)),
        }

        if latest_value < hard_low:
            return [
                self.finding(
                    Severity.CRITICAL,
                    observed_at,
                    metrics={**metrics, "minutes_to_threshold": 0.0},
                    evidence={"trigger": "below_hard_low", "hard_low": hard_low},
                )
            ]

        minutes: float | None = None
        trigger: str | None = None
        if latest_value < low_threshold:
            trigger, minutes = "below_low_threshold", 0.0
        elif slope is not None and slope < 0 and projected < low_threshold:
            trigger = "falling_trend"
            minutes = minutes_to_threshold(latest_value, slope, low_threshold)
        elif (slope is None or slope <= flat_tolerance) and net_drop > 0 and iob_projected < low_threshold:
            trigger = "insulin_on_board"
            minutes = horizon * (latest_value - low_threshold) / net_drop

        if trigger is None or minutes is None or minutes > horizon:
            return []

        return [
            self.finding(
                Severity.HIGH,
                observed_at,
                metrics={**metrics, "minutes_to_threshold": float(minutes)},
                evidence={"trigger": trigger, "low_threshold": low_threshold},
            )
        ]
