"""Rule detecting post-prandial rises beyond the profile-scaled expectation."""
from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd

from ..features import RAPID_INSULIN_TYPES, PreparedSignals, readings_between
from ..models import AnalysisContext, FindingKind, RiskFinding, Severity
from ..registry import register_rule
from ..rule_base import RiskRule


@register_rule
class PostMealSpikeRule(RiskRule):
    id = "post_meal_spike"
    kind = FindingKind.POST_MEAL_SPIKE
    description = "Rise within 2 hours of a ≥45 g meal exceeds carbs × ISF / carb ratio × uncovered fraction"
    version = "1.0.0"

    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        if signals.empty or signals.meals.empty:
            return []

        carb_threshold = float(self.resolved_threshold(context, "spike_carb_threshold", 45.0))
        uncovered = float(self.resolved_threshold(context, "uncovered_carb_fraction", 0.25))
        min_peak = float(self.resolved_threshold(context, "spike_min_peak", 0.0))
        lookback = float(self.resolved_threshold(context, "lookback_hours", 24.0))
        before = float(self.resolved_threshold(context, "baseline_before_minutes", 60.0))
        after = float(self.resolved_threshold(context, "baseline_after_minutes", 10.0))
        spike_window = float(self.resolved_threshold(context, "spike_window_minutes", 120.0))
        bolus_match = float(self.resolved_threshold(context, "bolus_match_minutes", 30.0))

        cutoff = signals.now - pd.Timedelta(hours=lookback)
        meals = signals.meals
        meals = meals.loc[(meals["carbs_grams"] >= carb_threshold) & (meals["timestamp"] >= cutoff)]

        findings: List[RiskFinding] = []
        for _, meal in meals.iterrows():
            meal_time: pd.Timestamp = meal["timestamp"]
            baseline_rows = readings_between(
                signals.readings,
                meal_time - pd.Timedelta(minutes=before),
                meal_time + pd.Timedelta(minutes=after),
            )
            post_rows = readings_between(
                signals.readings,
                meal_time,
                meal_time + pd.Timedelta(minutes=spike_window),
                include_start=False,
            )
            if baseline_rows.empty or post_rows.empty:
                continue

            baseline_row = baseline_rows.iloc[-1]
            post_rows = post_rows.loc[post_rows["timestamp"] > baseline_row["timestamp"]]
            if post_rows.empty:
                continue
            peak_idx = post_rows["glucose_mg_dL"].idxmax()
            peak = float(post_rows.loc[peak_idx, "glucose_mg_dL"])
            peak_time = post_rows.loc[peak_idx, "timestamp"]
            baseline = float(baseline_row["glucose_mg_dL"])

            carbs = float(meal["carbs_grams"])
            expected_rise = carbs * context.profile.carb_factor * uncovered
            rise = peak - baseline
            if rise <= expected_rise or peak < min_peak:
                continue

            evidence: Dict[str, Any] = {
                "meal_name": meal["name"],
                "meal_time": meal_time.isoformat(),
                "peak_time": peak_time.isoformat(),
                "bolus_logged": self._bolus_near(signals.doses, meal_time, bolus_match),
            }
            findings.append(
                self.finding(
                    Severity.MEDIUM,
                    peak_time,
                    metrics={
                        "carbs_grams": carbs,
                        "baseline_glucose": baseline,
                        "peak_glucose": peak,
                        "rise_mg_dl": rise,
                        "expected_rise_mg_dl": expected_rise,
                        "minutes_to_peak": (peak_time - meal_time).total_seconds() / 60.0,
                    },
                    evidence=evidence,
                )
            )
        return findings

    @staticmethod
    def _bolus_near(doses: pd.DataFrame, meal_time: pd.Timestamp, minutes: float) -> bool:
        if doses.empty:
            return False
        types = doses["type"].astype(str).str.lower()
        delta = (doses["timestamp"] - meal_time).abs()
        return bool((types.isin(RAPID_INSULIN_TYPES) & (delta <= pd.Timedelta(minutes=minutes))).any())
