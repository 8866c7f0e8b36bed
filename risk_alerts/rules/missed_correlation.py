"""Remind the patient to check glucose after meals or exercise left unmonitored."""
from __future__ import annotations

import pandas as pd

from ..features import PreparedSignals, readings_between
from ..models import AnalysisContext, FindingKind, RiskFinding, Severity
from ..registry import register_rule
from ..rule_base import RiskRule

_HIGH_INTENSITY = {"high", "vigorous", "intense"}


@register_rule
class MissedCorrelationRule(RiskRule):
    id = "missed_correlation"
    kind = FindingKind.MISSED_CORRELATION
    description = "Material meal or activity with no glucose reading in its follow-up window"
    version = "1.0.0"

    def evaluate(self, signals: PreparedSignals, context: AnalysisContext) -> list[RiskFinding]:
        if signals.empty or signals.as_of is None:
            return []

        carb_threshold = float(self.resolved_threshold(context, "followup_carb_threshold", 30.0))
        activity_minutes = float(self.resolved_threshold(context, "followup_activity_minutes", 30.0))
        meal_followup = float(self.resolved_threshold(context, "meal_followup_minutes", 150.0))
        activity_followup = float(self.resolved_threshold(context, "activity_followup_minutes", 60.0))
        lookback = float(self.resolved_threshold(context, "lookback_hours", 24.0))

        cutoff = signals.as_of - pd.Timedelta(hours=lookback)
        findings: list[RiskFinding] = []

        meals = signals.meals
        if not meals.empty:
            material = meals.loc[(meals["carbs_grams"] >= carb_threshold) & (meals["timestamp"] >= cutoff)]
            for _, meal in material.iterrows():
                window_end = meal["timestamp"] + pd.Timedelta(minutes=meal_followup)
                if self._unmonitored(signals, meal["timestamp"], window_end):
                    findings.append(
                        self.finding(
                            Severity.LOW,
                            meal["timestamp"],
                            metrics={"carbs_grams": float(meal["carbs_grams"]), "followup_minutes": meal_followup},
                            evidence={"event": "meal", "name": meal["name"], "window_end": window_end.isoformat()},
                        )
                    )

        activities = signals.activities
        if not activities.empty:
            intensity = activities["intensity"].astype(str).str.lower()
            material = activities.loc[
                ((activities["duration_minutes"] >= activity_minutes) | intensity.isin(_HIGH_INTENSITY))
                & (activities["timestamp"] >= cutoff)
            ]
            for _, activity in material.iterrows():
                followup = float(activity["duration_minutes"]) + activity_followup
                window_end = activity["timestamp"] + pd.Timedelta(minutes=followup)
                if self._unmonitored(signals, activity["timestamp"], window_end):
                    findings.append(
                        self.finding(
                            Severity.LOW,
                            activity["timestamp"],
                            metrics={
                                "duration_minutes": float(activity["duration_minutes"]),
                                "followup_minutes": followup,
                            },
                            evidence={
                                "event": "activity",
                                "name": activity["type"],
                                "intensity": activity["intensity"],
                                "window_end": window_end.isoformat(),
                            },
                        )
                    )
        return findings

    @staticmethod
    def _unmonitored(signals: PreparedSignals, start: pd.Timestamp, end: pd.Timestamp) -> bool:
        """Return True when the window has fully elapsed without any reading."""

        if end > signals.as_of:
            return False
        return bool(readings_between(signals.readings, start, end, include_start=False).empty)
