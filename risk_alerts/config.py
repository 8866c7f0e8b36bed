"""Default thresholds and scheduling settings, overridable from the environment."""
from __future__ import annotations

import os
from typing import Final, Mapping

ENV_PREFIX: Final[str] = "RISK_ALERTS_"

DEFAULT_THRESHOLDS: Final[dict[str, float]] = {
    # data quality and history caps
    "plausible_min": 10.0,
    "plausible_max": 900.0,
    "max_readings": 500,
    "max_events": 100,
    # glucose bands (mg/dL)
    "low_threshold": 70.0,
    "high_threshold": 180.0,
    "hard_low": 55.0,
    "hard_high": 300.0,
    # trend projection
    "trend_readings": 4,
    "trend_span_minutes": 90.0,
    "horizon_minutes": 30.0,
    "insulin_action_minutes": 240.0,
    "carb_absorption_minutes": 180.0,
    "flat_slope_tolerance": 0.05,
    # meal / activity correlation
    "lookback_hours": 24.0,
    "spike_carb_threshold": 45.0,
    "uncovered_carb_fraction": 0.25,
    "spike_min_peak": 0.0,
    "baseline_before_minutes": 60.0,
    "baseline_after_minutes": 10.0,
    "spike_window_minutes": 120.0,
    "bolus_match_minutes": 30.0,
    "followup_carb_threshold": 30.0,
    "followup_activity_minutes": 30.0,
    "meal_followup_minutes": 150.0,
    "activity_followup_minutes": 60.0,
    # variability
    "variability_window_hours": 24.0,
    "variability_min_readings": 6,
    "cv_threshold": 0.36,
    "variability_std_ratio": 0.5,
    # longer-term patterns
    "fasting_rise_per_day": 15.0,
    "pattern_lookback_days": 7.0,
    "pattern_min_readings": 3,
    "pattern_high_fraction": 0.6,
    "elderly_age": 65,
    "elderly_low": 100.0,
    "elderly_high": 200.0,
}

DEDUP_WINDOW_MINUTES: Final[float] = float(os.getenv(f"{ENV_PREFIX}DEDUP_WINDOW_MINUTES", "30"))
DEBOUNCE_SECONDS: Final[float] = float(os.getenv(f"{ENV_PREFIX}DEBOUNCE_SECONDS", "1.0"))
SCAN_INTERVAL_SECONDS: Final[float] = float(os.getenv(f"{ENV_PREFIX}SCAN_INTERVAL_SECONDS", "300"))
EMERGENCY_LOG_CAPACITY: Final[int] = int(os.getenv(f"{ENV_PREFIX}EMERGENCY_LOG_CAPACITY", "10"))


def thresholds_from_env(environ: Mapping[str, str] | None = None) -> dict[str, float]:
    """Return DEFAULT_THRESHOLDS with ``RISK_ALERTS_<KEY>`` overrides applied."""

    environ = os.environ if environ is None else environ
    resolved: dict[str, float] = dict(DEFAULT_THRESHOLDS)
    for key, default in DEFAULT_THRESHOLDS.items():
        raw = environ.get(f"{ENV_PREFIX}{key.upper()}")
        if raw is None or raw.strip() == "":
            continue
        try:
            resolved[key] = type(default)(float(raw))
        except ValueError as exc:
            raise ValueError(f"Invalid value for {ENV_PREFIX}{key.upper()}: {raw!r}") from exc
    return resolved
