from __future__ import annotations

from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import math

import pandas as pd

from risk_alerts.features import (
    absorbed_within,
    insulin_on_board,
    linear_slope,
    minutes_to_threshold,
    prepare_readings,
    prepare_signals,
    trend_window,
    variability_metrics,
)
from risk_alerts.models import GlucoseReading, InsulinDose, MealEntry, ReadingContext, SignalHistory

BASE = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def _reading(minutes: float, value, context=None) -> GlucoseReading:
    return GlucoseReading(value=value, timestamp=BASE + timedelta(minutes=minutes), context=context)


def test_prepare_readings_drops_malformed_and_out_of_range_values():
    readings = [
        _reading(0, 120.0),
        _reading(5, float("nan")),
        _reading(10, float("inf")),
        _reading(15, 2.0),
        _reading(20, 1500.0),
        GlucoseReading(value=130.0, timestamp=None),
        _reading(25, "not-a-number"),
        _reading(30, 140.0),
    ]

    frame = prepare_readings(readings)

    assert frame["glucose_mg_dL"].tolist() == [120.0, 140.0]


def test_prepare_readings_sorts_and_keeps_last_duplicate():
    readings = [
        _reading(10, 150.0),
        _reading(0, 100.0),
        _reading(10, 155.0),
        _reading(5, 120.0),
    ]

    frame = prepare_readings(readings)

    assert frame["glucose_mg_dL"].tolist() == [100.0, 120.0, 155.0]
    assert frame["timestamp"].is_monotonic_increasing


def test_prepare_readings_caps_history_to_most_recent():
    readings = [_reading(i * 5, 100.0 + i) for i in range(20)]

    frame = prepare_readings(readings, max_readings=5)

    assert len(frame) == 5
    assert frame["glucose_mg_dL"].iloc[-1] == 119.0


def test_prepare_readings_keeps_context_values():
    frame = prepare_readings([_reading(0, 95.0, ReadingContext.FASTING)])

    assert frame["context"].iloc[0] == "fasting"


def test_prepare_signals_resolves_reference_times():
    history = SignalHistory(
        readings=(_reading(0, 110.0), _reading(30, 115.0)),
        meals=(MealEntry(name="lunch", carbs_grams=60, timestamp=BASE + timedelta(minutes=90)),),
    )

    signals = prepare_signals(history)

    assert signals.now == pd.Timestamp(BASE + timedelta(minutes=30))
    assert signals.as_of == pd.Timestamp(BASE + timedelta(minutes=90))


def test_prepare_signals_uses_explicit_as_of():
    as_of = BASE + timedelta(hours=5)
    history = SignalHistory(readings=(_reading(0, 110.0),), as_of=as_of)

    signals = prepare_signals(history)

    assert signals.as_of == pd.Timestamp(as_of)


def test_linear_slope_in_mg_dl_per_minute():
    frame = prepare_readings([_reading(0, 140.0), _reading(10, 120.0), _reading(20, 100.0)])

    assert math.isclose(linear_slope(frame), -2.0)


def test_linear_slope_undefined_for_single_reading():
    frame = prepare_readings([_reading(0, 140.0)])

    assert linear_slope(frame) is None


def test_trend_window_respects_span():
    frame = prepare_readings([_reading(0, 100.0), _reading(100, 110.0), _reading(110, 120.0), _reading(120, 130.0)])

    window = trend_window(frame, count=4, span_minutes=90)

    assert window["glucose_mg_dL"].tolist() == [110.0, 120.0, 130.0]


def test_minutes_to_threshold():
    assert minutes_to_threshold(100.0, -2.0, 70.0) == 15.0
    assert minutes_to_threshold(100.0, 2.0, 70.0) is None
    assert minutes_to_threshold(100.0, None, 70.0) is None


def test_insulin_on_board_decays_linearly():
    history = SignalHistory(
        readings=(_reading(0, 120.0),),
        insulin_doses=(
            InsulinDose(type="rapid", units=4.0, timestamp=BASE - timedelta(minutes=120)),
            InsulinDose(type="long", units=20.0, timestamp=BASE - timedelta(minutes=30)),
            InsulinDose(type="rapid", units=3.0, timestamp=BASE - timedelta(minutes=300)),
        ),
    )
    signals = prepare_signals(history)

    iob = insulin_on_board(signals.doses, signals.now, action_minutes=240)

    assert math.isclose(iob, 2.0)


def test_variability_metrics():
    metrics = variability_metrics(pd.Series([100.0, 200.0, 100.0, 200.0]))

    assert math.isclose(metrics["mean_glucose"], 150.0)
    assert math.isclose(metrics["std_glucose"], 50.0)
    assert math.isclose(metrics["cv"], 1 / 3)
    assert math.isclose(metrics["mean_abs_delta"], 100.0)
    assert variability_metrics(pd.Series([], dtype=float)) is None


def test_absorbed_within_counts_only_the_horizon():
    history = SignalHistory(
        readings=(_reading(0, 120.0),),
        insulin_doses=(
            InsulinDose(type="rapid", units=4.0, timestamp=BASE - timedelta(minutes=120)),
            InsulinDose(type="rapid", units=4.0, timestamp=BASE - timedelta(minutes=225)),
            InsulinDose(type="long", units=20.0, timestamp=BASE - timedelta(minutes=30)),
            InsulinDose(type="rapid", units=6.0, timestamp=BASE + timedelta(minutes=10)),
        ),
    )
    signals = prepare_signals(history)

    units = absorbed_within(signals.doses, "units", pd.Timestamp(BASE), 30, 240, types={"rapid"})

    # 4 * 30/240 from the first dose, 4 * 15/240 from the nearly finished one
    assert math.isclose(units, 0.75)
