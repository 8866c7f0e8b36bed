"""Feature preparation helpers for glucose signal snapshots."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .config import DEFAULT_THRESHOLDS
from .models import SignalHistory

logger = logging.getLogger(__name__)

READING_COLUMNS = ["timestamp", "glucose_mg_dL", "context"]
MEAL_COLUMNS = ["timestamp", "name", "carbs_grams"]
ACTIVITY_COLUMNS = ["timestamp", "type", "duration_minutes", "intensity"]
DOSE_COLUMNS = ["timestamp", "type", "units"]

RAPID_INSULIN_TYPES = frozenset({"rapid", "bolus", "mixed", "correction"})


@dataclass(frozen=True)
class PreparedSignals:
    """Cleaned, sorted and capped frames for one analysis run."""

    readings: pd.DataFrame
    meals: pd.DataFrame
    activities: pd.DataFrame
    doses: pd.DataFrame
    now: Optional[pd.Timestamp]
    as_of: Optional[pd.Timestamp]

    @property
    def empty(self) -> bool:
        return self.readings.empty

    @property
    def latest(self) -> pd.Series:
        return self.readings.iloc[-1]


def _context_value(context: Any) -> Optional[str]:
    if context is None:
        return None
    return getattr(context, "value", context)


def _to_utc(values: Iterable[Any]) -> pd.Series:
    return pd.to_datetime(pd.Series(list(values), dtype="object"), utc=True, errors="coerce")


def prepare_readings(
    readings: Sequence[Any],
    *,
    plausible_min: float = DEFAULT_THRESHOLDS["plausible_min"],
    plausible_max: float = DEFAULT_THRESHOLDS["plausible_max"],
    max_readings: int = int(DEFAULT_THRESHOLDS["max_readings"]),
) -> pd.DataFrame:
    """Return a normalized readings frame.

    Rows with unparseable timestamps, NaN/inf values or values outside the
    plausible band are dropped. The result is sorted oldest to newest, keeps
    the last entry for duplicated timestamps and holds at most
    ``max_readings`` rows.
    """

    if not readings:
        return pd.DataFrame(columns=READING_COLUMNS)

    frame = pd.DataFrame(
        {
            "timestamp": _to_utc(getattr(r, "timestamp", None) for r in readings),
            "glucose_mg_dL": pd.to_numeric(
                pd.Series([getattr(r, "value", None) for r in readings], dtype="object"),
                errors="coerce",
            ),
            "context": [_context_value(getattr(r, "context", None)) for r in readings],
        }
    )
    frame["glucose_mg_dL"] = frame["glucose_mg_dL"].astype("float64").replace([np.inf, -np.inf], np.nan)
    before = len(frame)
    frame = frame.dropna(subset=["timestamp", "glucose_mg_dL"])
    frame = frame[frame["glucose_mg_dL"].between(plausible_min, plausible_max)]
    dropped = before - len(frame)
    if dropped:
        logger.debug("Skipped %d malformed or out-of-range glucose readings", dropped)

    frame = frame.sort_values("timestamp", kind="mergesort")
    frame = frame.drop_duplicates(subset="timestamp", keep="last")
    if max_readings > 0:
        frame = frame.tail(max_readings)
    return frame.reset_index(drop=True)


def _prepare_events(
    entries: Sequence[Any],
    columns: list[str],
    numeric: Sequence[str],
    max_events: int,
) -> pd.DataFrame:
    if not entries:
        return pd.DataFrame(columns=columns)

    data: dict[str, Any] = {"timestamp": _to_utc(getattr(e, "timestamp", None) for e in entries)}
    for column in columns[1:]:
        values = pd.Series([getattr(e, column, None) for e in entries], dtype="object")
        if column in numeric:
            values = pd.to_numeric(values, errors="coerce").astype("float64")
        data[column] = values
    frame = pd.DataFrame(data)
    frame = frame.dropna(subset=["timestamp", *numeric])
    frame = frame.sort_values("timestamp", kind="mergesort")
    if max_events > 0:
        frame = frame.tail(max_events)
    return frame.reset_index(drop=True)


def prepare_signals(history: SignalHistory, thresholds: Mapping[str, Any] | None = None) -> PreparedSignals:
    """Normalize every sequence in a snapshot and resolve the reference times."""

    thresholds = thresholds or {}

    def _get(key: str) -> Any:
        return thresholds.get(key, DEFAULT_THRESHOLDS[key])

    max_events = int(_get("max_events"))
    readings = prepare_readings(
        history.readings,
        plausible_min=float(_get("plausible_min")),
        plausible_max=float(_get("plausible_max")),
        max_readings=int(_get("max_readings")),
    )
    meals = _prepare_events(history.meals, MEAL_COLUMNS, ("carbs_grams",), max_events)
    activities = _prepare_events(history.activities, ACTIVITY_COLUMNS, ("duration_minutes",), max_events)
    doses = _prepare_events(history.insulin_doses, DOSE_COLUMNS, ("units",), max_events)

    now = readings["timestamp"].iloc[-1] if not readings.empty else None
    as_of = _resolve_as_of(history.as_of, (readings, meals, activities, doses))
    return PreparedSignals(readings=readings, meals=meals, activities=activities, doses=doses, now=now, as_of=as_of)


def _resolve_as_of(explicit: Optional[datetime], frames: Sequence[pd.DataFrame]) -> Optional[pd.Timestamp]:
    if explicit is not None:
        stamp = pd.Timestamp(explicit)
        return stamp.tz_localize("UTC") if stamp.tzinfo is None else stamp.tz_convert("UTC")
    latest = [frame["timestamp"].iloc[-1] for frame in frames if not frame.empty]
    return max(latest) if latest else None


def readings_between(
    frame: pd.DataFrame,
    start: pd.Timestamp,
    end: pd.Timestamp,
    *,
    include_start: bool = True,
) -> pd.DataFrame:
    """Slice readings to ``[start, end]`` (or ``(start, end]``)."""

    if frame.empty:
        return frame
    timestamps = frame["timestamp"]
    lower = timestamps >= start if include_start else timestamps > start
    return frame.loc[lower & (timestamps <= end)]


def trend_window(frame: pd.DataFrame, count: int, span_minutes: float) -> pd.DataFrame:
    """Return up to ``count`` latest readings no older than ``span_minutes`` before the newest."""

    if frame.empty:
        return frame
    recent = frame.tail(count)
    cutoff = recent["timestamp"].iloc[-1] - pd.Timedelta(minutes=span_minutes)
    return recent.loc[recent["timestamp"] >= cutoff]


def linear_slope(frame: pd.DataFrame) -> float | None:
    """Least-squares glucose slope in mg/dL per minute, or None if undefined."""

    if len(frame) < 2:
        return None
    minutes = (frame["timestamp"] - frame["timestamp"].iloc[0]).dt.total_seconds().to_numpy() / 60.0
    if np.ptp(minutes) == 0:
        return None
    values = frame["glucose_mg_dL"].to_numpy(dtype=float)
    slope, _ = np.polyfit(minutes, values, 1)
    slope = float(slope)
    return slope if math.isfinite(slope) else None


def minutes_to_threshold(latest: float, slope: float | None, threshold: float) -> float | None:
    """Minutes until a linear projection from ``latest`` reaches ``threshold``."""

    if slope is None or slope == 0:
        return None
    minutes = (threshold - latest) / slope
    return minutes if minutes >= 0 else None


def insulin_on_board(
    doses: pd.DataFrame,
    now: pd.Timestamp,
    action_minutes: float,
) -> float:
    """Units of rapid insulin still acting at ``now``, using linear decay."""

    if doses.empty or action_minutes <= 0:
        return 0.0
    types = doses["type"].astype(str).str.lower()
    rapid = doses.loc[types.isin(RAPID_INSULIN_TYPES)]
    if rapid.empty:
        return 0.0
    elapsed = (now - rapid["timestamp"]).dt.total_seconds() / 60.0
    active = (elapsed >= 0) & (elapsed < action_minutes)
    remaining = (1.0 - elapsed[active] / action_minutes) * rapid.loc[active, "units"]
    return float(remaining.clip(lower=0).sum())


def absorbed_within(
    events: pd.DataFrame,
    amount_column: str,
    now: pd.Timestamp,
    horizon_minutes: float,
    duration_minutes: float,
    *,
    types: Optional[Iterable[str]] = None,
) -> float:
    """Amount of past events consumed during ``(now, now + horizon]``.

    Each event is absorbed at a constant rate over ``duration_minutes`` from its
    timestamp. Events after ``now`` are ignored.
    """

    if events.empty or duration_minutes <= 0 or horizon_minutes <= 0:
        return 0.0
    if types is not None:
        events = events.loc[events["type"].astype(str).str.lower().isin(set(types))]
        if events.empty:
            return 0.0
    elapsed = (now - events["timestamp"]).dt.total_seconds() / 60.0
    past = elapsed >= 0
    start = elapsed[past]
    end = (start + horizon_minutes).clip(upper=duration_minutes)
    fraction = ((end - start) / duration_minutes).clip(lower=0)
    return float((fraction * events.loc[past, amount_column].astype(float)).sum())


def variability_metrics(values: pd.Series) -> dict[str, float] | None:
    """Standard deviation, coefficient of variation and mean absolute delta."""

    if values.empty:
        return None
    mean_val = float(values.mean())
    std_val = float(values.std(ddof=0))
    if math.isnan(mean_val) or mean_val == 0 or math.isnan(std_val):
        return None
    deltas = values.diff().abs().dropna()
    return {
        "mean_glucose": mean_val,
        "std_glucose": std_val,
        "cv": std_val / mean_val,
        "mean_abs_delta": float(deltas.mean()) if not deltas.empty else 0.0,
        "readings": float(len(values)),
    }
