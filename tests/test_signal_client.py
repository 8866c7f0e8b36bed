from pathlib import Path
import sys
from datetime import datetime, timezone

import httpx
import pytest
import respx

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import api_clients.signal_client as signal_client
from api_clients.signal_client import (
    SignalStoreClient,
    convert_activity_payload,
    convert_meal_payload,
    convert_reading_payload,
)
from models.signal_models import ActivityPayload, GlucoseReadingPayload, MealPayload
from risk_alerts.models import ReadingContext

BASE_URL = "https://signals.test/api"
AS_OF = datetime(2024, 11, 2, 12, 0, tzinfo=timezone.utc)


def _mock_lists(readings=None, meals=None, activities=None, doses=None):
    routes = {}
    for path, data in (
        ("/api/glucose/readings", readings),
        ("/api/meals", meals),
        ("/api/activities", activities),
        ("/api/insulin/doses", doses),
    ):
        routes[path] = respx.get(host="signals.test", path=path).mock(
            return_value=httpx.Response(200, json={"code": 0, "data": data or []})
        )
    return routes


def test_convert_reading_payload_maps_legacy_context():
    reading = convert_reading_payload(
        GlucoseReadingPayload(value=142, timestamp="2024-11-02T08:00:00Z", context="apres_repas")
    )

    assert reading.value == 142.0
    assert reading.context is ReadingContext.AFTER_MEAL
    assert reading.timestamp == datetime(2024, 11, 2, 8, 0, tzinfo=timezone.utc)


def test_convert_reading_payload_unknown_context_is_unspecified():
    reading = convert_reading_payload(
        GlucoseReadingPayload(value=100, timestamp="2024-11-02T08:00:00", context="sometime")
    )

    assert reading.context is None
    assert reading.timestamp.tzinfo is not None


def test_convert_reading_payload_requires_value_and_time():
    assert convert_reading_payload(GlucoseReadingPayload(value=None, timestamp="2024-11-02T08:00:00Z")) is None
    assert convert_reading_payload(GlucoseReadingPayload(value=100, timestamp="yesterday")) is None


def test_convert_meal_and_activity_payloads():
    meal = convert_meal_payload(MealPayload(name="oats", carbsGrams=45, timestamp="2024-11-02T07:30:00Z"))
    activity = convert_activity_payload(
        ActivityPayload(type="bike", durationMinutes=40, intensity="HIGH", timestamp="2024-11-02T17:00:00Z")
    )

    assert meal.carbs_grams == 45.0
    assert activity.intensity == "high"
    assert convert_meal_payload(MealPayload(name="x", carbsGrams=-1, timestamp="2024-11-02T07:30:00Z")) is None


@pytest.mark.asyncio
@respx.mock
async def test_load_history_converts_and_skips_malformed_entries():
    routes = _mock_lists(
        readings=[
            {"value": 120, "timestamp": "2024-11-02T10:00:00Z", "context": "avant_repas"},
            {"value": "abc", "timestamp": "2024-11-02T10:05:00Z"},
            {"value": 130},
            {"value": 135, "timestamp": "2024-11-02T10:10:00Z", "context": "fasting"},
        ],
        meals=[{"name": "lunch", "carbsGrams": 60, "timestamp": "2024-11-02T11:00:00Z"}],
        activities=[{"type": "walk", "durationMinutes": 30, "intensity": "low", "timestamp": "2024-11-02T09:00:00Z"}],
        doses=[{"type": "Rapid", "units": 4, "timestamp": "2024-11-02T11:00:00Z"}, "garbage"],
    )
    client = SignalStoreClient(BASE_URL, "token")

    history = await client.load_history("p1", as_of=AS_OF)

    assert [r.value for r in history.readings] == [120.0, 135.0]
    assert [r.context for r in history.readings] == [ReadingContext.BEFORE_MEAL, ReadingContext.FASTING]
    assert history.meals[0].carbs_grams == 60.0
    assert history.activities[0].duration_minutes == 30.0
    assert [d.type for d in history.insulin_doses] == ["rapid"]
    assert history.as_of == AS_OF

    request = routes["/api/glucose/readings"].calls.last.request
    assert request.url.params["patientId"] == "p1"
    assert request.url.params["endTime"] == AS_OF.isoformat()
    assert request.headers["x-session-token"] == "token"


@pytest.mark.asyncio
@respx.mock
async def test_error_code_raises_runtime_error():
    respx.get(host="signals.test", path="/api/glucose/readings").mock(
        return_value=httpx.Response(200, json={"code": 500, "data": None})
    )
    client = SignalStoreClient(BASE_URL, "token")

    with pytest.raises(RuntimeError):
        await client.load_history("p1", as_of=AS_OF)


@pytest.mark.asyncio
@respx.mock
async def test_http_error_is_propagated():
    route = respx.get(host="signals.test", path="/api/glucose/readings").mock(
        return_value=httpx.Response(503, text="down")
    )
    client = SignalStoreClient(BASE_URL, "token")

    with pytest.raises(httpx.HTTPStatusError):
        await client.load_history("p1", as_of=AS_OF)

    assert route.called


def test_missing_configuration_raises(monkeypatch):
    monkeypatch.setattr(signal_client, "SIGNAL_STORE_URL", None)
    monkeypatch.setattr(signal_client, "SIGNAL_STORE_TOKEN", None)

    with pytest.raises(ValueError):
        SignalStoreClient()
