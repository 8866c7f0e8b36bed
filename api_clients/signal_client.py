"""
Signal store API client: loads glucose readings, meals, activities and insulin doses.
"""
import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from models.signal_models import (
    ActivityPayload,
    GlucoseReadingPayload,
    InsulinDosePayload,
    MealPayload,
    SignalHistoryRequest,
    SignalListResponse,
)

from risk_alerts.models import (
    ActivityEntry,
    GlucoseReading,
    InsulinDose,
    MealEntry,
    ReadingContext,
    SignalHistory,
)

# get signal store environment variables
SIGNAL_STORE_URL = os.getenv("RISK_ALERTS_SIGNAL_STORE_URL")
SIGNAL_STORE_TOKEN = os.getenv("RISK_ALERTS_SIGNAL_STORE_TOKEN")

GLUCOSE_READINGS_ENDPOINT = "/glucose/readings"
MEALS_ENDPOINT = "/meals"
ACTIVITIES_ENDPOINT = "/activities"
INSULIN_DOSES_ENDPOINT = "/insulin/doses"

DEFAULT_LOOKBACK = timedelta(days=7)

# labels used by older app versions
CONTEXT_ALIASES = {
    "a_jeun": ReadingContext.FASTING,
    "avant_repas": ReadingContext.BEFORE_MEAL,
    "apres_repas": ReadingContext.AFTER_MEAL,
    "coucher": ReadingContext.BEDTIME,
    "nuit": ReadingContext.NIGHT,
    "aleatoire": ReadingContext.RANDOM,
    "exercice": ReadingContext.EXERCISE,
}

PayloadT = TypeVar("PayloadT", bound=BaseModel)
RecordT = TypeVar("RecordT")


class SignalStoreClient:
    """
    Async client for the signal store. Satisfies the ``SignalStore`` protocol.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        session_token: Optional[str] = None,
        *,
        lookback: timedelta = DEFAULT_LOOKBACK,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url or SIGNAL_STORE_URL
        self.session_token = session_token or SIGNAL_STORE_TOKEN
        if not self.base_url or not self.session_token:
            raise ValueError("###### [Signal store] base URL/session token not set")
        self.lookback = lookback
        self._client = client

        self.headers = {
            "content-type": "application/json",
            "x-session-token": self.session_token
        }

    async def _make_request(self, method: str, endpoint: str, params=None, json_data=None):
        url = f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        timeout = httpx.Timeout(30.0, connect=10.0)

        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(follow_redirects=True, timeout=timeout)
            close_client = True

        try:
            response = await client.request(
                method=method.upper(),
                url=url,
                params=params,
                json=json_data,
                headers=self.headers
            )
            logging.info(f"Request {url} completed with status: {response.status_code}")
            response.raise_for_status()
            return response.json() if response.text else {}
        except httpx.TimeoutException as e:
            logging.error(f"Timeout error calling signal store {method} {url}: {e}")
            raise
        except httpx.RequestError as e:
            logging.error(f"Request error calling signal store {method} {url}: {e}")
            raise
        except httpx.HTTPStatusError as e:
            logging.error(f"HTTP error calling signal store {method} {url}: {e}")
            logging.error(f"Response status: {e.response.status_code}")
            logging.error(f"Response text: {e.response.text}")
            raise
        finally:
            if close_client:
                await client.aclose()

    async def _fetch_list(self, endpoint: str, request: SignalHistoryRequest) -> list[dict]:
        data = await self._make_request("GET", endpoint, params=request.model_dump(exclude_none=True))
        if not isinstance(data, dict):
            raise RuntimeError(f"Unexpected non-JSON response from {endpoint}: {data!r}")
        response = SignalListResponse(**data)
        if response.code not in (None, 0, 200):
            logging.error(f"Signal store list failed: code={response.code}, endpoint={endpoint}, body={data!r}")
            raise RuntimeError(f"Signal store API error (code={response.code})")
        return response.data or []

    async def get_glucose_readings(self, request: SignalHistoryRequest) -> list[GlucoseReading]:
        records = await self._fetch_list(GLUCOSE_READINGS_ENDPOINT, request)
        return _convert_all(records, GlucoseReadingPayload, convert_reading_payload, "glucose reading")

    async def get_meals(self, request: SignalHistoryRequest) -> list[MealEntry]:
        records = await self._fetch_list(MEALS_ENDPOINT, request)
        return _convert_all(records, MealPayload, convert_meal_payload, "meal")

    async def get_activities(self, request: SignalHistoryRequest) -> list[ActivityEntry]:
        records = await self._fetch_list(ACTIVITIES_ENDPOINT, request)
        return _convert_all(records, ActivityPayload, convert_activity_payload, "activity")

    async def get_insulin_doses(self, request: SignalHistoryRequest) -> list[InsulinDose]:
        records = await self._fetch_list(INSULIN_DOSES_ENDPOINT, request)
        return _convert_all(records, InsulinDosePayload, convert_insulin_payload, "insulin dose")

    async def load_history(self, patient_id: str, as_of: Optional[datetime] = None) -> SignalHistory:
        """Fetch the lookback window for a patient and build a snapshot."""
        end = as_of or datetime.now(timezone.utc)
        request = SignalHistoryRequest(
            patientId=patient_id,
            startTime=(end - self.lookback).isoformat(),
            endTime=end.isoformat(),
        )
        logging.info(f"Loading signal history for patient {patient_id}")
        readings = await self.get_glucose_readings(request)
        meals = await self.get_meals(request)
        activities = await self.get_activities(request)
        doses = await self.get_insulin_doses(request)
        return SignalHistory(
            readings=tuple(readings),
            meals=tuple(meals),
            activities=tuple(activities),
            insulin_doses=tuple(doses),
            as_of=as_of,
        )


def _convert_all(
    records: list[dict],
    model: type[PayloadT],
    convert: Callable[[PayloadT], Optional[RecordT]],
    label: str,
) -> list[RecordT]:
    converted: list[RecordT] = []
    for raw in records:
        try:
            payload = model(**raw) if isinstance(raw, dict) else None
        except ValidationError as e:
            logging.warning(f"Skipping malformed {label}: {e.errors()!r}")
            continue
        record = convert(payload) if payload is not None else None
        if record is None:
            logging.warning(f"Skipping incomplete {label}: {raw!r}")
            continue
        converted.append(record)
    return converted


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_context(value: Optional[str]) -> Optional[ReadingContext]:
    if not value:
        return None
    key = value.strip().lower()
    if key in CONTEXT_ALIASES:
        return CONTEXT_ALIASES[key]
    try:
        return ReadingContext(key)
    except ValueError:
        logging.warning(f"Unknown reading context {value!r}; treating as unspecified")
        return None


def convert_reading_payload(payload: GlucoseReadingPayload) -> Optional[GlucoseReading]:
    timestamp = _parse_timestamp(payload.timestamp)
    if payload.value is None or timestamp is None:
        return None
    return GlucoseReading(
        value=float(payload.value),
        timestamp=timestamp,
        context=_parse_context(payload.context),
        notes=payload.notes,
    )


def convert_meal_payload(payload: MealPayload) -> Optional[MealEntry]:
    timestamp = _parse_timestamp(payload.timestamp)
    if payload.carbsGrams is None or payload.carbsGrams < 0 or timestamp is None:
        return None
    return MealEntry(name=payload.name or "", carbs_grams=float(payload.carbsGrams), timestamp=timestamp)


def convert_activity_payload(payload: ActivityPayload) -> Optional[ActivityEntry]:
    timestamp = _parse_timestamp(payload.timestamp)
    if payload.durationMinutes is None or payload.durationMinutes < 0 or timestamp is None:
        return None
    return ActivityEntry(
        type=payload.type or "",
        duration_minutes=float(payload.durationMinutes),
        intensity=(payload.intensity or "moderate").lower(),
        timestamp=timestamp,
    )


def convert_insulin_payload(payload: InsulinDosePayload) -> Optional[InsulinDose]:
    timestamp = _parse_timestamp(payload.timestamp)
    if payload.units is None or payload.units < 0 or timestamp is None:
        return None
    return InsulinDose(type=(payload.type or "").lower(), units=float(payload.units), timestamp=timestamp)
