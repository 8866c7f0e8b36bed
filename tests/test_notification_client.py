from pathlib import Path
import sys
import json
from datetime import datetime, timezone

import httpx
import pytest
import respx

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import api_clients.notification_client as notification_client
from api_clients.notification_client import FamilyNotificationClient, build_alert_request
from risk_alerts.models import EmergencyBroadcast, EmergencyType, FindingKind, RiskAlert, Severity

WEBHOOK_URL = "https://family.test/notify"
NOW = datetime(2024, 12, 1, 3, 0, tzinfo=timezone.utc)


def _alert(kind: FindingKind = FindingKind.TREND_HYPO, severity: Severity = Severity.HIGH) -> RiskAlert:
    return RiskAlert(
        id=f"{kind.value}_abc",
        title="Hypoglycemia risk",
        message="Glucose is 95 mg/dL and falling.",
        severity=severity,
        created_at=NOW,
        finding_kind=kind,
        observed_at=NOW,
        timeframe_minutes=11,
        confidence=85.0,
        metrics={"latest_glucose": 95.0},
    )


def test_build_alert_request_maps_kind_to_alert_type():
    assert build_alert_request("p1", _alert()).alertType.value == "hypoglycemia_risk"
    assert build_alert_request("p1", _alert(FindingKind.TREND_HYPER)).alertType.value == "hyperglycemia_risk"


def test_build_alert_request_accepts_low_severity_alerts():
    request = build_alert_request("p1", _alert(FindingKind.MISSED_CORRELATION, Severity.LOW))

    assert request.alertType.value == "medication_reminder"
    assert request.severity == "low"


@pytest.mark.asyncio
@respx.mock
async def test_notify_alert_posts_payload():
    route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(202))
    client = FamilyNotificationClient(WEBHOOK_URL)

    await client.notify_alert("p1", _alert())

    assert route.called
    body = json.loads(route.calls.last.request.content)
    assert body["patientId"] == "p1"
    assert body["alertType"] == "hypoglycemia_risk"
    assert body["severity"] == "high"
    assert body["glucoseValue"] == 95.0
    assert body["predictedTime"] == 11


@pytest.mark.asyncio
@respx.mock
async def test_notify_emergency_posts_payload():
    route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(200))
    client = FamilyNotificationClient(WEBHOOK_URL)
    broadcast = EmergencyBroadcast(
        timestamp=NOW,
        type=EmergencyType.SEVERE_HYPOGLYCEMIA,
        message="EMERGENCY",
        glucose_value=41.0,
        patient_id="p1",
    )

    await client.notify_emergency(broadcast)

    body = json.loads(route.calls.last.request.content)
    assert body["alertType"] == "emergency"
    assert body["severity"] == "critical"
    assert body["sentAt"] == NOW.isoformat()


@pytest.mark.asyncio
@respx.mock
async def test_notify_raises_for_http_error():
    route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(500, text="boom"))
    client = FamilyNotificationClient(WEBHOOK_URL)

    with pytest.raises(httpx.HTTPStatusError):
        await client.notify_alert("p1", _alert())

    assert route.called


@pytest.mark.asyncio
async def test_emergency_without_patient_raises():
    client = FamilyNotificationClient(WEBHOOK_URL)
    broadcast = EmergencyBroadcast(timestamp=NOW, type=EmergencyType.NO_RESPONSE, message="EMERGENCY")

    with pytest.raises(ValueError):
        await client.notify_emergency(broadcast)


def test_missing_webhook_url_raises(monkeypatch):
    monkeypatch.setattr(notification_client, "FAMILY_WEBHOOK_URL", None)

    with pytest.raises(ValueError):
        FamilyNotificationClient()
