"""Client helpers for posting caregiver (family) notifications to a webhook."""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

import httpx

from models.signal_models import FamilyAlertRequest, FamilyAlertTypeEnum
from risk_alerts.models import EmergencyBroadcast, EmergencyType, FindingKind, RiskAlert

FAMILY_WEBHOOK_URL = os.getenv("RISK_ALERTS_FAMILY_WEBHOOK_URL")

# AnalysisSession forwards only high and critical alerts; build_alert_request
# and notify_alert accept any alert for callers posting directly.
_ALERT_TYPES: dict[FindingKind, FamilyAlertTypeEnum] = {
    FindingKind.TREND_HYPO: FamilyAlertTypeEnum.HYPOGLYCEMIA_RISK,
    FindingKind.AGE_VIGILANCE: FamilyAlertTypeEnum.HYPOGLYCEMIA_RISK,
    FindingKind.MISSED_CORRELATION: FamilyAlertTypeEnum.MEDICATION_REMINDER,
}

_HYPO_EMERGENCIES = (EmergencyType.SEVERE_HYPOGLYCEMIA,)


def build_alert_request(patient_id: str, alert: RiskAlert, sent_at: datetime | None = None) -> FamilyAlertRequest:
    alert_type = _ALERT_TYPES.get(alert.finding_kind, FamilyAlertTypeEnum.HYPERGLYCEMIA_RISK)
    if alert.finding_kind is FindingKind.AGE_VIGILANCE and alert.metrics.get("latest_glucose", 0.0) > 150:
        alert_type = FamilyAlertTypeEnum.HYPERGLYCEMIA_RISK
    return FamilyAlertRequest(
        patientId=patient_id,
        alertType=alert_type,
        severity=alert.severity.value,
        message=f"{alert.title}: {alert.message}",
        glucoseValue=alert.metrics.get("latest_glucose"),
        predictedTime=alert.timeframe_minutes,
        riskScore=alert.confidence,
        sentAt=(sent_at or datetime.now(timezone.utc)).isoformat(),
    )


def build_emergency_request(broadcast: EmergencyBroadcast) -> FamilyAlertRequest:
    if broadcast.patient_id is None:
        raise ValueError("Emergency broadcast has no patient_id")
    return FamilyAlertRequest(
        patientId=broadcast.patient_id,
        alertType=FamilyAlertTypeEnum.EMERGENCY,
        severity=broadcast.severity.value,
        message=broadcast.message,
        glucoseValue=broadcast.glucose_value,
        predictedTime=0 if broadcast.type in _HYPO_EMERGENCIES else None,
        riskScore=100.0,
        sentAt=broadcast.timestamp.isoformat(),
    )


class FamilyNotificationClient:
    """Posts urgent alerts and emergencies to the caregiver webhook.

    Parameters
    ----------
    webhook_url:
        Fully qualified webhook URL. Defaults to ``RISK_ALERTS_FAMILY_WEBHOOK_URL``.
    client:
        Optional shared ``httpx.AsyncClient``. If not provided, a new client is
        created for each request and closed before returning.
    timeout:
        Timeout passed to ``httpx.AsyncClient`` when an internal client is created.
    extra_headers:
        Optional additional headers to include in each request.
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | httpx.Timeout = 10.0,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        self.webhook_url = webhook_url or FAMILY_WEBHOOK_URL
        if not self.webhook_url:
            raise ValueError("###### [Family notifications] webhook URL not set")
        self._client = client
        self._timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if extra_headers:
            self._headers.update(extra_headers)

    async def _post(self, request: FamilyAlertRequest) -> None:
        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_client = True

        try:
            response = await client.post(
                self.webhook_url,
                json=request.model_dump(mode="json", exclude_none=True),
                headers=self._headers,
            )
            logging.info(
                f"Family notification {request.alertType.value} for patient {request.patientId} "
                f"completed with status: {response.status_code}"
            )
            response.raise_for_status()
        finally:
            if close_client:
                await client.aclose()

    async def notify_alert(self, patient_id: str, alert: RiskAlert) -> None:
        await self._post(build_alert_request(patient_id, alert))

    async def notify_emergency(self, broadcast: EmergencyBroadcast) -> None:
        await self._post(build_emergency_request(broadcast))
