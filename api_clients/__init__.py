"""API clients and helpers for external services."""

from .notification_client import (
    FamilyNotificationClient,
    build_alert_request,
    build_emergency_request,
)
from .signal_client import (
    SignalStoreClient,
    convert_activity_payload,
    convert_insulin_payload,
    convert_meal_payload,
    convert_reading_payload,
)

__all__ = [
    "FamilyNotificationClient",
    "SignalStoreClient",
    "build_alert_request",
    "build_emergency_request",
    "convert_activity_payload",
    "convert_insulin_payload",
    "convert_meal_payload",
    "convert_reading_payload",
]
