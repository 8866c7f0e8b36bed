"""Predictive glucose risk analysis and alert lifecycle."""

from .analyzer import RiskAnalyzer
from .emergency import EmergencyEscalation, InMemoryEmergencyLog, JsonFileEmergencyLog
from .lifecycle import AlertLifecycleManager
from .models import (
    ActivityEntry,
    EmergencyBroadcast,
    EmergencyType,
    FindingKind,
    GlucoseReading,
    InsulinDose,
    MealEntry,
    NotificationRecord,
    PatientProfile,
    ReadingContext,
    RiskAlert,
    RiskFinding,
    Severity,
    SignalHistory,
)
from .notifications import PriorityNotificationQueue, to_notification
from .profile import PatientProfileProvider
from .registry import register_rule, registry
from .session import AnalysisOutcome, AnalysisScheduler, AnalysisSession, AnalysisStatus
from .signal_store import CallableSignalStore, InMemorySignalStore, SignalStore

__all__ = [
    "ActivityEntry",
    "AlertLifecycleManager",
    "AnalysisOutcome",
    "AnalysisScheduler",
    "AnalysisSession",
    "AnalysisStatus",
    "CallableSignalStore",
    "EmergencyBroadcast",
    "EmergencyEscalation",
    "EmergencyType",
    "FindingKind",
    "GlucoseReading",
    "InMemoryEmergencyLog",
    "InMemorySignalStore",
    "InsulinDose",
    "JsonFileEmergencyLog",
    "MealEntry",
    "NotificationRecord",
    "PatientProfile",
    "PatientProfileProvider",
    "PriorityNotificationQueue",
    "ReadingContext",
    "RiskAlert",
    "RiskAnalyzer",
    "RiskFinding",
    "Severity",
    "SignalHistory",
    "SignalStore",
    "register_rule",
    "registry",
    "to_notification",
]
