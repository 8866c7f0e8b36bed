"""
Signal store and notification API models.
"""
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict


class FamilyAlertTypeEnum(str, Enum):
    HYPOGLYCEMIA_RISK = "hypoglycemia_risk"
    HYPERGLYCEMIA_RISK = "hyperglycemia_risk"
    MEDICATION_REMINDER = "medication_reminder"
    EMERGENCY = "emergency"


class GlucoseReadingPayload(BaseModel):
    """
    Model for a glucose reading returned by the signal store.
    """
    model_config = ConfigDict(extra="ignore")

    value: Optional[float] = Field(default=None, description="Glucose value in mg/dL")
    timestamp: Optional[str] = Field(default=None, description="Measurement time (ISO 8601)")
    context: Optional[str] = Field(default=None, description="Measurement context")
    notes: Optional[str] = Field(default=None, description="Free-text notes")


class MealPayload(BaseModel):
    """
    Model for a logged meal.
    """
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(default=None, description="Meal name")
    carbsGrams: Optional[float] = Field(default=None, description="Carbohydrates in grams")
    timestamp: Optional[str] = Field(default=None, description="Meal time (ISO 8601)")


class ActivityPayload(BaseModel):
    """
    Model for a logged physical activity.
    """
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = Field(default=None, description="Activity type")
    durationMinutes: Optional[float] = Field(default=None, description="Duration in minutes")
    intensity: Optional[str] = Field(default=None, description="low, moderate or high")
    timestamp: Optional[str] = Field(default=None, description="Start time (ISO 8601)")


class InsulinDosePayload(BaseModel):
    """
    Model for a logged insulin injection.
    """
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = Field(default=None, description="Insulin type (rapid, long, mixed)")
    units: Optional[float] = Field(default=None, description="Units injected")
    timestamp: Optional[str] = Field(default=None, description="Injection time (ISO 8601)")


class SignalListResponse(BaseModel):
    """
    Envelope returned by every signal store list endpoint.
    """
    model_config = ConfigDict(extra="ignore")

    code: Optional[int] = Field(default=None, description="Status code")
    data: Optional[List[dict]] = Field(default=None, description="Raw records")


class ProfileParameters(BaseModel):
    """
    Stored per-patient model parameters. Missing values fall back to defaults.
    """
    model_config = ConfigDict(extra="ignore")

    age: Optional[int] = Field(default=None, ge=0, description="Age in years")
    diabetes_type: Optional[int] = Field(default=None, ge=1, le=2, description="Diabetes type")
    weight_kg: Optional[float] = Field(default=None, gt=0, description="Weight in kg")
    insulin_sensitivity_factor: Optional[float] = Field(default=None, gt=0, description="mg/dL per unit")
    carb_ratio: Optional[float] = Field(default=None, gt=0, description="Grams of carbs per unit")
    target_glucose: Optional[float] = Field(default=None, gt=0, description="Target glucose in mg/dL")


# Request models
class SignalHistoryRequest(BaseModel):
    """
    Request model for signal store list endpoints.
    """
    patientId: str = Field(description="Patient ID")
    startTime: Optional[str] = Field(default=None, description="Inclusive start (ISO 8601)")
    endTime: Optional[str] = Field(default=None, description="Inclusive end (ISO 8601)")


class FamilyAlertRequest(BaseModel):
    """
    Request model for the caregiver notification webhook.
    """
    patientId: str = Field(description="Patient ID")
    alertType: FamilyAlertTypeEnum = Field(description="Alert type")
    severity: str = Field(description="low, medium, high or critical")
    message: str = Field(description="Human-readable message")
    glucoseValue: Optional[float] = Field(default=None, description="Current glucose in mg/dL")
    predictedTime: Optional[int] = Field(default=None, description="Minutes until the predicted event")
    riskScore: Optional[float] = Field(default=None, description="Confidence 0-100")
    sentAt: str = Field(description="Send time (ISO 8601)")
