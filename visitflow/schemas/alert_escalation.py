from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime

from visitflow.models.alert_escalation import NotificationAlertType, AlertPriority, EscalationAction
from visitflow.schemas.common import to_naive_utc


class AlertEscalationBase(BaseModel):
    """Base schema for an escalation rule"""
    rule_name: str = Field(..., min_length=1, max_length=100)
    alert_type: NotificationAlertType
    alert_priority: AlertPriority
    target_role: Optional[str] = Field(None, max_length=50, description="NULL applies to all roles")
    location_id: Optional[int] = Field(None, description="NULL applies to all locations")
    escalation_delay_minutes: int = Field(default=5, ge=0)
    action: EscalationAction
    escalation_target_role: Optional[str] = Field(None, max_length=50)
    escalation_target_user_id: Optional[int] = None
    escalation_emails: Optional[str] = Field(None, max_length=500)
    escalation_phones: Optional[str] = Field(None, max_length=200)
    max_attempts: int = Field(default=3, ge=1)
    is_enabled: bool = True
    rule_priority: int = Field(default=10, ge=0, description="Lower runs first")
    configuration: Optional[str] = Field(None, description="Rule configuration as JSON string")


class AlertEscalationCreate(AlertEscalationBase):
    pass


class AlertEscalationUpdate(BaseModel):
    rule_name: Optional[str] = Field(None, min_length=1, max_length=100)
    alert_type: Optional[NotificationAlertType] = None
    alert_priority: Optional[AlertPriority] = None
    target_role: Optional[str] = Field(None, max_length=50)
    location_id: Optional[int] = None
    escalation_delay_minutes: Optional[int] = Field(None, ge=0)
    action: Optional[EscalationAction] = None
    escalation_target_role: Optional[str] = Field(None, max_length=50)
    escalation_target_user_id: Optional[int] = None
    escalation_emails: Optional[str] = Field(None, max_length=500)
    escalation_phones: Optional[str] = Field(None, max_length=200)
    max_attempts: Optional[int] = Field(None, ge=1)
    is_enabled: Optional[bool] = None
    rule_priority: Optional[int] = Field(None, ge=0)
    configuration: Optional[str] = None


class AlertEscalationResponse(AlertEscalationBase):
    id: int
    created_on: datetime
    modified_on: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationAlert(BaseModel):
    """An alert as seen by the escalation engine; alerts themselves are not stored here"""
    type: NotificationAlertType
    priority: AlertPriority
    target_role: Optional[str] = None
    target_location_id: Optional[int] = None
    invitation_id: Optional[int] = None
    created_on: datetime
    is_acknowledged: bool = False
    escalation_attempts: int = Field(default=0, ge=0)

    @field_validator("created_on")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)


class DueEscalationRequest(BaseModel):
    alert: NotificationAlert
    now: Optional[datetime] = None

    @field_validator("now")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v)
