"""
AlertEscalation Model
Rule describing what happens when an alert of a given type and priority goes unacknowledged
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, Enum as SQLEnum
from visitflow.core.database import Base
from visitflow.models.mixins import SoftDeleteMixin
import enum


class NotificationAlertType(str, enum.Enum):
    VISITOR_ARRIVAL = "VISITOR_ARRIVAL"
    VIP_ARRIVAL = "VIP_ARRIVAL"
    UNKNOWN_FACE = "UNKNOWN_FACE"
    BLACKLIST_ALERT = "BLACKLIST_ALERT"
    VISITOR_CHECKED_IN = "VISITOR_CHECKED_IN"
    VISITOR_CHECKED_OUT = "VISITOR_CHECKED_OUT"
    INVITATION_PENDING_APPROVAL = "INVITATION_PENDING_APPROVAL"
    INVITATION_APPROVED = "INVITATION_APPROVED"
    INVITATION_REJECTED = "INVITATION_REJECTED"
    SYSTEM_ALERT = "SYSTEM_ALERT"
    FR_SYSTEM_OFFLINE = "FR_SYSTEM_OFFLINE"
    CAPACITY_ALERT = "CAPACITY_ALERT"
    EMERGENCY_ALERT = "EMERGENCY_ALERT"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"
    VISITOR_OVERSTAY = "VISITOR_OVERSTAY"
    BADGE_PRINTING_ERROR = "BADGE_PRINTING_ERROR"
    CUSTOM = "CUSTOM"


class AlertPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    EMERGENCY = "EMERGENCY"


class EscalationAction(str, enum.Enum):
    ESCALATE_TO_ROLE = "ESCALATE_TO_ROLE"
    ESCALATE_TO_USER = "ESCALATE_TO_USER"
    SEND_EMAIL = "SEND_EMAIL"
    SEND_SMS = "SEND_SMS"
    CREATE_HIGH_PRIORITY_ALERT = "CREATE_HIGH_PRIORITY_ALERT"
    LOG_CRITICAL_EVENT = "LOG_CRITICAL_EVENT"


class AlertEscalation(SoftDeleteMixin, Base):
    __tablename__ = "vf_alert_escalations"

    id = Column(Integer, primary_key=True, index=True)
    rule_name = Column(String(100), nullable=False)

    # Match criteria; NULL role/location applies to all
    alert_type = Column(SQLEnum(NotificationAlertType), nullable=False, index=True)
    alert_priority = Column(SQLEnum(AlertPriority), nullable=False, index=True)
    target_role = Column(String(50), nullable=True)
    location_id = Column(Integer, ForeignKey("vf_locations.id"), nullable=True)

    # What to do, and when
    escalation_delay_minutes = Column(Integer, default=5, nullable=False)
    action = Column(SQLEnum(EscalationAction), nullable=False)
    escalation_target_role = Column(String(50), nullable=True)
    escalation_target_user_id = Column(Integer, ForeignKey("vf_users.id"), nullable=True)
    escalation_emails = Column(String(500), nullable=True)  # semicolon separated
    escalation_phones = Column(String(200), nullable=True)
    max_attempts = Column(Integer, default=3, nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    rule_priority = Column(Integer, default=10, nullable=False)  # lower runs first
    configuration = Column(Text, nullable=True)  # JSON string

    def matches_alert(self, alert) -> bool:
        """
        Check whether this rule applies to an alert.

        Args:
            alert: Any object exposing type, priority, target_role and target_location_id

        Returns:
            True if the rule is live and every criterion it sets matches
        """
        if not self.is_enabled or self.is_deleted:
            return False
        if self.alert_type != alert.type:
            return False
        if self.alert_priority != alert.priority:
            return False
        if self.target_role and self.target_role != alert.target_role:
            return False
        if self.location_id is not None and self.location_id != alert.target_location_id:
            return False
        return True

    def __repr__(self):
        return f"<AlertEscalation(id={self.id}, rule='{self.rule_name}', {self.alert_type}/{self.alert_priority})>"
