from visitflow.models.user import User, UserRole
from visitflow.models.location import Location
from visitflow.models.time_slot import TimeSlot
from visitflow.models.occupancy import OccupancyLog
from visitflow.models.booking import TimeSlotBooking, BookingStatus
from visitflow.models.invitation import (
    Invitation,
    InvitationStatus,
    InvitationType,
    InvitationEvent,
    InvitationEventTypes,
)
from visitflow.models.approval import InvitationApproval, ApprovalDecision
from visitflow.models.alert_escalation import (
    AlertEscalation,
    NotificationAlertType,
    AlertPriority,
    EscalationAction,
)

__all__ = [
    "User",
    "UserRole",
    "Location",
    "TimeSlot",
    "OccupancyLog",
    "TimeSlotBooking",
    "BookingStatus",
    "Invitation",
    "InvitationStatus",
    "InvitationType",
    "InvitationEvent",
    "InvitationEventTypes",
    "InvitationApproval",
    "ApprovalDecision",
    "AlertEscalation",
    "NotificationAlertType",
    "AlertPriority",
    "EscalationAction",
]
