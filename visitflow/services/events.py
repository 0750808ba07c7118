import json
import logging
from typing import Any, Optional

from visitflow.models.invitation import Invitation, InvitationEvent
from visitflow.models.mixins import utcnow

logger = logging.getLogger(__name__)


def record_event(
    invitation: Invitation,
    event_type: str,
    description: str,
    triggered_by: Optional[int],
    data: Optional[dict[str, Any]] = None,
) -> InvitationEvent:
    """Append an event to the invitation's timeline; persisted with the surrounding transaction."""
    event = InvitationEvent(
        event_type=event_type,
        description=description,
        triggered_by=triggered_by,
        event_data=json.dumps(data, default=str) if data else None,
        event_timestamp=utcnow(),
    )
    event.set_created_by(triggered_by)
    invitation.events.append(event)
    logger.info(f"Invitation {invitation.invitation_number}: {event_type} by {triggered_by}")
    return event
