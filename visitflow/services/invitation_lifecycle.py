"""
Invitation lifecycle.
Owns every status change of an Invitation together with its side effects: capacity holds on the
occupancy row, the mirrored slot booking, the QR reference and the event trail.

Methods load, validate and mutate inside the caller's transaction and never commit; routers run
them through run_with_retry so a version conflict re-runs the whole transition.
Capacity hold: Approved holds `expected_visitor_count` as reserved on the occupancy row recorded
at approval; Active holds it as current. Reject, Cancel and Expire release whatever is held.
"""
from datetime import date, datetime, time
from typing import List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from visitflow.core.config import settings
from visitflow.core.errors import (
    CapacityUnavailableError,
    ConcurrencyConflictError,
    IllegalTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from visitflow.models.booking import TimeSlotBooking
from visitflow.models.invitation import (
    Invitation,
    InvitationEvent,
    InvitationEventTypes,
    InvitationStatus,
)
from visitflow.schemas.capacity import CapacityResult
from visitflow.schemas.invitation import InvitationCreate, InvitationUpdate
from visitflow.services.approval_workflow import ApprovalWorkflow
from visitflow.services.booking import TimeSlotBookingService
from visitflow.services.capacity import CapacityValidator
from visitflow.services.events import record_event
from visitflow.services.invitation_numbers import invitation_numbers
from visitflow.services.qr_service import generate_qr_reference, is_qr_reference

logger = logging.getLogger(__name__)

# Fields whose change requires a fresh capacity check
CAPACITY_FIELDS = {
    "scheduled_start_time",
    "scheduled_end_time",
    "expected_visitor_count",
    "location_id",
    "time_slot_id",
    "is_vip",
}


class InvitationLifecycle:
    def __init__(self, db: Session):
        self.db = db
        self.validator = CapacityValidator(db)
        self.tracker = self.validator.tracker
        self.bookings = TimeSlotBookingService(db)
        self.workflow = ApprovalWorkflow(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_invitation(self, invitation_id: int, lock: bool = False) -> Invitation:
        query = self.db.query(Invitation).filter(
            Invitation.id == invitation_id,
            Invitation.is_deleted.is_(False)
        )
        if lock:
            query = query.with_for_update()
        invitation = query.first()
        if invitation is None:
            raise NotFoundError(f"Invitation {invitation_id} not found")
        return invitation

    def find_by_reference(self, reference: str, lock: bool = False) -> Invitation:
        """Resolve an invitation id, invitation number or QR reference."""
        reference = reference.strip()
        query = self.db.query(Invitation).filter(Invitation.is_deleted.is_(False))
        if reference.isdigit():
            query = query.filter(Invitation.id == int(reference))
        elif is_qr_reference(reference):
            query = query.filter(Invitation.qr_code == reference)
        else:
            query = query.filter(Invitation.invitation_number == reference)
        if lock:
            query = query.with_for_update()

        invitation = query.first()
        if invitation is None:
            raise NotFoundError(f"No invitation matches reference '{reference}'")
        return invitation

    def list_invitations(
        self,
        status: Optional[InvitationStatus] = None,
        host_id: Optional[int] = None,
        location_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[int, List[Invitation]]:
        query = self.db.query(Invitation).filter(Invitation.is_deleted.is_(False))
        if status is not None:
            query = query.filter(Invitation.status == status)
        if host_id is not None:
            query = query.filter(Invitation.host_id == host_id)
        if location_id is not None:
            query = query.filter(Invitation.location_id == location_id)
        if date_from is not None:
            query = query.filter(Invitation.scheduled_start_time >= datetime.combine(date_from, time.min))
        if date_to is not None:
            query = query.filter(Invitation.scheduled_start_time <= datetime.combine(date_to, time.max))

        total = query.count()
        invitations = query.order_by(Invitation.scheduled_start_time.desc(), Invitation.id.desc()) \
            .offset((page - 1) * page_size).limit(page_size).all()
        return total, invitations

    def events(self, invitation_id: int) -> List[InvitationEvent]:
        self.get_invitation(invitation_id)
        return self.db.query(InvitationEvent).filter(
            InvitationEvent.invitation_id == invitation_id
        ).order_by(InvitationEvent.event_timestamp, InvitationEvent.id).all()

    # ------------------------------------------------------------------
    # Creation and editing
    # ------------------------------------------------------------------

    def _new_invitation_number(self) -> str:
        for attempt in range(settings.invitation_number_max_attempts):
            number = invitation_numbers.next_number()
            taken = self.db.query(Invitation.id).filter(Invitation.invitation_number == number).first()
            if taken is None:
                return number
            logger.warning(f"Invitation number {number} already in use (attempt {attempt + 1})")
        raise ConcurrencyConflictError("Could not allocate a unique invitation number")

    def _check_capacity(self, invitation: Invitation, exclude_self: bool) -> CapacityResult:
        result = self.validator.validate(
            invitation.scheduled_start_time,
            expected_visitors=invitation.expected_visitor_count,
            location_id=invitation.location_id,
            time_slot_id=invitation.time_slot_id,
            is_vip_request=invitation.is_vip,
            exclude_invitation_id=invitation.id if exclude_self else None,
            end_time=invitation.scheduled_end_time,
            lock=exclude_self,
        )
        if not result.is_admitted:
            raise CapacityUnavailableError(result)
        return result

    def create(
        self,
        data: InvitationCreate,
        host_id: int,
        now: Optional[datetime] = None,
    ) -> Tuple[Invitation, CapacityResult]:
        """
        Create a Draft invitation after validating it and checking capacity.

        Raises:
            ValidationFailedError: The invitation itself is malformed
            CapacityUnavailableError: The visit does not fit
        """
        invitation = Invitation(
            host_id=host_id,
            status=InvitationStatus.DRAFT,
            **data.model_dump(),
        )
        errors = invitation.validate_invitation(now)
        if errors:
            raise ValidationFailedError(errors)

        result = self._check_capacity(invitation, exclude_self=False)

        invitation.invitation_number = self._new_invitation_number()
        invitation.set_created_by(host_id)
        self.db.add(invitation)
        self.db.flush()

        record_event(invitation, InvitationEventTypes.CREATED,
                     f"Invitation '{invitation.subject}' created", host_id,
                     {"expected_visitor_count": invitation.expected_visitor_count,
                      "occupancy_log_id": result.occupancy_log_id})
        logger.info(f"Invitation created by {host_id}: {invitation.get_summary()}")
        return invitation, result

    def update(
        self,
        invitation_id: int,
        data: InvitationUpdate,
        actor_id: int,
        now: Optional[datetime] = None,
    ) -> Tuple[Invitation, Optional[CapacityResult]]:
        invitation = self.get_invitation(invitation_id, lock=True)
        if not invitation.can_be_modified:
            raise IllegalTransitionError(
                f"Invitation {invitation.invitation_number} can only be modified while draft or submitted.",
                invitation.status,
            )

        changes = {}
        for field, value in data.model_dump(exclude_unset=True).items():
            old = getattr(invitation, field)
            if old != value:
                changes[field] = [old, value]
                setattr(invitation, field, value)

        if not changes:
            return invitation, None

        errors = invitation.validate_invitation(now)
        if errors:
            raise ValidationFailedError(errors)

        result = None
        if CAPACITY_FIELDS & changes.keys():
            result = self._check_capacity(invitation, exclude_self=True)

        invitation.touch(actor_id)
        record_event(invitation, InvitationEventTypes.MODIFIED,
                     f"Invitation modified: {', '.join(sorted(changes))}", actor_id, changes)
        return invitation, result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(
        self,
        invitation_id: int,
        actor_id: int,
        approver_ids: Optional[List[int]] = None,
        now: Optional[datetime] = None,
    ) -> Invitation:
        invitation = self.get_invitation(invitation_id, lock=True)
        invitation.ensure_can("submit", "Only draft invitations can be submitted.")

        errors = invitation.validate_invitation(now)
        if errors:
            raise ValidationFailedError(errors)

        invitation.submit(actor_id)
        if approver_ids:
            self.workflow.configure(invitation, approver_ids, actor_id)

        record_event(invitation, InvitationEventTypes.SUBMITTED,
                     "Invitation submitted for approval", actor_id,
                     {"approver_ids": approver_ids} if approver_ids else None)
        return invitation

    def approve(self, invitation_id: int, actor_id: int, comments: Optional[str] = None) -> Invitation:
        """
        Approve after re-validating capacity and reserve the visit on its occupancy row.

        Raises:
            IllegalTransitionError: Not approvable from the current status
            CapacityUnavailableError: The visit no longer fits
        """
        invitation = self.get_invitation(invitation_id, lock=True)
        invitation.ensure_can("approve", "This invitation cannot be approved in its current state.")

        result = self._check_capacity(invitation, exclude_self=True)
        self._reserve_hold(invitation, result)

        invitation.approve(actor_id, comments)
        record_event(invitation, InvitationEventTypes.APPROVED,
                     "Invitation approved", actor_id,
                     {"comments": comments, "occupancy_log_id": result.occupancy_log_id,
                      "vip_override": result.vip_override})

        if not invitation.qr_code:
            invitation.update_qr_code(generate_qr_reference(invitation.invitation_number))
            record_event(invitation, InvitationEventTypes.QR_CODE_GENERATED,
                         "QR code generated", actor_id, {"qr_code": invitation.qr_code})

        if result.time_slot_id is not None:
            self.bookings.record_for_invitation(invitation, result.time_slot_id, actor_id)
        return invitation

    def reject(self, invitation_id: int, actor_id: int, reason: Optional[str] = None) -> Invitation:
        # Accepted from every status
        invitation = self.get_invitation(invitation_id, lock=True)
        self._release_hold(invitation)
        self.bookings.close_for_invitation(invitation, actor_id, reason=reason or "Invitation rejected")
        invitation.reject(actor_id, reason)
        record_event(invitation, InvitationEventTypes.REJECTED,
                     "Invitation rejected", actor_id, {"reason": reason})
        return invitation

    def check_in(self, reference: str, actor_id: int, now: Optional[datetime] = None) -> Invitation:
        invitation = self.find_by_reference(reference, lock=True)
        invitation.ensure_can("check_in", "Only approved invitations can be checked in.")
        if invitation.is_expired(now):
            raise IllegalTransitionError(
                f"Invitation {invitation.invitation_number} ended at {invitation.scheduled_end_time}.",
                invitation.status,
            )

        if invitation.occupancy_log_id is not None:
            log = self.tracker.get_log(invitation.occupancy_log_id, lock=True)
            self.tracker.check_in(log, invitation.expected_visitor_count)

        invitation.check_in(actor_id)
        record_event(invitation, InvitationEventTypes.CHECKED_IN,
                     "Visitor checked in", actor_id, {"reference": reference})
        return invitation

    def check_out(self, invitation_id: int, actor_id: int) -> Invitation:
        invitation = self.get_invitation(invitation_id, lock=True)
        invitation.ensure_can("check_out", "Only active invitations can be checked out.")

        if invitation.occupancy_log_id is not None:
            log = self.tracker.get_log(invitation.occupancy_log_id, lock=True)
            self.tracker.check_out(log, invitation.expected_visitor_count)

        self.bookings.close_for_invitation(invitation, actor_id, completed=True)
        invitation.check_out(actor_id)
        record_event(invitation, InvitationEventTypes.CHECKED_OUT, "Visitor checked out", actor_id)
        return invitation

    def cancel(self, invitation_id: int, actor_id: int, reason: Optional[str] = None) -> Invitation:
        invitation = self.get_invitation(invitation_id, lock=True)
        invitation.ensure_can("cancel", "This invitation cannot be cancelled.")

        self._release_hold(invitation)
        self.bookings.close_for_invitation(invitation, actor_id, reason=reason or "Invitation cancelled")
        invitation.cancel(actor_id)
        record_event(invitation, InvitationEventTypes.CANCELLED,
                     "Invitation cancelled", actor_id, {"reason": reason})
        return invitation

    def expire_if_due(
        self,
        invitation: Invitation,
        actor_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Apply Expire when the invitation is past its end; returns whether it expired."""
        if not invitation.is_expired(now):
            return False

        self._release_hold(invitation)
        self.bookings.close_for_invitation(invitation, actor_id, reason="Invitation expired")
        invitation.expire(actor_id, now)
        record_event(invitation, InvitationEventTypes.EXPIRED,
                     f"Invitation expired after {invitation.scheduled_end_time:%Y-%m-%d %H:%M}", actor_id)
        return True

    def read(self, invitation_id: int, actor_id: Optional[int] = None, now: Optional[datetime] = None) -> Invitation:
        """Load for display, expiring it first when due."""
        invitation = self.get_invitation(invitation_id)
        if invitation.is_expired(now):
            invitation = self.get_invitation(invitation_id, lock=True)
            self.expire_if_due(invitation, actor_id, now)
        return invitation

    def delete(self, invitation_id: int, actor_id: int, hard: bool = False) -> None:
        """
        Soft delete a cancelled invitation; hard delete removes any invitation with its trail.
        """
        invitation = self.get_invitation(invitation_id, lock=True)
        if hard:
            self._release_hold(invitation)
            for booking in self.db.query(TimeSlotBooking).filter(TimeSlotBooking.invitation_id == invitation.id).all():
                self.db.delete(booking)
            self.db.flush()
            self.db.delete(invitation)
            logger.warning(f"Invitation {invitation.invitation_number} permanently deleted by {actor_id}")
            return

        if invitation.status != InvitationStatus.CANCELLED:
            raise IllegalTransitionError(
                f"Only cancelled invitations can be deleted (invitation {invitation.invitation_number} "
                f"is {invitation.status.value}).",
                invitation.status,
            )
        invitation.soft_delete(actor_id)
        record_event(invitation, InvitationEventTypes.DELETED, "Invitation deleted", actor_id)

    # ------------------------------------------------------------------
    # Capacity hold
    # ------------------------------------------------------------------

    def _reserve_hold(self, invitation: Invitation, result: CapacityResult) -> None:
        log = self.tracker.get_log(result.occupancy_log_id, lock=True)
        if invitation.has_capacity_conflict(result.current_occupancy, result.max_capacity):
            logger.warning(
                f"Invitation {invitation.invitation_number} admitted over capacity on log {log.id} "
                f"(VIP override: {result.vip_override})"
            )
        self.tracker.reserve(log, invitation.expected_visitor_count)
        invitation.occupancy_log_id = log.id

    def _release_hold(self, invitation: Invitation) -> None:
        if not invitation.holds_capacity:
            return
        log = self.tracker.get_log(invitation.occupancy_log_id, lock=True)
        if invitation.status == InvitationStatus.APPROVED:
            self.tracker.release_reservation(log, invitation.expected_visitor_count)
        else:
            self.tracker.check_out(log, invitation.expected_visitor_count)
        logger.info(f"Released capacity held by invitation {invitation.invitation_number} on log {log.id}")
