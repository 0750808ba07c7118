from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from visitflow.core.errors import CapacityUnavailableError, IllegalTransitionError, NotFoundError, ValidationFailedError
from visitflow.models import BookingStatus, Invitation, InvitationStatus, InvitationType, Location, TimeSlotBooking
from visitflow.models.invitation import LEGAL_SOURCES
from visitflow.schemas.invitation import InvitationCreate, InvitationUpdate
from visitflow.services.booking import TimeSlotBookingService
from conftest import at

ACTOR = 7

TRANSITIONS = {
    "submit": lambda inv: inv.submit(ACTOR),
    "start_review": lambda inv: inv.start_review(ACTOR),
    "approve": lambda inv: inv.approve(ACTOR, "ok"),
    "check_in": lambda inv: inv.check_in(ACTOR),
    "check_out": lambda inv: inv.check_out(ACTOR),
    "cancel": lambda inv: inv.cancel(ACTOR),
    "expire": lambda inv: inv.expire(ACTOR, now=inv.scheduled_end_time + timedelta(minutes=1)),
}

ILLEGAL_PAIRS = [
    (status, name)
    for name in TRANSITIONS
    for status in InvitationStatus
    if status not in LEGAL_SOURCES[name]
]


def detached_invitation(status, **overrides):
    start = datetime(2030, 1, 7, 9, 30)
    values = dict(
        invitation_number="INV-20300107093000-123",
        visitor_id=1,
        host_id=1,
        subject="Site visit",
        status=status,
        type=InvitationType.SINGLE,
        scheduled_start_time=start,
        scheduled_end_time=start + timedelta(hours=1),
        expected_visitor_count=1,
    )
    values.update(overrides)
    return Invitation(**values)


class TestStateMachine:

    @pytest.mark.parametrize("status, transition", ILLEGAL_PAIRS)
    def test_illegal_transition_leaves_status_unchanged(self, status, transition):
        invitation = detached_invitation(status)
        with pytest.raises(IllegalTransitionError):
            TRANSITIONS[transition](invitation)
        assert invitation.status == status
        assert invitation.modified_by is None

    @pytest.mark.parametrize("status", list(InvitationStatus))
    def test_reject_is_accepted_from_every_status(self, status):
        invitation = detached_invitation(status)
        invitation.reject(ACTOR, "  no room  ")
        assert invitation.status == InvitationStatus.REJECTED
        assert invitation.rejected_by == ACTOR
        assert invitation.rejection_reason == "no room"

    @pytest.mark.parametrize("status", [
        InvitationStatus.SUBMITTED,
        InvitationStatus.UNDER_REVIEW,
        InvitationStatus.REJECTED,
    ])
    def test_approve_sources(self, status):
        invitation = detached_invitation(status)
        assert invitation.can_be_approved()
        invitation.approve(ACTOR)
        assert invitation.status == InvitationStatus.APPROVED
        assert invitation.approved_by == ACTOR
        assert invitation.modified_by == ACTOR

    def test_cancel_guard(self):
        assert detached_invitation(InvitationStatus.ACTIVE).can_be_cancelled()
        for status in (InvitationStatus.COMPLETED, InvitationStatus.CANCELLED, InvitationStatus.EXPIRED):
            assert not detached_invitation(status).can_be_cancelled()

    def test_is_expired_is_pure(self):
        invitation = detached_invitation(InvitationStatus.APPROVED)
        later = invitation.scheduled_end_time + timedelta(seconds=1)
        assert invitation.is_expired(later)
        assert not invitation.is_expired(invitation.scheduled_end_time)
        assert invitation.status == InvitationStatus.APPROVED
        assert not detached_invitation(InvitationStatus.SUBMITTED).is_expired(later)

    def test_capacity_conflict_and_summary(self):
        invitation = detached_invitation(InvitationStatus.SUBMITTED, expected_visitor_count=3)
        assert invitation.has_capacity_conflict(current_occupancy=8, max_capacity=10)
        assert not invitation.has_capacity_conflict(current_occupancy=7, max_capacity=10)
        assert invitation.get_summary() == "Site visit (INV-20300107093000-123) on 2030-01-07 09:30"


class TestValidation:

    def test_end_before_start(self):
        now = datetime(2030, 1, 6, 12, 0)
        invitation = detached_invitation(
            InvitationStatus.DRAFT,
            scheduled_start_time=datetime(2030, 1, 7, 10, 0),
            scheduled_end_time=datetime(2030, 1, 7, 9, 0),
        )
        assert "Scheduled end time must be after start time." in invitation.validate_invitation(now)

    def test_rules(self):
        now = datetime(2030, 1, 7, 12, 0)
        invitation = detached_invitation(
            InvitationStatus.DRAFT,
            subject=" ",
            type=InvitationType.GROUP,
            scheduled_start_time=now - timedelta(minutes=31),
            scheduled_end_time=now + timedelta(hours=24),
        )
        errors = invitation.validate_invitation(now)
        assert "Subject is required." in errors
        assert "Scheduled start time cannot be in the past." in errors
        assert "Visit duration cannot exceed 24 hours." in errors
        assert "Group invitations must have more than 1 expected visitor." in errors

    def test_start_within_tolerance_is_valid(self):
        now = datetime(2030, 1, 7, 12, 0)
        invitation = detached_invitation(
            InvitationStatus.DRAFT,
            scheduled_start_time=now - timedelta(minutes=29),
            scheduled_end_time=now + timedelta(hours=1),
        )
        assert invitation.validate_invitation(now) == []


class TestCreateAndEdit:

    def test_create_draft(self, db, lifecycle, make_invitation):
        invitation = make_invitation()
        assert invitation.status == InvitationStatus.DRAFT
        assert invitation.invitation_number.startswith("INV-")
        assert [e.event_type for e in lifecycle.events(invitation.id)] == ["Created"]

    def test_end_before_start_is_never_persisted(self, db, lifecycle, host, monday):
        data = InvitationCreate(
            visitor_id=1,
            subject="Backwards",
            scheduled_start_time=at(monday, 10, 0),
            scheduled_end_time=at(monday, 9, 0),
        )
        with pytest.raises(ValidationFailedError) as exc_info:
            lifecycle.create(data, host.id)
        assert "Scheduled end time must be after start time." in exc_info.value.errors
        db.rollback()
        assert db.query(Invitation).count() == 0

    def test_create_refused_when_full(self, db, lifecycle, admin, make_invitation):
        first = make_invitation(visitors=2)
        lifecycle.submit(first.id, admin.id)
        lifecycle.approve(first.id, admin.id)
        db.commit()

        with pytest.raises(CapacityUnavailableError) as exc_info:
            make_invitation(visitors=1)
        assert exc_info.value.result.is_admitted is False
        assert exc_info.value.result.alternative_slots

    def test_update_draft(self, db, lifecycle, host, make_invitation):
        invitation = make_invitation()
        updated, result = lifecycle.update(invitation.id, InvitationUpdate(subject="Renamed"), host.id)
        db.commit()
        assert updated.subject == "Renamed"
        assert result is None
        assert lifecycle.events(invitation.id)[-1].event_type == "Modified"

    @pytest.mark.parametrize("field", ["subject", "type", "expected_visitor_count", "requires_escort",
                                       "requires_badge", "is_vip"])
    def test_update_refuses_null_for_required_columns(self, field):
        with pytest.raises(PydanticValidationError):
            InvitationUpdate(**{field: None})

    def test_update_skips_omitted_fields(self):
        assert InvitationUpdate(is_vip=True).model_dump(exclude_unset=True) == {"is_vip": True}

    def test_update_capacity_field_rechecks(self, db, lifecycle, host, make_invitation):
        invitation = make_invitation()
        with pytest.raises(CapacityUnavailableError):
            lifecycle.update(invitation.id, InvitationUpdate(expected_visitor_count=3), host.id)

    def test_update_after_approval_is_refused(self, db, lifecycle, admin, make_invitation):
        invitation = make_invitation()
        lifecycle.submit(invitation.id, admin.id)
        lifecycle.approve(invitation.id, admin.id)
        db.commit()
        with pytest.raises(IllegalTransitionError):
            lifecycle.update(invitation.id, InvitationUpdate(subject="Too late"), admin.id)


class TestCapacityHold:

    def _approved(self, db, lifecycle, admin, make_invitation, **kwargs):
        invitation = make_invitation(**kwargs)
        lifecycle.submit(invitation.id, admin.id)
        lifecycle.approve(invitation.id, admin.id, "fine")
        db.commit()
        return invitation

    def _log(self, lifecycle, invitation):
        return lifecycle.tracker.get_log(invitation.occupancy_log_id)

    def test_full_visit(self, db, lifecycle, admin, make_invitation):
        invitation = self._approved(db, lifecycle, admin, make_invitation, visitors=2)
        log = self._log(lifecycle, invitation)
        assert (log.current_count, log.reserved_count) == (0, 2)
        assert invitation.qr_code.startswith(f"INVQR-{invitation.invitation_number}-")

        lifecycle.check_in(invitation.invitation_number, admin.id)
        db.commit()
        assert invitation.status == InvitationStatus.ACTIVE
        assert (log.current_count, log.reserved_count) == (2, 0)

        lifecycle.check_out(invitation.id, admin.id)
        db.commit()
        assert invitation.status == InvitationStatus.COMPLETED
        assert (log.current_count, log.reserved_count) == (0, 0)

        booking = db.query(TimeSlotBooking).filter(TimeSlotBooking.invitation_id == invitation.id).one()
        assert booking.status == BookingStatus.COMPLETED

        events = [e.event_type for e in lifecycle.events(invitation.id)]
        assert events == ["Created", "Submitted", "Approved", "QrCodeGenerated", "CheckedIn", "CheckedOut"]

    def test_second_check_out_fails_without_double_decrement(self, db, lifecycle, admin, make_invitation):
        invitation = self._approved(db, lifecycle, admin, make_invitation, visitors=2)
        lifecycle.check_in(str(invitation.id), admin.id)
        lifecycle.check_out(invitation.id, admin.id)
        db.commit()

        log = self._log(lifecycle, invitation)
        log.update_counts(1, 0)  # another visitor still inside
        db.commit()

        with pytest.raises(IllegalTransitionError):
            lifecycle.check_out(invitation.id, admin.id)
        assert log.current_count == 1
        assert invitation.status == InvitationStatus.COMPLETED

    def test_second_approval_is_refused(self, db, lifecycle, admin, make_invitation):
        invitation = self._approved(db, lifecycle, admin, make_invitation, visitors=2)
        qr_code = invitation.qr_code

        assert not invitation.can_be_approved()
        with pytest.raises(IllegalTransitionError):
            lifecycle.approve(invitation.id, admin.id, "approved again")
        db.rollback()

        assert invitation.status == InvitationStatus.APPROVED
        assert invitation.approval_comments == "fine"
        assert invitation.qr_code == qr_code
        assert self._log(lifecycle, invitation).reserved_count == 2
        assert db.query(TimeSlotBooking).filter(TimeSlotBooking.invitation_id == invitation.id).count() == 1

    def test_reject_releases_and_reapprove_reserves(self, db, lifecycle, admin, make_invitation):
        invitation = self._approved(db, lifecycle, admin, make_invitation, visitors=2)
        log = self._log(lifecycle, invitation)

        lifecycle.reject(invitation.id, admin.id, "conflict")
        db.commit()
        assert invitation.status == InvitationStatus.REJECTED
        assert log.reserved_count == 0

        lifecycle.approve(invitation.id, admin.id)
        db.commit()
        assert log.reserved_count == 2

    def test_reject_active_releases_present_count(self, db, lifecycle, admin, make_invitation):
        invitation = self._approved(db, lifecycle, admin, make_invitation)
        lifecycle.check_in(invitation.qr_code, admin.id)
        lifecycle.reject(invitation.id, admin.id)
        db.commit()
        log = self._log(lifecycle, invitation)
        assert (log.current_count, log.reserved_count) == (0, 0)

    def test_cancel_from_active(self, db, lifecycle, admin, make_invitation):
        invitation = self._approved(db, lifecycle, admin, make_invitation)
        lifecycle.check_in(invitation.invitation_number, admin.id)
        lifecycle.cancel(invitation.id, admin.id, "left early")
        db.commit()
        assert invitation.status == InvitationStatus.CANCELLED
        log = self._log(lifecycle, invitation)
        assert (log.current_count, log.reserved_count) == (0, 0)

        with pytest.raises(IllegalTransitionError):
            lifecycle.cancel(invitation.id, admin.id)

    def test_approve_refused_when_capacity_taken(self, db, lifecycle, admin, make_invitation):
        first = make_invitation(visitors=2)
        second = make_invitation(visitors=2)
        for invitation in (first, second):
            lifecycle.submit(invitation.id, admin.id)
        lifecycle.approve(first.id, admin.id)
        db.commit()

        with pytest.raises(CapacityUnavailableError):
            lifecycle.approve(second.id, admin.id)
        db.rollback()
        assert lifecycle.get_invitation(second.id).status == InvitationStatus.SUBMITTED
        assert self._log(lifecycle, first).reserved_count == 2

    def test_vip_approval_overbooks(self, db, lifecycle, admin, make_invitation):
        first = self._approved(db, lifecycle, admin, make_invitation, visitors=2)
        vip = make_invitation(visitors=1, is_vip=True)
        lifecycle.submit(vip.id, admin.id)
        lifecycle.approve(vip.id, admin.id)
        db.commit()

        log = self._log(lifecycle, first)
        assert vip.occupancy_log_id == log.id
        assert log.occupied_count == 3
        assert log.is_over_capacity()

    def test_capacity_conservation(self, db, lifecycle, admin, make_invitation, monday_slot):
        """Non-VIP admissions never push a key above its maximum."""
        invitations = [make_invitation(visitors=1) for _ in range(3)]
        for invitation in invitations:
            lifecycle.submit(invitation.id, admin.id)
        db.commit()

        approved = []
        for invitation in invitations:
            try:
                lifecycle.approve(invitation.id, admin.id)
                db.commit()
                approved.append(invitation)
            except CapacityUnavailableError:
                db.rollback()
            log = lifecycle.tracker.find_log(invitation.scheduled_start_time.date(), monday_slot.id, None)
            if log is not None:
                assert log.occupied_count <= log.max_capacity

        assert len(approved) == 2
        lifecycle.check_in(approved[0].invitation_number, admin.id)
        lifecycle.check_out(approved[0].id, admin.id)
        db.commit()
        log = self._log(lifecycle, approved[1])
        assert log.occupied_count == 1


class TestSlotBookingLimit:
    """The Monday slot applies to every location, so all of them share its two places."""

    def test_invitations_at_different_locations_share_the_slot(self, db, lifecycle, admin, make_invitation,
                                                               monday_slot, location, monday):
        annex = Location(name="Annex", max_occupancy=100, is_active=True)
        db.add(annex)
        db.commit()

        lobby_visit = make_invitation(visitors=2, location_id=location.id)
        annex_visit = make_invitation(visitors=2, location_id=annex.id)
        for invitation in (lobby_visit, annex_visit):
            lifecycle.submit(invitation.id, admin.id)
        lifecycle.approve(lobby_visit.id, admin.id)
        db.commit()

        with pytest.raises(CapacityUnavailableError) as exc_info:
            lifecycle.approve(annex_visit.id, admin.id)
        db.rollback()

        assert exc_info.value.result.available_slots == 0
        assert lifecycle.get_invitation(annex_visit.id).status == InvitationStatus.SUBMITTED
        assert lifecycle.bookings.booked_count(monday_slot.id, monday) == 2

    def test_standalone_booking_counts_against_invitations(self, db, lifecycle, admin, host, make_invitation,
                                                           monday_slot, location, monday):
        invitation = make_invitation(visitors=2, location_id=location.id)
        lifecycle.submit(invitation.id, admin.id)
        TimeSlotBookingService(db).book(monday_slot.id, monday, 2, host.id)
        db.commit()

        with pytest.raises(CapacityUnavailableError):
            lifecycle.approve(invitation.id, admin.id)
        db.rollback()

        assert lifecycle.bookings.booked_count(monday_slot.id, monday) == 2

    def test_vip_may_exceed_the_slot(self, db, lifecycle, admin, host, make_invitation, monday_slot, location, monday):
        vip = make_invitation(visitors=2, location_id=location.id, is_vip=True)
        lifecycle.submit(vip.id, admin.id)
        TimeSlotBookingService(db).book(monday_slot.id, monday, 2, host.id)
        lifecycle.approve(vip.id, admin.id)
        db.commit()

        assert vip.status == InvitationStatus.APPROVED
        assert lifecycle.bookings.booked_count(monday_slot.id, monday) == 4


class TestExpiry:

    def test_read_expires_and_releases(self, db, lifecycle, admin, make_invitation):
        invitation = make_invitation(visitors=2)
        lifecycle.submit(invitation.id, admin.id)
        lifecycle.approve(invitation.id, admin.id)
        db.commit()

        later = invitation.scheduled_end_time + timedelta(minutes=1)
        read = lifecycle.read(invitation.id, admin.id, now=later)
        db.commit()

        assert read.status == InvitationStatus.EXPIRED
        assert lifecycle.tracker.get_log(invitation.occupancy_log_id).reserved_count == 0
        booking = db.query(TimeSlotBooking).filter(TimeSlotBooking.invitation_id == invitation.id).one()
        assert booking.status == BookingStatus.CANCELLED

    def test_read_before_end_changes_nothing(self, db, lifecycle, make_invitation):
        invitation = make_invitation()
        assert lifecycle.read(invitation.id).status == InvitationStatus.DRAFT

    def test_check_in_after_end_is_refused(self, db, lifecycle, admin, make_invitation):
        invitation = make_invitation()
        lifecycle.submit(invitation.id, admin.id)
        lifecycle.approve(invitation.id, admin.id)
        db.commit()
        with pytest.raises(IllegalTransitionError):
            lifecycle.check_in(invitation.invitation_number, admin.id,
                               now=invitation.scheduled_end_time + timedelta(minutes=5))
        assert invitation.status == InvitationStatus.APPROVED


class TestDelete:

    def test_soft_delete_requires_cancelled(self, db, lifecycle, host, make_invitation):
        invitation = make_invitation()
        with pytest.raises(IllegalTransitionError):
            lifecycle.delete(invitation.id, host.id)

        lifecycle.cancel(invitation.id, host.id)
        lifecycle.delete(invitation.id, host.id)
        db.commit()
        assert invitation.is_deleted
        with pytest.raises(NotFoundError):
            lifecycle.get_invitation(invitation.id)

    def test_hard_delete_releases_hold(self, db, lifecycle, admin, make_invitation):
        invitation = make_invitation(visitors=2)
        lifecycle.submit(invitation.id, admin.id, [admin.id])
        lifecycle.approve(invitation.id, admin.id)
        db.commit()
        log_id = invitation.occupancy_log_id

        lifecycle.delete(invitation.id, admin.id, hard=True)
        db.commit()

        assert db.query(Invitation).count() == 0
        assert db.query(TimeSlotBooking).count() == 0
        assert lifecycle.tracker.get_log(log_id).reserved_count == 0

    def test_unknown_reference(self, lifecycle, admin, db):
        with pytest.raises(NotFoundError):
            lifecycle.check_in("INV-19990101000000-100", admin.id)
