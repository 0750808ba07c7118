from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
import logging

from visitflow.core.concurrency import run_with_retry
from visitflow.core.config import settings
from visitflow.core.database import get_db
from visitflow.core.auth import get_current_user
from visitflow.core.errors import NotFoundError, PermissionDeniedError
from visitflow.models.invitation import InvitationStatus
from visitflow.models.user import User, UserRole
from visitflow.schemas.invitation import (
    CheckInRequest,
    InvitationCreate,
    InvitationCreateResponse,
    InvitationDecision,
    InvitationEventResponse,
    InvitationGuards,
    InvitationListResponse,
    InvitationResponse,
    InvitationSubmit,
    InvitationUpdate,
    TransitionReason,
)
from visitflow.services.invitation_lifecycle import InvitationLifecycle
from visitflow.services.qr_service import generate_qr_code_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invitations", tags=["Invitations"])


@router.post("/", response_model=InvitationCreateResponse, status_code=status.HTTP_201_CREATED)
def create_invitation(
    invitation_data: InvitationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a Draft invitation hosted by the current user.

    Raises:
        422: Invalid invitation (for example end before start)
        409: The visit does not fit; the body carries the capacity breakdown and alternatives
    """
    lifecycle = InvitationLifecycle(db)
    invitation, capacity = run_with_retry(
        db, lambda: lifecycle.create(invitation_data, current_user.id), "create invitation"
    )
    return InvitationCreateResponse(
        message="Invitation created successfully",
        invitation=InvitationResponse.model_validate(invitation),
        capacity=capacity,
    )


@router.get("/", response_model=InvitationListResponse)
def list_invitations(
    status_filter: Optional[InvitationStatus] = Query(None, alias="status"),
    host_id: Optional[int] = None,
    location_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    total, invitations = InvitationLifecycle(db).list_invitations(
        status=status_filter,
        host_id=host_id,
        location_id=location_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    return InvitationListResponse(
        total=total,
        invitations=[InvitationResponse.model_validate(inv) for inv in invitations],
        page=page,
        page_size=page_size,
    )


@router.post("/check-in", response_model=InvitationResponse)
def check_in_invitation(
    check_in_data: CheckInRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Check in by invitation id, invitation number or scanned QR reference."""
    lifecycle = InvitationLifecycle(db)
    return run_with_retry(
        db, lambda: lifecycle.check_in(check_in_data.reference, current_user.id), "check in invitation"
    )


@router.get("/{invitation_id}", response_model=InvitationResponse)
def get_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Reading an invitation applies Expire when its scheduled end has passed."""
    lifecycle = InvitationLifecycle(db)
    return run_with_retry(db, lambda: lifecycle.read(invitation_id, current_user.id), "read invitation")


@router.get("/{invitation_id}/guards", response_model=InvitationGuards)
def get_invitation_guards(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    invitation = InvitationLifecycle(db).get_invitation(invitation_id)
    return InvitationGuards(
        invitation_id=invitation.id,
        status=invitation.status,
        can_be_approved=invitation.can_be_approved(),
        can_be_cancelled=invitation.can_be_cancelled(),
        can_be_modified=invitation.can_be_modified,
        is_expired=invitation.is_expired(),
    )


@router.put("/{invitation_id}", response_model=InvitationResponse)
def update_invitation(
    invitation_id: int,
    invitation_data: InvitationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    lifecycle = InvitationLifecycle(db)
    invitation, _ = run_with_retry(
        db, lambda: lifecycle.update(invitation_id, invitation_data, current_user.id), "update invitation"
    )
    return invitation


@router.post("/{invitation_id}/submit", response_model=InvitationResponse)
def submit_invitation(
    invitation_id: int,
    submit_data: Optional[InvitationSubmit] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    approver_ids = submit_data.approver_ids if submit_data else []
    lifecycle = InvitationLifecycle(db)
    return run_with_retry(
        db, lambda: lifecycle.submit(invitation_id, current_user.id, approver_ids), "submit invitation"
    )


@router.post("/{invitation_id}/approve", response_model=InvitationResponse)
def approve_invitation(
    invitation_id: int,
    decision: Optional[InvitationDecision] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    comments = decision.comments if decision else None
    lifecycle = InvitationLifecycle(db)
    return run_with_retry(
        db, lambda: lifecycle.approve(invitation_id, current_user.id, comments), "approve invitation"
    )


@router.post("/{invitation_id}/reject", response_model=InvitationResponse)
def reject_invitation(
    invitation_id: int,
    reject_data: Optional[TransitionReason] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    reason = reject_data.reason if reject_data else None
    lifecycle = InvitationLifecycle(db)
    return run_with_retry(
        db, lambda: lifecycle.reject(invitation_id, current_user.id, reason), "reject invitation"
    )


@router.post("/{invitation_id}/check-out", response_model=InvitationResponse)
def check_out_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    lifecycle = InvitationLifecycle(db)
    return run_with_retry(db, lambda: lifecycle.check_out(invitation_id, current_user.id), "check out invitation")


@router.post("/{invitation_id}/cancel", response_model=InvitationResponse)
def cancel_invitation(
    invitation_id: int,
    cancel_data: Optional[TransitionReason] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    reason = cancel_data.reason if cancel_data else None
    lifecycle = InvitationLifecycle(db)
    return run_with_retry(
        db, lambda: lifecycle.cancel(invitation_id, current_user.id, reason), "cancel invitation"
    )


@router.get("/{invitation_id}/events", response_model=List[InvitationEventResponse])
def get_invitation_events(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return InvitationLifecycle(db).events(invitation_id)


@router.get("/{invitation_id}/qr")
def get_invitation_qr(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Render the invitation's QR reference as a PNG image."""
    invitation = InvitationLifecycle(db).get_invitation(invitation_id)
    if not invitation.qr_code:
        raise NotFoundError(f"Invitation {invitation.invitation_number} has no QR code yet")
    return Response(content=generate_qr_code_image(invitation.qr_code), media_type="image/png")


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invitation(
    invitation_id: int,
    hard: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Soft delete a cancelled invitation; administrators may remove any invitation with hard=true."""
    if hard and current_user.role != UserRole.ADMINISTRATOR:
        raise PermissionDeniedError("Only administrators can permanently delete invitations.")
    lifecycle = InvitationLifecycle(db)
    run_with_retry(db, lambda: lifecycle.delete(invitation_id, current_user.id, hard), "delete invitation")
    return None
