from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from visitflow.core.concurrency import run_with_retry
from visitflow.core.database import get_db
from visitflow.core.auth import get_current_user
from visitflow.models.user import User
from visitflow.schemas.capacity import (
    AlternativeSlot,
    CapacityResult,
    CapacityValidationRequest,
    OccupancyLogResponse,
)
from visitflow.schemas.common import to_naive_utc
from visitflow.services.capacity import CapacityValidator, ensure_not_in_past
from visitflow.services.occupancy import OccupancyTracker

router = APIRouter(prefix="/api/capacity", tags=["Capacity"])


@router.post("/validate", response_model=CapacityResult)
def validate_capacity(
    request: CapacityValidationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Check whether a proposed visit fits.
    Over-capacity is reported in the result (is_admitted=false), not as an error.
    """
    ensure_not_in_past(request.date_time)
    validator = CapacityValidator(db)
    return run_with_retry(
        db,
        lambda: validator.validate(
            request.date_time,
            expected_visitors=request.expected_visitors,
            location_id=request.location_id,
            time_slot_id=request.time_slot_id,
            is_vip_request=request.is_vip_request,
            exclude_invitation_id=request.exclude_invitation_id,
            end_time=request.end_time,
        ),
        "validate capacity",
    )


@router.get("/occupancy", response_model=List[OccupancyLogResponse])
def get_occupancy(
    day: date = Query(..., alias="date"),
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    logs = OccupancyTracker(db).list_for_date(day, location_id)
    return [OccupancyLogResponse.from_log(log) for log in logs]


@router.get("/alternatives", response_model=List[AlternativeSlot])
def get_alternative_slots(
    date_time: datetime,
    expected_visitors: int = Query(1, ge=1),
    location_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return CapacityValidator(db).find_alternative_slots(to_naive_utc(date_time), expected_visitors, location_id)
