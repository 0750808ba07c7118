from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import logging

from visitflow.core.database import get_db
from visitflow.core.auth import get_current_user, get_current_admin
from visitflow.core.errors import NotFoundError
from visitflow.models.location import Location
from visitflow.models.user import User
from visitflow.schemas.location import LocationCreate, LocationUpdate, LocationResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/locations", tags=["Locations"])


def _get_location(db: Session, location_id: int) -> Location:
    location = db.query(Location).filter(
        Location.id == location_id,
        Location.is_deleted.is_(False)
    ).first()
    if location is None:
        raise NotFoundError(f"Location {location_id} not found")
    return location


@router.get("/", response_model=List[LocationResponse])
def list_locations(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    query = db.query(Location).filter(Location.is_deleted.is_(False))
    if not include_inactive:
        query = query.filter(Location.is_active.is_(True))
    return query.order_by(Location.name).all()


@router.get("/{location_id}", response_model=LocationResponse)
def get_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _get_location(db, location_id)


@router.post("/", response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
def create_location(
    location_data: LocationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    location = Location(**location_data.model_dump(), is_active=True)
    location.set_created_by(current_user.id)
    try:
        db.add(location)
        db.commit()
        db.refresh(location)
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A location with this name already exists"
        )
    logger.info(f"Location '{location.name}' created by {current_user.username}")
    return location


@router.put("/{location_id}", response_model=LocationResponse)
def update_location(
    location_id: int,
    location_data: LocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    location = _get_location(db, location_id)
    for field, value in location_data.model_dump(exclude_unset=True).items():
        setattr(location, field, value)
    location.touch(current_user.id)
    try:
        db.commit()
        db.refresh(location)
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A location with this name already exists"
        )
    return location


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_location(
    location_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    location = _get_location(db, location_id)
    location.soft_delete(current_user.id)
    db.commit()
    logger.info(f"Location {location_id} deleted by {current_user.username}")
    return None
