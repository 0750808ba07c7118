from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from visitflow.core.database import get_db
from visitflow.core.auth import get_current_user, get_current_admin
from visitflow.models.user import User
from visitflow.schemas.alert_escalation import (
    AlertEscalationCreate,
    AlertEscalationResponse,
    AlertEscalationUpdate,
    DueEscalationRequest,
    NotificationAlert,
)
from visitflow.services.alert_escalation import AlertEscalationEngine

router = APIRouter(prefix="/api/alert-escalations", tags=["Alert Escalations"])


@router.get("/", response_model=List[AlertEscalationResponse])
def list_rules(
    include_disabled: bool = True,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    return AlertEscalationEngine(db).list_rules(include_disabled)


@router.post("/", response_model=AlertEscalationResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    rule_data: AlertEscalationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    rule = AlertEscalationEngine(db).create_rule(rule_data, current_user.id)
    db.commit()
    db.refresh(rule)
    return rule


@router.put("/{rule_id}", response_model=AlertEscalationResponse)
def update_rule(
    rule_id: int,
    rule_data: AlertEscalationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    rule = AlertEscalationEngine(db).update_rule(rule_id, rule_data, current_user.id)
    db.commit()
    db.refresh(rule)
    return rule


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    AlertEscalationEngine(db).delete_rule(rule_id, current_user.id)
    db.commit()
    return None


@router.post("/match", response_model=List[AlertEscalationResponse])
def match_rules(
    alert: NotificationAlert,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Rules that apply to an alert, regardless of timing."""
    return AlertEscalationEngine(db).matching_rules(alert)


@router.post("/due", response_model=List[AlertEscalationResponse])
def due_escalations(
    request: DueEscalationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Rules whose delay has elapsed for an unacknowledged alert, in execution order."""
    return AlertEscalationEngine(db).due_escalations(request.alert, request.now)
