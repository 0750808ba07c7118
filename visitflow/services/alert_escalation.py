"""
Alert escalation rule matching.
Decides which escalation rules apply to an unacknowledged alert; delivery happens elsewhere.
"""
from datetime import datetime, timedelta
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from visitflow.core.errors import NotFoundError
from visitflow.models.alert_escalation import AlertEscalation
from visitflow.models.mixins import utcnow
from visitflow.schemas.alert_escalation import AlertEscalationCreate, AlertEscalationUpdate, NotificationAlert

logger = logging.getLogger(__name__)


def matches(rule: AlertEscalation, alert: NotificationAlert) -> bool:
    return rule.matches_alert(alert)


def is_due(rule: AlertEscalation, alert: NotificationAlert, now: datetime) -> bool:
    if alert.is_acknowledged:
        return False
    if alert.escalation_attempts >= rule.max_attempts:
        return False
    return now - alert.created_on >= timedelta(minutes=rule.escalation_delay_minutes)


class AlertEscalationEngine:
    def __init__(self, db: Session):
        self.db = db

    def list_rules(self, include_disabled: bool = True) -> List[AlertEscalation]:
        query = self.db.query(AlertEscalation).filter(AlertEscalation.is_deleted.is_(False))
        if not include_disabled:
            query = query.filter(AlertEscalation.is_enabled.is_(True))
        return query.order_by(AlertEscalation.rule_priority, AlertEscalation.escalation_delay_minutes,
                              AlertEscalation.id).all()

    def get_rule(self, rule_id: int) -> AlertEscalation:
        rule = self.db.query(AlertEscalation).filter(
            AlertEscalation.id == rule_id,
            AlertEscalation.is_deleted.is_(False)
        ).first()
        if rule is None:
            raise NotFoundError(f"Escalation rule {rule_id} not found")
        return rule

    def create_rule(self, data: AlertEscalationCreate, actor_id: int) -> AlertEscalation:
        rule = AlertEscalation(**data.model_dump())
        rule.set_created_by(actor_id)
        self.db.add(rule)
        self.db.flush()
        logger.info(f"Escalation rule '{rule.rule_name}' created by {actor_id}")
        return rule

    def update_rule(self, rule_id: int, data: AlertEscalationUpdate, actor_id: int) -> AlertEscalation:
        rule = self.get_rule(rule_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(rule, field, value)
        rule.touch(actor_id)
        return rule

    def delete_rule(self, rule_id: int, actor_id: int) -> None:
        rule = self.get_rule(rule_id)
        rule.soft_delete(actor_id)
        logger.info(f"Escalation rule {rule_id} deleted by {actor_id}")

    def matching_rules(self, alert: NotificationAlert) -> List[AlertEscalation]:
        return [rule for rule in self.list_rules(include_disabled=False) if matches(rule, alert)]

    def due_escalations(self, alert: NotificationAlert, now: Optional[datetime] = None) -> List[AlertEscalation]:
        """Matching rules whose delay has elapsed, by rule priority then delay."""
        now = now or utcnow()
        due = [rule for rule in self.matching_rules(alert) if is_due(rule, alert, now)]
        due.sort(key=lambda rule: (rule.rule_priority, rule.escalation_delay_minutes))
        if due:
            logger.info(f"{len(due)} escalation rule(s) due for {alert.type.value}/{alert.priority.value} alert")
        return due
