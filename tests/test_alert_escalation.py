from datetime import datetime, timedelta

import pytest

from visitflow.core.errors import NotFoundError
from visitflow.models import AlertPriority, EscalationAction, NotificationAlertType
from visitflow.schemas.alert_escalation import AlertEscalationCreate, AlertEscalationUpdate, NotificationAlert
from visitflow.services.alert_escalation import AlertEscalationEngine

RAISED_AT = datetime(2030, 1, 7, 9, 0)


@pytest.fixture
def engine(db):
    return AlertEscalationEngine(db)


def rule(engine, actor_id, name, **overrides):
    values = dict(
        rule_name=name,
        alert_type=NotificationAlertType.CAPACITY_ALERT,
        alert_priority=AlertPriority.HIGH,
        escalation_delay_minutes=5,
        action=EscalationAction.ESCALATE_TO_ROLE,
        escalation_target_role="ADMINISTRATOR",
    )
    values.update(overrides)
    return engine.create_rule(AlertEscalationCreate(**values), actor_id)


def alert(**overrides):
    values = dict(
        type=NotificationAlertType.CAPACITY_ALERT,
        priority=AlertPriority.HIGH,
        target_role="RECEPTIONIST",
        created_on=RAISED_AT,
    )
    values.update(overrides)
    return NotificationAlert(**values)


class TestMatching:

    def test_type_and_priority_must_match(self, db, engine, admin):
        rule(engine, admin.id, "capacity high")
        rule(engine, admin.id, "capacity low", alert_priority=AlertPriority.LOW)
        rule(engine, admin.id, "overstay", alert_type=NotificationAlertType.VISITOR_OVERSTAY)
        db.commit()
        assert [r.rule_name for r in engine.matching_rules(alert())] == ["capacity high"]

    def test_role_and_location_filters(self, db, engine, admin, location):
        rule(engine, admin.id, "reception only", target_role="RECEPTIONIST")
        rule(engine, admin.id, "host only", target_role="HOST")
        rule(engine, admin.id, "lobby only", location_id=location.id)
        db.commit()

        names = {r.rule_name for r in engine.matching_rules(alert(target_location_id=location.id))}
        assert names == {"reception only", "lobby only"}
        names = {r.rule_name for r in engine.matching_rules(alert(target_location_id=None))}
        assert names == {"reception only"}

    def test_disabled_and_deleted_rules_are_ignored(self, db, engine, admin):
        disabled = rule(engine, admin.id, "disabled")
        deleted = rule(engine, admin.id, "deleted")
        engine.update_rule(disabled.id, AlertEscalationUpdate(is_enabled=False), admin.id)
        engine.delete_rule(deleted.id, admin.id)
        db.commit()

        assert engine.matching_rules(alert()) == []
        assert not disabled.matches_alert(alert())
        with pytest.raises(NotFoundError):
            engine.get_rule(deleted.id)


class TestDueEscalations:

    def test_due_after_delay_in_priority_order(self, db, engine, admin):
        rule(engine, admin.id, "late", escalation_delay_minutes=30, rule_priority=1)
        rule(engine, admin.id, "second", escalation_delay_minutes=10, rule_priority=5)
        rule(engine, admin.id, "first", escalation_delay_minutes=5, rule_priority=5)
        db.commit()

        due = engine.due_escalations(alert(), now=RAISED_AT + timedelta(minutes=10))
        assert [r.rule_name for r in due] == ["first", "second"]

        due = engine.due_escalations(alert(), now=RAISED_AT + timedelta(minutes=30))
        assert [r.rule_name for r in due] == ["late", "first", "second"]

    def test_nothing_due_before_delay(self, db, engine, admin):
        rule(engine, admin.id, "five minutes")
        db.commit()
        assert engine.due_escalations(alert(), now=RAISED_AT + timedelta(minutes=4)) == []

    def test_acknowledged_alert_is_not_escalated(self, db, engine, admin):
        rule(engine, admin.id, "five minutes")
        db.commit()
        later = RAISED_AT + timedelta(hours=1)
        assert engine.due_escalations(alert(is_acknowledged=True), now=later) == []

    def test_attempts_exhausted(self, db, engine, admin):
        rule(engine, admin.id, "three tries", max_attempts=3)
        db.commit()
        later = RAISED_AT + timedelta(hours=1)
        assert len(engine.due_escalations(alert(escalation_attempts=2), now=later)) == 1
        assert engine.due_escalations(alert(escalation_attempts=3), now=later) == []
