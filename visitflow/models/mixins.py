"""
Shared column sets for auditable and soft-deletable entities.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuditMixin:
    """Created/modified stamps. Every mutation goes through touch()."""

    created_on = Column(DateTime, default=utcnow, nullable=False)
    created_by = Column(Integer, nullable=True)
    modified_on = Column(DateTime, nullable=True)
    modified_by = Column(Integer, nullable=True)

    def set_created_by(self, actor_id: Optional[int]) -> None:
        self.created_by = actor_id
        self.created_on = utcnow()

    def touch(self, actor_id: Optional[int] = None) -> None:
        self.modified_on = utcnow()
        if actor_id is not None:
            self.modified_by = actor_id


class SoftDeleteMixin(AuditMixin):
    """Entities that are flagged as deleted instead of being removed."""

    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_on = Column(DateTime, nullable=True)
    deleted_by = Column(Integer, nullable=True)

    def soft_delete(self, actor_id: int) -> None:
        self.is_deleted = True
        self.deleted_on = utcnow()
        self.deleted_by = actor_id
        self.touch(actor_id)
