"""
Location model for vf_locations table.
"""
from sqlalchemy import Column, Integer, String, Boolean
from visitflow.core.database import Base
from visitflow.models.mixins import SoftDeleteMixin


class Location(SoftDeleteMixin, Base):
    """
    A visitable area of the facility with its own occupancy ceiling.
    """
    __tablename__ = "vf_locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=True)
    max_occupancy = Column(Integer, default=100, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Location(id={self.id}, name='{self.name}', max_occupancy={self.max_occupancy})>"
