# backend/studio_booking/models/class_instance.py
"""
Scheduled class occurrence.

Rows are produced by the schedule generator. The booking engine only moves
``booked_count`` (the seat ledger) through conditional updates and reads the
schedule; instances are never deleted.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.timezone_utils import localize_class_start
from ..core.ulid_helper import generate_ulid
from ..database import Base


class ClassStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ClassInstance(Base):
    """One bookable occurrence of a class."""

    __tablename__ = "class_instances"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False)
    name = Column(String(200), nullable=False, default="Class")
    # Studio-local wall clock
    class_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    capacity = Column(Integer, nullable=False)
    # Seats held by booked/confirmed bookings; waitlist entries are not counted
    booked_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=ClassStatus.SCHEDULED.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    studio = relationship("Studio", lazy="joined")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_class_instances_capacity_positive"),
        CheckConstraint(
            "booked_count >= 0 AND booked_count <= capacity",
            name="ck_class_instances_booked_within_capacity",
        ),
        CheckConstraint(
            "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
            name="ck_class_instances_status",
        ),
        Index("ix_class_instances_studio_date", "studio_id", "class_date"),
    )

    @property
    def spots_left(self) -> int:
        return max(self.capacity - (self.booked_count or 0), 0)

    def starts_at_utc(self) -> datetime:
        """Class start as an aware UTC datetime, using the studio's timezone."""
        tz_name = self.studio.timezone if self.studio is not None else None
        return localize_class_start(self.class_date, self.start_time, tz_name)

    def __repr__(self) -> str:
        return (
            f"<ClassInstance {self.id} {self.class_date} {self.start_time} "
            f"{self.booked_count}/{self.capacity} {self.status}>"
        )
