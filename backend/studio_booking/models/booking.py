# backend/studio_booking/models/booking.py
"""
Booking model.

One row per (member, class instance) attempt. A booking either holds a seat
(``booked``/``confirmed``), waits for one (``waitlisted``), or is finished
(``cancelled``). The credit that paid for the seat is recorded together with
the post-deduction balance so a refund can restore the exact prior state.
"""

from enum import Enum
from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    BOOKED = "booked"
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"


SEAT_HOLDING_STATUSES = (BookingStatus.BOOKED.value, BookingStatus.CONFIRMED.value)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False)
    class_instance_id = Column(String(26), ForeignKey("class_instances.id"), nullable=False)
    user_id = Column(String(26), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=BookingStatus.BOOKED.value)

    # Credit ledger pivot (NULL for waitlist entries and staff comps)
    credit_source = Column(String(32), nullable=True)
    credit_source_id = Column(String(26), nullable=True)
    credit_remaining_after = Column(Integer, nullable=True)

    # Rank at enqueue time; live position is derived from waitlisted_at
    waitlist_position = Column(Integer, nullable=True)
    waitlisted_at = Column(DateTime(timezone=True), nullable=True)

    booked_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(26), nullable=True)
    created_by_id = Column(String(26), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    class_instance = relationship("ClassInstance", lazy="joined")

    __table_args__ = (
        # At most one live booking per member per class
        Index(
            "uq_bookings_member_class_active",
            "user_id",
            "class_instance_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index(
            "ix_bookings_class_waitlist",
            "class_instance_id",
            "waitlisted_at",
            "id",
            postgresql_where=text("status = 'waitlisted'"),
            sqlite_where=text("status = 'waitlisted'"),
        ),
        CheckConstraint(
            "status IN ('booked', 'confirmed', 'waitlisted', 'cancelled')",
            name="ck_bookings_status",
        ),
    )

    @property
    def holds_seat(self) -> bool:
        return self.status in SEAT_HOLDING_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self.status == BookingStatus.CANCELLED.value

    def to_dict(self) -> Dict[str, Any]:
        """Stable camelCase shape consumed by billing and notifications."""
        return {
            "id": self.id,
            "status": self.status,
            "creditSource": self.credit_source,
            "creditSourceId": self.credit_source_id,
            "waitlistPosition": self.waitlist_position,
            "bookedAt": self.booked_at.isoformat() if self.booked_at else None,
            "confirmedAt": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "cancelledAt": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }

    def __repr__(self) -> str:
        return f"<Booking {self.id} {self.user_id}@{self.class_instance_id} {self.status}>"
