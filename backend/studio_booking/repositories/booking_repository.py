# backend/studio_booking/repositories/booking_repository.py
"""
Booking and waitlist queries.

Waitlist order is (waitlisted_at, id). Positions are never stored for
ordering; they are counted on read from the entries still waiting.
"""

from datetime import datetime
from typing import Any, Iterable, List, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from ..models.booking import SEAT_HOLDING_STATUSES, Booking, BookingStatus
from .base_repository import BaseRepository


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_active_for_member(self, class_instance_id: str, user_id: str) -> Optional[Booking]:
        """The member's non-cancelled booking for a class, if any."""
        return (
            self.db.query(Booking)
            .filter(
                Booking.class_instance_id == class_instance_id,
                Booking.user_id == user_id,
                Booking.status != BookingStatus.CANCELLED.value,
            )
            .first()
        )

    def list_for_class(self, class_instance_id: str) -> List[Booking]:
        return (
            self.db.query(Booking)
            .filter(Booking.class_instance_id == class_instance_id)
            .order_by(Booking.created_at.asc(), Booking.id.asc())
            .all()
        )

    # ----------------------------------------------------------------- waitlist
    def count_waitlisted(self, class_instance_id: str) -> int:
        return int(
            self.db.execute(
                select(func.count(Booking.id))
                .where(Booking.class_instance_id == class_instance_id)
                .where(Booking.status == BookingStatus.WAITLISTED.value)
            ).scalar_one()
        )

    def list_waitlist(self, class_instance_id: str) -> List[Booking]:
        """Waiting entries in FIFO order."""
        return (
            self.db.query(Booking)
            .filter(
                Booking.class_instance_id == class_instance_id,
                Booking.status == BookingStatus.WAITLISTED.value,
            )
            .order_by(Booking.waitlisted_at.asc(), Booking.id.asc())
            .all()
        )

    def waitlist_rank(
        self, class_instance_id: str, waitlisted_at: datetime, booking_id: str
    ) -> int:
        """1-indexed position among entries still waiting for the class."""
        ahead = self.db.execute(
            select(func.count(Booking.id))
            .where(Booking.class_instance_id == class_instance_id)
            .where(Booking.status == BookingStatus.WAITLISTED.value)
            .where(
                or_(
                    Booking.waitlisted_at < waitlisted_at,
                    and_(Booking.waitlisted_at == waitlisted_at, Booking.id < booking_id),
                )
            )
        ).scalar_one()
        return int(ahead) + 1

    # ------------------------------------------------------------ transitions
    def transition(
        self,
        booking_id: str,
        from_statuses: Iterable[str],
        **values: Any,
    ) -> bool:
        """
        Move a booking out of one of ``from_statuses``.

        Returns False when the row was not in an allowed state any more, which
        is how a concurrent cancel or promotion is detected.
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.status.in_(list(from_statuses)))
            .values(**values)
        )
        return self._execute_update(stmt) == 1
