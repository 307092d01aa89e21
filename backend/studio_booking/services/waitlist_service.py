# backend/studio_booking/services/waitlist_service.py
"""
Waitlist Manager.

Entries are waitlisted bookings ordered by (waitlisted_at, id). Positions are
derived on read, so nothing is renumbered when an entry ahead is promoted or
cancelled. Promotion runs inside the caller's transaction (the cancellation
that freed the seat) and never commits on its own.
"""

from datetime import datetime
import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ..core.timezone_utils import ensure_aware, utc_now
from ..models.booking import Booking, BookingStatus
from ..models.class_instance import ClassInstance, ClassStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.class_instance_repository import ClassInstanceRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .credit_service import CreditService

logger = logging.getLogger(__name__)


class WaitlistService(BaseService):
    def __init__(
        self,
        db: Session,
        credit_service: Optional[CreditService] = None,
        booking_repository: Optional[BookingRepository] = None,
        class_instance_repository: Optional[ClassInstanceRepository] = None,
    ):
        super().__init__(db)
        self.credit_service = credit_service or CreditService(db)
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.class_instance_repository = (
            class_instance_repository or RepositoryFactory.create_class_instance_repository(db)
        )

    def enqueue(
        self,
        class_instance: ClassInstance,
        member_id: str,
        now: Optional[datetime] = None,
        created_by_id: Optional[str] = None,
    ) -> Tuple[Booking, int]:
        """Append the member to the class waitlist and return the entry with its position."""
        now = now or utc_now()
        booking = self.booking_repository.create(
            studio_id=class_instance.studio_id,
            class_instance_id=class_instance.id,
            user_id=member_id,
            status=BookingStatus.WAITLISTED.value,
            waitlisted_at=now,
            created_by_id=created_by_id or member_id,
        )
        position = self.booking_repository.waitlist_rank(class_instance.id, now, booking.id)
        booking.waitlist_position = position
        self.db.flush()

        self.logger.info(
            "Member waitlisted",
            extra={
                "class_instance_id": class_instance.id,
                "member_id": member_id,
                "booking_id": booking.id,
                "position": position,
            },
        )
        return booking, position

    def position_of(self, class_instance_id: str, member_id: str) -> Optional[int]:
        """Live 1-indexed position of the member, or None if not waiting."""
        booking = self.booking_repository.get_active_for_member(class_instance_id, member_id)
        if booking is None or booking.status != BookingStatus.WAITLISTED.value:
            return None
        return self.position_of_booking(booking)

    def position_of_booking(self, booking: Booking) -> Optional[int]:
        if booking.status != BookingStatus.WAITLISTED.value or booking.waitlisted_at is None:
            return None
        return self.booking_repository.waitlist_rank(
            booking.class_instance_id, booking.waitlisted_at, booking.id
        )

    def promote_next(
        self, class_instance: ClassInstance, now: Optional[datetime] = None
    ) -> Optional[Booking]:
        """
        Give a free seat to the first waiting member who can pay for it.

        Members without a usable credit are skipped and keep their place.
        Returns the promoted booking, or None when nobody was promoted.
        """
        now = now or utc_now()
        if class_instance.status != ClassStatus.SCHEDULED.value:
            return None
        if ensure_aware(now) >= class_instance.starts_at_utc():
            return None

        waiting = self.booking_repository.list_waitlist(class_instance.id)
        if not waiting:
            return None

        if not self.class_instance_repository.claim_seat(class_instance.id):
            prometheus_metrics.record_promotion("no_seat")
            return None

        for entry in waiting:
            credit = self.credit_service.resolve(entry.user_id, class_instance.studio_id, now)
            if credit is None:
                self.logger.info(
                    "Skipping waitlisted member without credits",
                    extra={"booking_id": entry.id, "member_id": entry.user_id},
                )
                prometheus_metrics.record_promotion("skipped_no_credit")
                continue

            self.credit_service.deduct(credit)
            promoted = self.booking_repository.transition(
                entry.id,
                [BookingStatus.WAITLISTED.value],
                status=BookingStatus.BOOKED.value,
                booked_at=now,
                waitlist_position=None,
                credit_source=credit.source.value,
                credit_source_id=credit.source_id,
                credit_remaining_after=credit.remaining_after,
            )
            if not promoted:
                # Entry left the waitlist concurrently; hand the class back
                self.credit_service.refund(credit)
                continue

            self.booking_repository.refresh(entry)
            prometheus_metrics.record_promotion("promoted")
            self.log_operation(
                "waitlist_promoted",
                class_instance_id=class_instance.id,
                booking_id=entry.id,
                member_id=entry.user_id,
                credit_source=credit.source.value,
            )
            return entry

        self.class_instance_repository.release_seat(class_instance.id)
        prometheus_metrics.record_promotion("none_eligible")
        return None
