# backend/studio_booking/services/cancellation_service.py
"""
Cancellation & Refund Coordinator.

A cancellation is one transaction: the booking leaves its live state through
a conditional update, the credit is refunded when the cancellation is on
time, the seat is released, and the next eligible waitlisted member is
promoted into it. The status transition is the idempotency guard, so a
duplicate or concurrent cancel never refunds twice.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.class_lock import class_lock
from ..core.config import settings
from ..core.exceptions import (
    AlreadyCancelledException,
    ForbiddenException,
    NotFoundException,
)
from ..core.timezone_utils import cancellation_deadline, is_within_cancellation_window, utc_now
from ..models.booking import Booking, BookingStatus
from ..models.class_instance import ClassInstance
from ..repositories.booking_repository import BookingRepository
from ..repositories.class_instance_repository import ClassInstanceRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.studio_repository import StudioRepository
from .base import BaseService
from .credit_service import CreditService
from .notification_service import NotificationService
from .waitlist_service import WaitlistService

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (
    BookingStatus.BOOKED.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.WAITLISTED.value,
)


@dataclass
class CancelResult:
    booking: Booking
    refunded: bool
    within_window: bool
    promoted_member_id: Optional[str] = None


class CancellationService(BaseService):
    def __init__(
        self,
        db: Session,
        credit_service: Optional[CreditService] = None,
        waitlist_service: Optional[WaitlistService] = None,
        notification_service: Optional[NotificationService] = None,
        booking_repository: Optional[BookingRepository] = None,
        class_instance_repository: Optional[ClassInstanceRepository] = None,
        studio_repository: Optional[StudioRepository] = None,
    ):
        super().__init__(db)
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.class_instance_repository = (
            class_instance_repository or RepositoryFactory.create_class_instance_repository(db)
        )
        self.studio_repository = studio_repository or RepositoryFactory.create_studio_repository(db)
        self.credit_service = credit_service or CreditService(
            db, studio_repository=self.studio_repository
        )
        self.waitlist_service = waitlist_service or WaitlistService(
            db,
            credit_service=self.credit_service,
            booking_repository=self.booking_repository,
            class_instance_repository=self.class_instance_repository,
        )
        self.notification_service = notification_service or NotificationService(db)

    @staticmethod
    def window_hours(class_instance: ClassInstance) -> int:
        studio = class_instance.studio
        if studio is not None and studio.cancellation_window_hours is not None:
            return int(studio.cancellation_window_hours)
        return settings.default_cancellation_window_hours

    def is_within_window(self, class_instance: ClassInstance, now: datetime) -> bool:
        deadline = cancellation_deadline(
            class_instance.starts_at_utc(), self.window_hours(class_instance)
        )
        return is_within_cancellation_window(now, deadline)

    @BaseService.measure_operation("cancel_booking")
    def cancel(
        self,
        booking_id: str,
        actor_id: str,
        *,
        force_refund: bool = False,
        now: Optional[datetime] = None,
    ) -> CancelResult:
        """
        Cancel a booking or waitlist entry.

        Members cancel their own bookings and are refunded only inside the
        cancellation window. Staff may cancel any booking in their studio and,
        with ``force_refund``, refund regardless of the window.
        """
        now = now or utc_now()
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")

        is_staff = self.studio_repository.is_staff(booking.studio_id, actor_id)
        if booking.user_id != actor_id and not is_staff:
            raise ForbiddenException("You can only cancel your own bookings")
        if force_refund and not is_staff:
            raise ForbiddenException("Only studio staff can refund outside the window")
        if booking.is_cancelled:
            raise AlreadyCancelledException(booking_id)

        class_instance_id = booking.class_instance_id
        with class_lock(class_instance_id):
            result = self.run_with_retry(
                "cancel_booking",
                lambda: self._cancel_once(booking_id, actor_id, is_staff, force_refund, now),
            )

        self.log_operation(
            "cancel_booking",
            booking_id=booking_id,
            actor_id=actor_id,
            refunded=result.refunded,
            within_window=result.within_window,
            promoted_member_id=result.promoted_member_id,
        )
        return result

    def _cancel_once(
        self,
        booking_id: str,
        actor_id: str,
        is_staff: bool,
        force_refund: bool,
        now: datetime,
    ) -> CancelResult:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        if booking.is_cancelled:
            raise AlreadyCancelledException(booking_id)

        class_instance = booking.class_instance
        within_window = self.is_within_window(class_instance, now)
        held_seat = booking.holds_seat
        credit = self.credit_service.credit_from_booking(booking) if held_seat else None

        if not self.booking_repository.transition(
            booking.id,
            CANCELLABLE_STATUSES,
            status=BookingStatus.CANCELLED.value,
            cancelled_at=now,
            cancelled_by_id=actor_id,
            waitlist_position=None,
        ):
            # Lost to a concurrent cancel; that request did the refund
            raise AlreadyCancelledException(booking_id)
        self.booking_repository.refresh(booking)

        refunded = False
        if credit is not None and (within_window or (force_refund and is_staff)):
            refunded = self.credit_service.refund(credit)

        if held_seat:
            self.class_instance_repository.release_seat(class_instance.id)
        promoted = self.waitlist_service.promote_next(class_instance, now)

        self.notification_service.booking_cancelled(
            booking,
            refunded=refunded,
            within_window=within_window,
            cancelled_by_staff=actor_id != booking.user_id,
        )
        if promoted is not None:
            self.notification_service.waitlist_promoted(promoted)

        return CancelResult(
            booking=booking,
            refunded=refunded,
            within_window=within_window,
            promoted_member_id=promoted.user_id if promoted is not None else None,
        )
