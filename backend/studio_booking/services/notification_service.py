# backend/studio_booking/services/notification_service.py
"""
Notification enqueueing.

Events are written to the outbox inside the caller's transaction, under a
savepoint, so a failed enqueue is logged and dropped without aborting the
booking or cancellation that produced it. Delivery happens later in the
Celery outbox tasks.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..models.booking import Booking
from ..repositories.event_outbox_repository import EventOutboxRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class NotificationEvent:
    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_WAITLISTED = "booking.waitlisted"
    BOOKING_CANCELLED = "booking.cancelled"
    WAITLIST_PROMOTED = "waitlist.promoted"


class NotificationService(BaseService):
    def __init__(self, db: Session, outbox_repository: Optional[EventOutboxRepository] = None):
        super().__init__(db)
        self.outbox_repository = (
            outbox_repository or RepositoryFactory.create_event_outbox_repository(db)
        )

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Dict[str, Any],
        idempotency_key: str,
    ) -> bool:
        """Write one outbox row; returns False (after logging) if that failed."""
        try:
            with self.db.begin_nested():
                self.outbox_repository.enqueue(
                    event_type=event_type,
                    aggregate_id=aggregate_id,
                    payload=payload,
                    idempotency_key=idempotency_key,
                )
            return True
        except Exception:
            self.logger.exception(
                "Failed to enqueue notification",
                extra={"event_type": event_type, "aggregate_id": aggregate_id},
            )
            return False

    @staticmethod
    def _booking_payload(booking: Booking, **extra: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "userId": booking.user_id,
            "studioId": booking.studio_id,
            "classId": booking.class_instance_id,
            "booking": booking.to_dict(),
        }
        payload.update(extra)
        return payload

    def booking_confirmed(self, booking: Booking) -> bool:
        return self.enqueue(
            NotificationEvent.BOOKING_CONFIRMED,
            booking.id,
            self._booking_payload(booking),
            idempotency_key=f"{NotificationEvent.BOOKING_CONFIRMED}:{booking.id}",
        )

    def booking_waitlisted(self, booking: Booking, position: int) -> bool:
        return self.enqueue(
            NotificationEvent.BOOKING_WAITLISTED,
            booking.id,
            self._booking_payload(booking, waitlistPosition=position),
            idempotency_key=f"{NotificationEvent.BOOKING_WAITLISTED}:{booking.id}",
        )

    def booking_cancelled(
        self,
        booking: Booking,
        *,
        refunded: bool,
        within_window: bool,
        cancelled_by_staff: bool,
    ) -> bool:
        return self.enqueue(
            NotificationEvent.BOOKING_CANCELLED,
            booking.id,
            self._booking_payload(
                booking,
                creditRefunded=refunded,
                withinCancellationWindow=within_window,
                cancelledByStaff=cancelled_by_staff,
            ),
            idempotency_key=f"{NotificationEvent.BOOKING_CANCELLED}:{booking.id}",
        )

    def waitlist_promoted(self, booking: Booking) -> bool:
        return self.enqueue(
            NotificationEvent.WAITLIST_PROMOTED,
            booking.id,
            self._booking_payload(booking),
            idempotency_key=f"{NotificationEvent.WAITLIST_PROMOTED}:{booking.id}",
        )
