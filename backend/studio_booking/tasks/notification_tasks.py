# backend/studio_booking/tasks/notification_tasks.py
"""
Celery tasks for dispatching notification outbox events.

Implements a two-step workflow:
1. `outbox.dispatch_pending` periodically enqueues delivery tasks.
2. `outbox.deliver_event` makes one delivery attempt.

Retries are driven by the outbox row alone: a failed attempt pushes
`next_attempt_at` out by the backoff and the dispatcher picks it up again.
The dispatcher leases the rows it schedules so a beat tick never queues an
event that already has a delivery task in flight.

Delivery itself lives in ``deliver_outbox_event`` so it can run against any
session (tests use it directly without a broker).
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from time import monotonic
from typing import Iterator, Optional

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from studio_booking.core.config import settings
from studio_booking.database import SessionLocal
from studio_booking.models.event_outbox import EventOutboxStatus
from studio_booking.monitoring.prometheus_metrics import PrometheusMetrics
from studio_booking.repositories.event_outbox_repository import EventOutboxRepository
from studio_booking.services.notification_provider import (
    NotificationProvider,
    NotificationProviderPermanentError,
    NotificationProviderTemporaryError,
)
from studio_booking.tasks.celery_app import celery_app

logger = get_task_logger(__name__)

MAX_DELIVERY_ATTEMPTS = settings.outbox_max_attempts
BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]
# Longer than a delivery task normally waits in the queue
DISPATCH_LEASE_SECONDS = 300


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


@dataclass
class DeliveryResult:
    event_id: str
    status: str
    attempt_number: int
    retry_in: Optional[int] = None
    error: Optional[Exception] = None


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def deliver_outbox_event(
    session: Session, event_id: str, provider: NotificationProvider
) -> Optional[DeliveryResult]:
    """
    Attempt one delivery and record the outcome on the outbox row.

    Returns None when the event no longer exists. A result with status
    ``pending`` carries the backoff before the next attempt.
    """
    repo = EventOutboxRepository(session)
    event = repo.get_by_id(event_id)
    if event is None:
        logger.warning("Outbox event %s missing; skipping", event_id)
        return None
    if event.status != EventOutboxStatus.PENDING.value:
        return DeliveryResult(event.id, event.status, event.attempt_count)

    attempt_number = event.attempt_count + 1
    PrometheusMetrics.record_notification_attempt(event.event_type)
    start = monotonic()
    try:
        provider.send(
            event_type=event.event_type,
            payload=event.payload,
            idempotency_key=event.idempotency_key,
        )
    except (NotificationProviderTemporaryError, NotificationProviderPermanentError) as exc:
        PrometheusMetrics.observe_notification_dispatch(event.event_type, monotonic() - start)
        backoff = _next_backoff(attempt_number)
        terminal = attempt_number >= MAX_DELIVERY_ATTEMPTS or isinstance(
            exc, NotificationProviderPermanentError
        )
        repo.record_failed_attempt(
            event.id,
            attempt_number,
            error=str(exc),
            retry_in=None if terminal else backoff,
        )
        session.commit()
        if terminal:
            PrometheusMetrics.record_notification_outcome(event.event_type, "failed")
            logger.error(
                "Outbox event %s failed after %s attempts: %s",
                event.id,
                attempt_number,
                exc,
            )
            return DeliveryResult(
                event.id, EventOutboxStatus.FAILED.value, attempt_number, error=exc
            )
        logger.warning(
            "Retrying outbox event %s attempt=%s backoff=%ss",
            event.id,
            attempt_number,
            backoff,
        )
        return DeliveryResult(
            event.id, EventOutboxStatus.PENDING.value, attempt_number, retry_in=backoff, error=exc
        )

    repo.record_delivered(event.id, attempt_number)
    session.commit()
    PrometheusMetrics.observe_notification_dispatch(event.event_type, monotonic() - start)
    PrometheusMetrics.record_notification_outcome(event.event_type, "sent")
    logger.info(
        "Delivered outbox event %s type=%s attempts=%s",
        event.id,
        event.event_type,
        attempt_number,
    )
    return DeliveryResult(event.id, EventOutboxStatus.SENT.value, attempt_number)


@celery_app.task(name="outbox.dispatch_pending", max_retries=0, queue="notifications")
def dispatch_pending() -> int:
    """
    Lease due outbox events and enqueue one delivery task per event.

    Returns the number of events scheduled.
    """
    with _session_scope() as session:
        repo = EventOutboxRepository(session)
        event_ids = repo.claim_due(
            settings.outbox_batch_size, lease_seconds=DISPATCH_LEASE_SECONDS
        )

    for event_id in event_ids:
        deliver_event.apply_async((event_id,), queue="notifications")
    if event_ids:
        logger.info("Scheduled %s outbox events for delivery", len(event_ids))
    return len(event_ids)


@celery_app.task(name="outbox.deliver_event", max_retries=0, queue="notifications")
def deliver_event(event_id: str) -> Optional[str]:
    """Make one delivery attempt; a retry is left to the next due dispatch."""
    session = SessionLocal()
    try:
        result = deliver_outbox_event(session, event_id, NotificationProvider())
    except Exception:
        session.rollback()
        logger.exception("Unexpected error delivering outbox event %s", event_id)
        raise
    finally:
        session.close()

    if result is None:
        return None
    if result.retry_in is not None:
        logger.info("Outbox event %s due again in %ss", result.event_id, result.retry_in)
    return result.event_id
