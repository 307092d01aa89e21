# backend/studio_booking/repositories/event_outbox_repository.py
"""
Outbox rows for booking notifications.

Booking flows enqueue inside their own transaction; the Celery dispatcher
claims due rows and records each delivery attempt.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..models.event_outbox import EventOutbox, EventOutboxStatus
from .base_repository import BaseRepository

MAX_ERROR_LENGTH = 1000


class EventOutboxRepository(BaseRepository[EventOutbox]):
    def __init__(self, db: Session):
        super().__init__(db, EventOutbox)

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> bool:
        """
        Add a pending event unless its idempotency key is already present.

        Returns True when a new row was written. A duplicate key leaves the
        existing row (and its attempt history) untouched.
        """
        values = {
            "id": generate_ulid(),
            "event_type": event_type,
            "aggregate_id": aggregate_id,
            "payload": payload or {},
            "idempotency_key": idempotency_key or f"{event_type}:{aggregate_id}",
            "status": EventOutboxStatus.PENDING.value,
            "attempt_count": 0,
            "next_attempt_at": utc_now(),
        }

        dialect = self.dialect_name
        if dialect == "postgresql":
            stmt = pg_insert(EventOutbox).values(**values).on_conflict_do_nothing(
                index_elements=["idempotency_key"]
            )
        elif dialect == "sqlite":
            stmt = insert(EventOutbox).values(**values).prefix_with("OR IGNORE")
        else:
            if self.find_by_idempotency_key(values["idempotency_key"]) is not None:
                return False
            stmt = insert(EventOutbox).values(**values)

        inserted = bool(self.db.execute(stmt).rowcount)
        if not inserted:
            self.logger.debug("Outbox key %s already queued", values["idempotency_key"])
        return inserted

    def find_by_idempotency_key(self, key: str) -> Optional[EventOutbox]:
        return self.db.execute(
            select(EventOutbox).where(EventOutbox.idempotency_key == key)
        ).scalar_one_or_none()

    def due_for_delivery(self, limit: int, now: Optional[datetime] = None) -> List[EventOutbox]:
        """Pending rows whose next attempt is due, oldest schedule first."""
        stmt = (
            select(EventOutbox)
            .where(
                EventOutbox.status == EventOutboxStatus.PENDING.value,
                EventOutbox.next_attempt_at <= (now or utc_now()),
            )
            .order_by(EventOutbox.next_attempt_at, EventOutbox.id)
            .limit(limit)
        )
        # Parallel dispatchers on PostgreSQL skip rows another worker holds
        if self.dialect_name == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return list(self.db.execute(stmt).scalars())

    def claim_due(
        self, limit: int, *, lease_seconds: int, now: Optional[datetime] = None
    ) -> List[str]:
        """
        Lease due rows to the caller and return their ids.

        Leased rows stay pending but are not due again until the lease runs
        out, unless a delivery attempt reschedules them first.
        """
        now = now or utc_now()
        event_ids = [event.id for event in self.due_for_delivery(limit, now)]
        if event_ids:
            self.db.execute(
                update(EventOutbox)
                .where(EventOutbox.id.in_(event_ids))
                .where(EventOutbox.status == EventOutboxStatus.PENDING.value)
                .values(next_attempt_at=now + timedelta(seconds=lease_seconds), updated_at=now)
            )
            self.db.flush()
        return event_ids

    def record_delivered(self, event_id: str, attempt_number: int) -> None:
        self._record_attempt(
            event_id,
            attempt_number,
            status=EventOutboxStatus.SENT,
            error=None,
        )

    def record_failed_attempt(
        self,
        event_id: str,
        attempt_number: int,
        *,
        error: Optional[str],
        retry_in: Optional[int],
    ) -> None:
        """A ``retry_in`` of None makes the failure terminal."""
        self._record_attempt(
            event_id,
            attempt_number,
            status=EventOutboxStatus.FAILED if retry_in is None else EventOutboxStatus.PENDING,
            error=error,
            retry_in=retry_in,
        )

    def _record_attempt(
        self,
        event_id: str,
        attempt_number: int,
        *,
        status: EventOutboxStatus,
        error: Optional[str],
        retry_in: Optional[int] = None,
    ) -> None:
        now = utc_now()
        next_attempt_at = now + timedelta(seconds=max(retry_in, 1)) if retry_in else now
        self.db.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                status=status.value,
                attempt_count=attempt_number,
                last_error=error[:MAX_ERROR_LENGTH] if error else None,
                next_attempt_at=next_attempt_at,
                updated_at=now,
            )
        )
        self.db.flush()
