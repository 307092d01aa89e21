# backend/studio_booking/repositories/class_instance_repository.py
"""
Seat ledger access for class instances.

Seat claims and releases are single conditional UPDATE statements. On
PostgreSQL the claim takes the row lock for the rest of the transaction,
which serialises admissions for one class without touching any other.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models.class_instance import ClassInstance, ClassStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ClassInstanceRepository(BaseRepository[ClassInstance]):
    def __init__(self, db: Session):
        super().__init__(db, ClassInstance)

    def get_for_studio(self, class_instance_id: str, studio_id: str) -> Optional[ClassInstance]:
        return (
            self.db.query(ClassInstance)
            .filter(
                ClassInstance.id == class_instance_id,
                ClassInstance.studio_id == studio_id,
            )
            .first()
        )

    def claim_seat(self, class_instance_id: str) -> bool:
        """
        Atomically take one seat if the class is scheduled and not full.

        Returns True when a seat was claimed.
        """
        stmt = (
            update(ClassInstance)
            .where(ClassInstance.id == class_instance_id)
            .where(ClassInstance.status == ClassStatus.SCHEDULED.value)
            .where(ClassInstance.booked_count < ClassInstance.capacity)
            .values(booked_count=ClassInstance.booked_count + 1)
        )
        claimed = self._execute_update(stmt) == 1
        self.logger.debug(
            "seat_claim",
            extra={"class_instance_id": class_instance_id, "claimed": claimed},
        )
        return claimed

    def release_seat(self, class_instance_id: str) -> bool:
        """Give one seat back; never drives the ledger below zero."""
        stmt = (
            update(ClassInstance)
            .where(ClassInstance.id == class_instance_id)
            .where(ClassInstance.booked_count > 0)
            .values(booked_count=ClassInstance.booked_count - 1)
        )
        released = self._execute_update(stmt) == 1
        if not released:
            logger.warning(
                "Seat release found an empty ledger",
                extra={"class_instance_id": class_instance_id},
            )
        return released

    def get_booked_count(self, class_instance_id: str) -> int:
        """Fresh read of the seat ledger, bypassing the identity map."""
        value = self.db.execute(
            select(ClassInstance.booked_count).where(ClassInstance.id == class_instance_id)
        ).scalar_one_or_none()
        return int(value or 0)
