# backend/studio_booking/repositories/studio_repository.py
from typing import Optional

from sqlalchemy.orm import Session

from ..models.studio import Studio, StudioMembership
from .base_repository import BaseRepository


class StudioRepository(BaseRepository[Studio]):
    """Read-only access to studios and their memberships."""

    def __init__(self, db: Session):
        super().__init__(db, Studio)

    def get_membership(self, studio_id: str, user_id: str) -> Optional[StudioMembership]:
        return (
            self.db.query(StudioMembership)
            .filter(
                StudioMembership.studio_id == studio_id,
                StudioMembership.user_id == user_id,
            )
            .first()
        )

    def is_active_member(self, studio_id: str, user_id: str) -> bool:
        membership = self.get_membership(studio_id, user_id)
        return membership is not None and membership.is_active

    def is_staff(self, studio_id: str, user_id: str) -> bool:
        membership = self.get_membership(studio_id, user_id)
        return membership is not None and membership.is_staff

    def is_admin(self, studio_id: str, user_id: str) -> bool:
        membership = self.get_membership(studio_id, user_id)
        return membership is not None and membership.is_admin
