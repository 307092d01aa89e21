# backend/studio_booking/repositories/coupon_repository.py
"""
Coupon lookups, the redemption counter, and the redemption audit log.
"""

from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.coupon import Coupon, CouponRedemption
from .base_repository import BaseRepository


class CouponRepository(BaseRepository[Coupon]):
    def __init__(self, db: Session):
        super().__init__(db, Coupon)

    def get_by_code(self, studio_id: str, code: str) -> Optional[Coupon]:
        return (
            self.db.query(Coupon)
            .filter(Coupon.studio_id == studio_id, Coupon.code == code.strip().upper())
            .first()
        )

    def get_for_studio(self, coupon_id: str, studio_id: str) -> Optional[Coupon]:
        return (
            self.db.query(Coupon)
            .filter(Coupon.id == coupon_id, Coupon.studio_id == studio_id)
            .first()
        )

    def list_for_studio(self, studio_id: str, include_inactive: bool = True) -> List[Coupon]:
        query = self.db.query(Coupon).filter(Coupon.studio_id == studio_id)
        if not include_inactive:
            query = query.filter(Coupon.active.is_(True))
        return query.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()

    def try_increment_redemptions(self, coupon_id: str) -> bool:
        """
        Compare-and-increment against the cap.

        False means the coupon is exhausted (or was deactivated meanwhile).
        """
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .where(Coupon.active.is_(True))
            .where(
                (Coupon.max_redemptions.is_(None))
                | (Coupon.current_redemptions < Coupon.max_redemptions)
            )
            .values(current_redemptions=Coupon.current_redemptions + 1)
        )
        return self._execute_update(stmt) == 1

    def deactivate(self, coupon_id: str, studio_id: str) -> bool:
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .where(Coupon.studio_id == studio_id)
            .values(active=False)
        )
        return self._execute_update(stmt) == 1

    def set_gateway_coupon_id(self, coupon_id: str, gateway_coupon_id: str) -> None:
        self._execute_update(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .where(Coupon.gateway_coupon_id.is_(None))
            .values(gateway_coupon_id=gateway_coupon_id)
        )

    def record_redemption(self, **values) -> CouponRedemption:
        redemption = CouponRedemption(**values)
        self.db.add(redemption)
        self.db.flush()
        return redemption
