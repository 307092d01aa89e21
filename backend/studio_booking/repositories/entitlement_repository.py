# backend/studio_booking/repositories/entitlement_repository.py
"""
Credit ledger repository.

Reads return candidates in the order the resolver consumes them. Every
mutation is a conditional UPDATE: a zero row count means the entitlement
moved under us and the caller must re-resolve.
"""

from datetime import datetime
import logging
from typing import List, Optional, Type, Union

from sqlalchemy import Update, func, select, update
from sqlalchemy.orm import Session

from ..models.entitlement import (
    ClassPack,
    CompClass,
    MembershipPlan,
    Subscription,
    SubscriptionStatus,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

CountedModel = Union[Type[CompClass], Type[ClassPack]]


class EntitlementRepository(BaseRepository[CompClass]):
    """Access to comp grants, subscriptions and class packs for one member."""

    def __init__(self, db: Session):
        super().__init__(db, CompClass)

    # ------------------------------------------------------------------ reads
    def _available(
        self, model: CountedModel, user_id: str, studio_id: str, now: datetime
    ) -> list:
        # Earliest expiry first, non-expiring grants last, then oldest
        return (
            self.db.query(model)
            .filter(
                model.user_id == user_id,
                model.studio_id == studio_id,
                model.remaining_classes > 0,
                (model.expires_at.is_(None)) | (model.expires_at > now),
            )
            .order_by(
                model.expires_at.is_(None).asc(),
                model.expires_at.asc(),
                model.created_at.asc(),
                model.id.asc(),
            )
            .all()
        )

    def available_comps(self, user_id: str, studio_id: str, now: datetime) -> List[CompClass]:
        return self._available(CompClass, user_id, studio_id, now)

    def available_packs(self, user_id: str, studio_id: str, now: datetime) -> List[ClassPack]:
        return self._available(ClassPack, user_id, studio_id, now)

    def list_studio_comps(self, studio_id: str) -> List[CompClass]:
        """
        Every grant in the studio, newest first, revoked and used-up included.

        Balances move through conditional updates, so loaded rows are refreshed.
        """
        return (
            self.db.query(CompClass)
            .filter(CompClass.studio_id == studio_id)
            .order_by(CompClass.created_at.desc(), CompClass.id.desc())
            .populate_existing()
            .all()
        )

    def active_subscriptions(self, user_id: str, studio_id: str) -> List[Subscription]:
        return (
            self.db.query(Subscription)
            .join(MembershipPlan, MembershipPlan.id == Subscription.plan_id)
            .filter(
                Subscription.user_id == user_id,
                Subscription.studio_id == studio_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .order_by(Subscription.created_at.asc(), Subscription.id.asc())
            .all()
        )

    def count_subscriptions(self, user_id: str, studio_id: str) -> int:
        """Subscriptions in any status; zero means the member is new to the studio."""
        return int(
            self.db.execute(
                select(func.count(Subscription.id)).where(
                    Subscription.user_id == user_id,
                    Subscription.studio_id == studio_id,
                )
            ).scalar_one()
        )

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return self.db.get(Subscription, subscription_id)

    # ------------------------------------------------------- counted balances
    @staticmethod
    def _balance_update(model: CountedModel, entitlement_id: str) -> Update:
        stmt = update(model).where(model.id == entitlement_id)
        if model is CompClass:
            stmt = stmt.where(CompClass.revoked_at.is_(None))
        return stmt

    def set_remaining_if(
        self, model: CountedModel, entitlement_id: str, expected: int, new: int
    ) -> bool:
        """Compare-and-set on remaining_classes; revoked comps never match."""
        stmt = (
            self._balance_update(model, entitlement_id)
            .where(model.remaining_classes == expected)
            .values(remaining_classes=new)
        )
        return self._execute_update(stmt) == 1

    def increment_remaining_capped(self, model: CountedModel, entitlement_id: str) -> bool:
        """Add one class back without exceeding the original grant."""
        stmt = (
            self._balance_update(model, entitlement_id)
            .where(model.remaining_classes < model.total_classes)
            .values(remaining_classes=model.remaining_classes + 1)
        )
        return self._execute_update(stmt) == 1

    # -------------------------------------------------------- period counters
    def increment_used_if_below(self, subscription_id: str, class_limit: int) -> bool:
        stmt = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .where(Subscription.status == SubscriptionStatus.ACTIVE.value)
            .where(Subscription.classes_used_this_period < class_limit)
            .values(classes_used_this_period=Subscription.classes_used_this_period + 1)
        )
        return self._execute_update(stmt) == 1

    def decrement_used(self, subscription_id: str) -> bool:
        stmt = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .where(Subscription.classes_used_this_period > 0)
            .values(classes_used_this_period=Subscription.classes_used_this_period - 1)
        )
        return self._execute_update(stmt) == 1

    # ---------------------------------------------------------- comp grants
    def create_comp(
        self,
        *,
        studio_id: str,
        user_id: str,
        classes: int,
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        granted_by_id: Optional[str] = None,
    ) -> CompClass:
        return self.create(
            studio_id=studio_id,
            user_id=user_id,
            total_classes=classes,
            remaining_classes=classes,
            reason=reason,
            expires_at=expires_at,
            granted_by_id=granted_by_id,
        )

    def revoke_comp(self, comp_id: str, studio_id: str, now: datetime) -> bool:
        stmt = (
            update(CompClass)
            .where(CompClass.id == comp_id)
            .where(CompClass.studio_id == studio_id)
            .values(
                remaining_classes=0,
                revoked_at=func.coalesce(CompClass.revoked_at, now),
            )
        )
        return self._execute_update(stmt) == 1
