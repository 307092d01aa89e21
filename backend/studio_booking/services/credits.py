# backend/studio_booking/services/credits.py
"""
Entitlement variants.

Each kind of credit knows how to find a usable entitlement for a member
(``resolve``), consume one class from it (``deduct``), and give that class
back (``refund``). ``ENTITLEMENT_PRIORITY`` fixes the order in which the
variants are consulted; the first variant that resolves pays for the seat.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import ClassVar, Optional, Type

from ..core.exceptions import StaleCreditError
from ..models.entitlement import ClassPack, CompClass, CreditSource, PlanType, Subscription
from ..repositories.entitlement_repository import CountedModel, EntitlementRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedCredit:
    """
    The entitlement chosen to pay for one class.

    ``remaining_after`` is the balance once this class is consumed (None for
    unlimited subscriptions). It is stored on the booking and used as the
    pivot when refunding.
    """

    source: CreditSource
    source_id: str
    remaining_after: Optional[int]


class EntitlementStrategy(ABC):
    source: ClassVar[CreditSource]

    def __init__(self, repository: EntitlementRepository):
        self.repository = repository

    @abstractmethod
    def resolve(self, member_id: str, studio_id: str, now: datetime) -> Optional[ResolvedCredit]:
        """Pick the entitlement of this kind that would pay, without mutating it."""

    @abstractmethod
    def deduct(self, credit: ResolvedCredit) -> None:
        """Consume one class; raises StaleCreditError if the entitlement moved."""

    @abstractmethod
    def refund(self, credit: ResolvedCredit) -> bool:
        """Return one class; False when there was nothing to give back."""


class _CountedBalanceStrategy(EntitlementStrategy):
    """Shared logic for entitlements holding a remaining_classes balance."""

    model: ClassVar[CountedModel]

    @abstractmethod
    def _candidates(self, member_id: str, studio_id: str, now: datetime) -> list:
        """Usable entitlements of this kind, the one to consume first."""

    def resolve(self, member_id: str, studio_id: str, now: datetime) -> Optional[ResolvedCredit]:
        candidates = self._candidates(member_id, studio_id, now)
        if not candidates:
            return None
        chosen = candidates[0]
        return ResolvedCredit(
            source=self.source,
            source_id=chosen.id,
            remaining_after=chosen.remaining_classes - 1,
        )

    def deduct(self, credit: ResolvedCredit) -> None:
        if credit.remaining_after is None:
            raise ValueError(f"{self.source.value} credit requires remaining_after")
        if not self.repository.set_remaining_if(
            self.model,
            credit.source_id,
            expected=credit.remaining_after + 1,
            new=credit.remaining_after,
        ):
            raise StaleCreditError(
                f"{self.source.value} {credit.source_id} changed before deduction"
            )

    def refund(self, credit: ResolvedCredit) -> bool:
        if credit.remaining_after is not None and self.repository.set_remaining_if(
            self.model,
            credit.source_id,
            expected=credit.remaining_after,
            new=credit.remaining_after + 1,
        ):
            return True
        # Balance moved since the deduction; add one back without exceeding the grant
        restored = self.repository.increment_remaining_capped(self.model, credit.source_id)
        if not restored:
            logger.warning(
                "Refund skipped, entitlement full, revoked or missing",
                extra={"source": self.source.value, "source_id": credit.source_id},
            )
        return restored


class CompClassStrategy(_CountedBalanceStrategy):
    source = CreditSource.COMP_CLASS
    model = CompClass

    def _candidates(self, member_id: str, studio_id: str, now: datetime) -> list:
        return self.repository.available_comps(member_id, studio_id, now)


class ClassPackStrategy(_CountedBalanceStrategy):
    source = CreditSource.CLASS_PACK
    model = ClassPack

    def _candidates(self, member_id: str, studio_id: str, now: datetime) -> list:
        return self.repository.available_packs(member_id, studio_id, now)


class UnlimitedSubscriptionStrategy(EntitlementStrategy):
    source = CreditSource.SUBSCRIPTION_UNLIMITED

    def resolve(self, member_id: str, studio_id: str, now: datetime) -> Optional[ResolvedCredit]:
        for subscription in self.repository.active_subscriptions(member_id, studio_id):
            plan = subscription.plan
            if plan is not None and plan.plan_type == PlanType.UNLIMITED.value:
                return ResolvedCredit(
                    source=self.source, source_id=subscription.id, remaining_after=None
                )
        return None

    def deduct(self, credit: ResolvedCredit) -> None:
        return None

    def refund(self, credit: ResolvedCredit) -> bool:
        return True


class LimitedSubscriptionStrategy(EntitlementStrategy):
    source = CreditSource.SUBSCRIPTION_LIMITED

    @staticmethod
    def _class_limit(subscription: Subscription) -> Optional[int]:
        plan = subscription.plan
        if plan is None or plan.plan_type != PlanType.LIMITED.value:
            return None
        return plan.class_limit

    def resolve(self, member_id: str, studio_id: str, now: datetime) -> Optional[ResolvedCredit]:
        for subscription in self.repository.active_subscriptions(member_id, studio_id):
            limit = self._class_limit(subscription)
            if limit is None:
                continue
            used = subscription.classes_used_this_period or 0
            if used < limit:
                return ResolvedCredit(
                    source=self.source,
                    source_id=subscription.id,
                    remaining_after=limit - used - 1,
                )
        return None

    def deduct(self, credit: ResolvedCredit) -> None:
        subscription = self.repository.get_subscription(credit.source_id)
        limit = self._class_limit(subscription) if subscription is not None else None
        if limit is None or not self.repository.increment_used_if_below(credit.source_id, limit):
            raise StaleCreditError(
                f"subscription {credit.source_id} has no classes left this period"
            )

    def refund(self, credit: ResolvedCredit) -> bool:
        return self.repository.decrement_used(credit.source_id)


ENTITLEMENT_PRIORITY: tuple[Type[EntitlementStrategy], ...] = (
    CompClassStrategy,
    UnlimitedSubscriptionStrategy,
    LimitedSubscriptionStrategy,
    ClassPackStrategy,
)
