# backend/studio_booking/services/credit_service.py
"""
Credit Resolution Engine.

Picks which entitlement pays for a class and moves the ledger. ``resolve``
is read-only; ``deduct`` and ``refund`` run inside the caller's transaction
so a seat claim and its payment commit or roll back together.

Comp-grant administration (grant, revoke, list) also lives here since comp
classes are the top-priority entitlement.
"""

from datetime import datetime
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import ensure_aware, utc_now
from ..models.booking import Booking
from ..models.entitlement import CompClass, CreditSource
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.entitlement_repository import EntitlementRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.studio_repository import StudioRepository
from .base import BaseService
from .credits import ENTITLEMENT_PRIORITY, EntitlementStrategy, ResolvedCredit

logger = logging.getLogger(__name__)


class CreditService(BaseService):
    def __init__(
        self,
        db: Session,
        entitlement_repository: Optional[EntitlementRepository] = None,
        studio_repository: Optional[StudioRepository] = None,
    ):
        super().__init__(db)
        self.entitlement_repository = (
            entitlement_repository or RepositoryFactory.create_entitlement_repository(db)
        )
        self.studio_repository = studio_repository or RepositoryFactory.create_studio_repository(db)
        self.strategies: Dict[CreditSource, EntitlementStrategy] = {
            strategy_cls.source: strategy_cls(self.entitlement_repository)
            for strategy_cls in ENTITLEMENT_PRIORITY
        }

    # ------------------------------------------------------------ resolution
    def resolve(
        self, member_id: str, studio_id: str, now: Optional[datetime] = None
    ) -> Optional[ResolvedCredit]:
        """
        First usable entitlement in priority order, or None.

        Order: comp classes, unlimited subscription, limited subscription with
        classes left this period, class packs.
        """
        now = now or utc_now()
        for strategy_cls in ENTITLEMENT_PRIORITY:
            credit = self.strategies[strategy_cls.source].resolve(member_id, studio_id, now)
            if credit is not None:
                self.logger.debug(
                    "Resolved credit",
                    extra={
                        "member_id": member_id,
                        "studio_id": studio_id,
                        "source": credit.source.value,
                        "source_id": credit.source_id,
                    },
                )
                return credit
        return None

    def deduct(self, credit: ResolvedCredit) -> None:
        self.strategies[credit.source].deduct(credit)
        prometheus_metrics.record_credit_deducted(credit.source.value)

    def refund(self, credit: ResolvedCredit) -> bool:
        refunded = self.strategies[credit.source].refund(credit)
        if refunded:
            prometheus_metrics.record_credit_refunded(credit.source.value)
        return refunded

    @staticmethod
    def credit_from_booking(booking: Booking) -> Optional[ResolvedCredit]:
        """Rebuild the credit a booking paid with, if it paid with one."""
        if not booking.credit_source or not booking.credit_source_id:
            return None
        try:
            source = CreditSource(booking.credit_source)
        except ValueError:
            logger.warning(
                "Booking has unknown credit source",
                extra={"booking_id": booking.id, "credit_source": booking.credit_source},
            )
            return None
        return ResolvedCredit(
            source=source,
            source_id=booking.credit_source_id,
            remaining_after=booking.credit_remaining_after,
        )

    # ----------------------------------------------------------- comp grants
    def _require_staff(self, studio_id: str, actor_id: str) -> None:
        if not self.studio_repository.is_staff(studio_id, actor_id):
            raise ForbiddenException("Only studio staff can manage comp classes")

    @BaseService.measure_operation("grant_comp")
    def grant_comp(
        self,
        studio_id: str,
        member_id: str,
        classes: int,
        actor_id: str,
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> CompClass:
        """Grant free classes to an active member of the studio."""
        self._require_staff(studio_id, actor_id)
        if not isinstance(classes, int) or classes < 1:
            raise ValidationException("classes must be a positive integer", code="INVALID_CLASSES")
        if expires_at is not None and ensure_aware(expires_at) <= utc_now():
            raise ValidationException("expiresAt must be in the future", code="INVALID_EXPIRY")
        if not self.studio_repository.is_active_member(studio_id, member_id):
            raise NotFoundException("Member not found in this studio", code="MEMBER_NOT_FOUND")

        with self.transaction():
            comp = self.entitlement_repository.create_comp(
                studio_id=studio_id,
                user_id=member_id,
                classes=classes,
                reason=reason,
                expires_at=expires_at,
                granted_by_id=actor_id,
            )
        self.log_operation(
            "grant_comp", studio_id=studio_id, member_id=member_id, classes=classes
        )
        return comp

    @BaseService.measure_operation("revoke_comp")
    def revoke_comp(self, studio_id: str, comp_id: str, actor_id: str) -> None:
        """Zero a comp grant's balance; the row stays for audit."""
        self._require_staff(studio_id, actor_id)
        with self.transaction():
            if not self.entitlement_repository.revoke_comp(comp_id, studio_id, utc_now()):
                raise NotFoundException("Comp class not found", code="COMP_NOT_FOUND")
        self.log_operation("revoke_comp", studio_id=studio_id, comp_id=comp_id)

    def list_available_comps(
        self, studio_id: str, member_id: str, actor_id: str
    ) -> List[CompClass]:
        """Usable comp grants for a member; members may only list their own."""
        if actor_id != member_id:
            self._require_staff(studio_id, actor_id)
        return self.entitlement_repository.available_comps(member_id, studio_id, utc_now())

    def list_studio_comps(self, studio_id: str, actor_id: str) -> List[CompClass]:
        """All comp grants in a studio for the staff overview."""
        self._require_staff(studio_id, actor_id)
        return self.entitlement_repository.list_studio_comps(studio_id)
