# backend/studio_booking/models/studio.py
"""
Studio and membership records.

These rows are owned by the wider platform; the booking engine only reads
them to resolve a class's timezone, its cancellation policy, and whether an
actor is a member or staff of the studio.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import ADMIN_ROLES, STAFF_ROLES, MembershipStatus, StudioRole
from ..core.ulid_helper import generate_ulid
from ..database import Base


class Studio(Base):
    __tablename__ = "studios"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    name = Column(String(200), nullable=False)
    # IANA zone name used to interpret class start times
    timezone = Column(String(64), nullable=False, default="UTC")
    # NULL means "use the configured default"
    cancellation_window_hours = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    memberships = relationship("StudioMembership", back_populates="studio", lazy="select")

    __table_args__ = (
        CheckConstraint(
            "cancellation_window_hours IS NULL OR cancellation_window_hours >= 0",
            name="ck_studios_cancellation_window_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return f"<Studio {self.id} tz={self.timezone}>"


class StudioMembership(Base):
    """A user's role within a studio."""

    __tablename__ = "studio_memberships"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    studio_id = Column(String(26), ForeignKey("studios.id"), nullable=False, index=True)
    user_id = Column(String(26), nullable=False, index=True)
    role = Column(String(20), nullable=False, default=StudioRole.MEMBER.value)
    status = Column(String(20), nullable=False, default=MembershipStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    studio = relationship("Studio", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("studio_id", "user_id", name="uq_studio_memberships_studio_user"),
        CheckConstraint(
            "role IN ('member', 'teacher', 'admin', 'owner')",
            name="ck_studio_memberships_role",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE.value

    @property
    def is_staff(self) -> bool:
        return self.is_active and self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.is_active and self.role in ADMIN_ROLES
