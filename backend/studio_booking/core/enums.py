"""Shared string enums for studio roles and membership states."""

from enum import Enum


class StudioRole(str, Enum):
    """Roles a user can hold within a studio."""

    MEMBER = "member"
    TEACHER = "teacher"
    ADMIN = "admin"
    OWNER = "owner"


STAFF_ROLES = frozenset(
    {StudioRole.TEACHER.value, StudioRole.ADMIN.value, StudioRole.OWNER.value}
)
# Coupon management is limited to studio administrators
ADMIN_ROLES = frozenset({StudioRole.ADMIN.value, StudioRole.OWNER.value})


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
