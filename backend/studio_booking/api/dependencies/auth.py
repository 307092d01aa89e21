# backend/studio_booking/api/dependencies/auth.py
"""
Actor identity dependency.

Authentication happens upstream (API gateway). Requests reach this service
with the authenticated user's id in ``X-User-Id``; studio roles are checked
by the services against studio memberships.
"""

import logging
import re
from typing import Optional

from fastapi import Header, HTTPException, status

from ...core.ulid_helper import ULID_PATTERN

logger = logging.getLogger(__name__)

_ULID_RE = re.compile(ULID_PATTERN)


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Return the authenticated user id or reject the request."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    user_id = x_user_id.strip()
    if not _ULID_RE.match(user_id):
        logger.warning("Rejected malformed X-User-Id header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity",
        )
    return user_id
