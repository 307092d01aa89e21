# backend/studio_booking/api/dependencies/database.py
"""
Session dependency for routes.

Kept separate from ``studio_booking.database.get_db`` so tests override a
single seam without touching the session factory.
"""

from typing import Generator

from sqlalchemy.orm import Session

from ...database import get_db as session_scope


def get_db() -> Generator[Session, None, None]:
    yield from session_scope()
