"""
Dialect helpers for repositories that issue backend-specific SQL
(row locks, insert-or-ignore).
"""

from __future__ import annotations

from sqlalchemy.orm import Session


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """
    Name of the dialect the session is bound to.

    Falls back to ``default`` for unbound or mocked sessions.
    """
    try:
        bind = session.get_bind()
    except Exception:
        return default
    name = getattr(getattr(bind, "dialect", None), "name", None)
    return name if isinstance(name, str) and name else default
