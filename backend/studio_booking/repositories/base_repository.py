# backend/studio_booking/repositories/base_repository.py
"""
Base Repository Pattern for the booking engine.

Provides the foundation for all repository classes with:
- Common lookup and create operations
- Type safety with generics
- Transaction support (managed by services)
- A helper for conditional UPDATE statements whose row count matters

Repositories never commit; the owning service decides the transaction
boundary.
"""

import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import Update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import get_dialect_name

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        """
        Initialize repository with database session and model.

        Args:
            db: SQLAlchemy session (managed by service layer)
            model: SQLAlchemy model class
        """
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an entity by its primary key."""
        try:
            return self.db.query(self.model).filter(self.model.id == id).first()
        except SQLAlchemyError as e:
            self.logger.error("Error getting %s by id %s: %s", self.model.__name__, id, e)
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {e}") from e

    def refresh(self, instance: T) -> None:
        """Reload an instance after a bulk UPDATE touched its row."""
        self.db.refresh(instance)

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        Integrity and lock errors propagate unchanged so callers can retry
        or map them to conflicts.
        """
        entity = self.model(**kwargs)
        try:
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except (IntegrityError, OperationalError):
            self.logger.info("Constraint or lock error creating %s", self.model.__name__)
            raise
        except SQLAlchemyError as e:
            self.logger.error("Error creating %s: %s", self.model.__name__, e)
            raise RepositoryException(f"Failed to create {self.model.__name__}: {e}") from e

    # Protected helper methods for use by subclasses

    def _execute_update(self, stmt: Update) -> int:
        """
        Run a conditional UPDATE and return the number of matched rows.

        Session identity-map objects are not synchronised; callers refresh
        the instances they still hold.
        """
        try:
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            return int(result.rowcount or 0)
        except (IntegrityError, OperationalError):
            raise
        except SQLAlchemyError as e:
            self.logger.error("Conditional update on %s failed: %s", self.model.__name__, e)
            raise RepositoryException(f"Failed to update {self.model.__name__}: {e}") from e
