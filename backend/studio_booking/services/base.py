# backend/studio_booking/services/base.py
"""
Base Service Pattern for the booking engine.

Provides common functionality for all service classes including:
- Transaction management (with a single retry for write conflicts)
- Logging
- Performance monitoring
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, TypeVar, cast

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ConflictException, ServiceException, StaleCreditError
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

R = TypeVar("R")

# Lost races on conditional updates, unique indexes, and lock/serialization timeouts
RETRYABLE_ERRORS = (StaleCreditError, IntegrityError, OperationalError)


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Logging
    - Transaction handling
    - Performance monitoring
    """

    # Class-level metrics storage
    _class_metrics: Dict[str, Dict[str, Dict[str, float]]] = {}

    def __init__(self, db: Session):
        """
        Initialize base service.

        Args:
            db: Database session
        """
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Usage:
            with self.transaction():
                self.db.add(entity)
                # commit is handled automatically
        """
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            self.logger.error("Transaction failed: %s", e)
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {str(e)}")
        except Exception as e:
            self.logger.error("Unexpected error in transaction: %s", e)
            self.db.rollback()
            raise

    def run_with_retry(self, operation: str, func: Callable[[], R], *, retries: int = 1) -> R:
        """
        Run ``func`` in its own transaction, retrying once on a write conflict.

        Every attempt starts from a rolled-back session, so ``func`` must do
        its own reads. When the retry also loses, the caller gets a Conflict.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                result = func()
                self.db.commit()
                return result
            except RETRYABLE_ERRORS as exc:
                self.db.rollback()
                if attempt > retries:
                    self.logger.warning(
                        "Giving up on %s after %s attempts: %s",
                        operation,
                        attempt,
                        exc,
                        extra={"operation": operation, "error_type": type(exc).__name__},
                    )
                    raise ConflictException(
                        "This class changed while your request was processed. Please try again.",
                        code="CONCURRENT_UPDATE",
                        details={"operation": operation},
                    ) from exc
                self.logger.info(
                    "Retrying %s after %s",
                    operation,
                    type(exc).__name__,
                    extra={"operation": operation, "attempt": attempt},
                )
            except SQLAlchemyError as exc:
                self.logger.error("Transaction failed in %s: %s", operation, exc)
                self.db.rollback()
                raise ServiceException(f"Database operation failed: {str(exc)}") from exc
            except Exception:
                self.db.rollback()
                raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("book_class")
            def book(self, ...):
                ...
        """

        F = TypeVar("F", bound=Callable[..., Any])

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time

                    if hasattr(self, "_record_metric"):
                        self._record_metric(operation_name, elapsed, success)

                    # Only log if it's actually slow
                    if elapsed > settings.slow_operation_threshold_seconds and hasattr(
                        self, "logger"
                    ):
                        self.logger.warning(
                            "Slow operation detected: %s took %.2fs", operation_name, elapsed
                        )

                    try:
                        prometheus_metrics.record_service_operation(
                            service=self.__class__.__name__,
                            operation=operation_name,
                            duration=elapsed,
                            status="success" if success else "error",
                            error_type=error_type,
                        )
                    except Exception:
                        # Don't let metrics collection break the operation
                        pass

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log an operation with structured context."""
        self.logger.info("Operation: %s", operation, extra={"operation": operation, **context})

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        class_name = self.__class__.__name__
        metrics = BaseService._class_metrics.setdefault(class_name, {})
        data = metrics.setdefault(
            operation,
            {"count": 0, "total_time": 0.0, "success_count": 0, "failure_count": 0},
        )
        data["count"] += 1
        data["total_time"] += elapsed
        if success:
            data["success_count"] += 1
        else:
            data["failure_count"] += 1

    def get_metrics(self) -> Dict[str, Dict[str, float]]:
        """
        Get performance metrics for this service.

        Returns:
            Dictionary with count, average time and success rate per operation
        """
        result: Dict[str, Dict[str, float]] = {}
        for operation, data in BaseService._class_metrics.get(self.__class__.__name__, {}).items():
            count = data["count"]
            if not count:
                continue
            result[operation] = {
                "count": count,
                "avg_time": data["total_time"] / count,
                "success_rate": data["success_count"] / count,
            }
        return result
