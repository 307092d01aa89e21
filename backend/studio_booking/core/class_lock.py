"""
Advisory per-class mutex backed by Redis.

Serialises booking, cancellation and promotion for a single class instance
across API workers. The database's conditional updates remain the source of
truth, so every failure path here fails open.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Iterator, Optional

from redis import Redis

from studio_booking.core.config import settings
from studio_booking.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()


def _lock_key(class_instance_id: str) -> str:
    return f"{settings.lock_namespace}:lock:class:{class_instance_id}:mutex"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if not settings.redis_url:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=settings.redis_socket_timeout,
                socket_connect_timeout=settings.redis_socket_timeout,
            )
            client.ping()
        except Exception as exc:
            logger.warning("class_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def acquire_class_lock(
    class_instance_id: str,
    ttl_s: Optional[int] = None,
    wait_s: float = 2.0,
    poll_s: float = 0.05,
) -> bool:
    """
    Try to take the per-class mutex, polling for up to ``wait_s`` seconds.

    Returns False only when another holder kept the lock for the whole wait.
    """
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_class_lock("acquire", "redis_unavailable")
        return True

    ttl = ttl_s or settings.class_lock_ttl_seconds
    deadline = time.monotonic() + wait_s
    try:
        while True:
            acquired = bool(
                client.set(_lock_key(class_instance_id), str(time.time()), nx=True, ex=ttl)
            )
            if acquired:
                prometheus_metrics.record_class_lock("acquire", "success")
                return True
            if time.monotonic() >= deadline:
                prometheus_metrics.record_class_lock("acquire", "blocked")
                return False
            time.sleep(poll_s)
    except Exception as exc:
        prometheus_metrics.record_class_lock("acquire", "error")
        logger.warning(
            "class_lock_acquire_failed",
            extra={
                "class_instance_id": class_instance_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return True


def release_class_lock(class_instance_id: str) -> None:
    client = _get_sync_redis()
    if client is None:
        return
    try:
        deleted = client.delete(_lock_key(class_instance_id))
        if deleted:
            prometheus_metrics.record_class_lock("release", "success")
        else:
            prometheus_metrics.record_class_lock("release", "not_found")
    except Exception as exc:
        prometheus_metrics.record_class_lock("release", "error")
        logger.warning(
            "class_lock_release_failed",
            extra={
                "class_instance_id": class_instance_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def class_lock(class_instance_id: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    """
    Hold the per-class mutex for the duration of the block.

    Yields whether the lock was obtained. Callers proceed either way; a
    blocked lock only means the database constraints carry the full load.
    """
    acquired = acquire_class_lock(class_instance_id, ttl_s=ttl_s)
    if not acquired:
        logger.info(
            "class_lock_contended",
            extra={"class_instance_id": class_instance_id},
        )
    try:
        yield acquired
    finally:
        if acquired and settings.redis_url:
            release_class_lock(class_instance_id)
