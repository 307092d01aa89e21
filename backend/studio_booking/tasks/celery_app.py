# backend/studio_booking/tasks/celery_app.py
"""
Celery application for outbox delivery.

Redis is the broker. The only periodic work is draining the notification
outbox; delivery runs on the ``notifications`` queue.
"""

import logging
from typing import Any

from celery import Celery
from celery.signals import setup_logging

from studio_booking.core.config import settings

OUTBOX_DISPATCH_INTERVAL_SECONDS = 30.0


def _broker_url() -> str:
    # Priority: CELERY_BROKER_URL -> REDIS_URL -> local default
    broker_url = settings.celery_broker_url or settings.redis_url or "redis://localhost:6379"
    if not any(broker_url.endswith(f"/{i}") for i in range(16)):
        broker_url = f"{broker_url}/0"
    return broker_url


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    broker_url = _broker_url()
    app = Celery("studio_booking", broker=broker_url, backend=broker_url)

    app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            "task_ignore_result": True,
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 60,
            "task_time_limit": 120,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "worker_hijack_root_logger": False,
            "broker_transport_options": {"visibility_timeout": 3600},
        }
    )
    app.conf.imports = ("studio_booking.tasks.notification_tasks",)
    app.conf.task_routes = {"outbox.*": {"queue": "notifications"}}
    app.conf.beat_schedule = {
        "dispatch-notification-outbox": {
            "task": "outbox.dispatch_pending",
            "schedule": OUTBOX_DISPATCH_INTERVAL_SECONDS,
            "options": {"queue": "notifications"},
        },
    }
    return app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Keep Celery from replacing the application's logging setup."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()
