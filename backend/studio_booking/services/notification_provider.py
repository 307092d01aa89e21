# backend/studio_booking/services/notification_provider.py
"""
Notifier client used by the outbox dispatcher.

Posts each event to the external notifier with a bounded timeout. When no
notifier URL is configured (local development, tests) events are only
logged.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)


class NotificationProviderTemporaryError(RuntimeError):
    """Transient notifier failure (timeout, 5xx, 429); the outbox retries."""


class NotificationProviderPermanentError(RuntimeError):
    """The notifier rejected the event (4xx); retrying will not help."""


@dataclass(slots=True)
class NotificationDispatchResult:
    idempotency_key: str
    event_type: str
    delivered: bool
    status_code: Optional[int] = None


class NotificationProvider:
    """
    Usage:
        provider = NotificationProvider()
        provider.send(event_type="booking.cancelled", payload={...}, idempotency_key="...")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._base_url = base_url if base_url is not None else settings.notifier_url
        self._timeout = httpx.Timeout(
            timeout or settings.notifier_timeout_seconds,
            connect=min(timeout or settings.notifier_timeout_seconds, 2.0),
        )
        self._transport = transport

    def send(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> NotificationDispatchResult:
        if not idempotency_key:
            raise ValueError("idempotency_key is required for notification dispatch")

        payload = payload or {}
        if not self._base_url:
            logger.info(
                "Notifier not configured; logging %s key=%s payload=%s",
                event_type,
                idempotency_key,
                json.dumps(payload, sort_keys=True, default=str)[:500],
            )
            return NotificationDispatchResult(
                idempotency_key=idempotency_key, event_type=event_type, delivered=False
            )

        body = {"type": event_type, "payload": payload}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(
                    self._base_url,
                    json=body,
                    headers={"Idempotency-Key": idempotency_key},
                )
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise NotificationProviderTemporaryError(f"Notifier timed out: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 429 or status >= 500:
                raise NotificationProviderTemporaryError(
                    f"Notifier returned {status} for {event_type}"
                ) from exc
            raise NotificationProviderPermanentError(
                f"Notifier rejected {event_type} with {status}"
            ) from exc
        except httpx.TransportError as exc:
            raise NotificationProviderTemporaryError(f"Notifier unreachable: {exc}") from exc

        logger.debug(
            "Notifier accepted %s key=%s status=%s",
            event_type,
            idempotency_key,
            response.status_code,
        )
        return NotificationDispatchResult(
            idempotency_key=idempotency_key,
            event_type=event_type,
            delivered=True,
            status_code=response.status_code,
        )
