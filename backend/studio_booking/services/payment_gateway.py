# backend/studio_booking/services/payment_gateway.py
"""
Payment gateway seam for coupon discounts.

Checkout itself happens elsewhere; this engine only needs a discount handle
that the caller passes through to checkout. With Stripe configured the
handle is a Stripe coupon id (created once per studio coupon and reused),
otherwise a local handle is returned so development flows keep working.
"""

import logging
from typing import Optional, Protocol

import stripe

from ..core.config import settings
from ..core.exceptions import ServiceException
from ..models.coupon import Coupon, CouponType

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    # Whether handles may be stored on the coupon and reused
    reusable_handles: bool

    def create_discount(self, coupon: Coupon) -> str:
        """Return a discount handle for checkout."""
        ...


class LocalPaymentGateway:
    """Gateway used when no Stripe key is configured."""

    reusable_handles = False

    def create_discount(self, coupon: Coupon) -> str:
        return f"local_{coupon.id}"


class StripePaymentGateway:
    reusable_handles = True

    def __init__(self, api_key: str, timeout_seconds: Optional[int] = None):
        stripe.api_key = api_key
        # Bounded network time so a slow gateway cannot hold a redemption open
        try:
            stripe.default_http_client = stripe.http_client.RequestsClient(
                timeout=timeout_seconds or settings.stripe_timeout_seconds
            )
            stripe.max_network_retries = 1
        except AttributeError:
            logger.warning("Stripe HTTP client customization unavailable; using defaults")

    def create_discount(self, coupon: Coupon) -> str:
        if coupon.gateway_coupon_id:
            return coupon.gateway_coupon_id

        params = {
            "duration": "once",
            "name": coupon.code,
            "metadata": {"coupon_id": coupon.id, "studio_id": coupon.studio_id},
        }
        if coupon.coupon_type == CouponType.PERCENT_OFF.value:
            params["percent_off"] = coupon.value
        elif coupon.coupon_type == CouponType.AMOUNT_OFF.value:
            params["amount_off"] = coupon.value
            params["currency"] = "usd"
        else:
            raise ValueError(f"{coupon.coupon_type} coupons have no gateway discount")

        try:
            stripe_coupon = stripe.Coupon.create(**params)
        except stripe.StripeError as e:
            logger.error("Stripe error creating coupon %s: %s", coupon.code, e)
            raise ServiceException(
                "Failed to create checkout discount", code="PAYMENT_GATEWAY_ERROR"
            ) from e
        return str(stripe_coupon.id)


def get_payment_gateway() -> PaymentGateway:
    if settings.stripe_secret_key is not None and settings.stripe_secret_key.get_secret_value():
        return StripePaymentGateway(settings.stripe_secret_key.get_secret_value())
    logger.warning("Stripe secret key not configured - discounts use local handles")
    return LocalPaymentGateway()
