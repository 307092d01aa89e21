# backend/studio_booking/routes/v1/coupons.py
"""
Coupon routes - API v1

Studio-scoped, mounted under /api/v1/studios.

Endpoints:
    POST /{studio_id}/coupons/validate - Check a code without consuming it
    POST /{studio_id}/coupons/redeem - Redeem a code for the caller
    POST /{studio_id}/coupons - Create a coupon (studio admins)
    GET /{studio_id}/coupons - List coupons (studio staff)
    PUT /{studio_id}/coupons/{coupon_id} - Edit a coupon (studio admins)
    DELETE /{studio_id}/coupons/{coupon_id} - Deactivate a coupon (studio admins)
"""

import asyncio
import logging

from fastapi import APIRouter, Body, Depends, status
from fastapi.params import Path

from ...api.dependencies import get_coupon_service, get_current_user_id
from ...core.exceptions import DomainException
from ...schemas.coupon import (
    CompClassResponse,
    CouponCreateRequest,
    CouponDeactivateResponse,
    CouponListResponse,
    CouponRedeemRequest,
    CouponRedeemResponse,
    CouponResponse,
    CouponUpdateRequest,
    CouponValidateRequest,
    CouponValidateResponse,
    DiscountResponse,
)
from ...services.coupon_service import CouponService
from .classes import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["coupons-v1"])


@router.post(
    "/{studio_id}/coupons/validate",
    response_model=CouponValidateResponse,
    response_model_exclude_none=True,
)
async def validate_coupon(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: CouponValidateRequest = Body(...),
    current_user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponValidateResponse:
    """An invalid coupon is a normal answer (valid=false with a reason), not an error."""
    try:
        result = await asyncio.to_thread(
            coupon_service.validate,
            payload.code,
            studio_id,
            current_user_id,
            payload.plan_id,
        )
    except DomainException as e:
        handle_domain_exception(e)

    discount = None
    if result.discount is not None:
        discount = DiscountResponse(
            coupon_id=result.discount.coupon_id,
            coupon_type=result.discount.coupon_type,
            value=result.discount.value,
            description=result.discount.description,
            applies_to=result.discount.applies_to,
        )
    return CouponValidateResponse(valid=result.valid, discount=discount, reason=result.reason)


@router.post(
    "/{studio_id}/coupons/redeem",
    response_model=CouponRedeemResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def redeem_coupon(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: CouponRedeemRequest = Body(...),
    current_user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponRedeemResponse:
    try:
        result = await asyncio.to_thread(
            lambda: coupon_service.redeem(
                payload.code,
                studio_id,
                current_user_id,
                payload.applied_to_type,
                applied_to_id=payload.applied_to_id,
                discount_amount_cents=payload.discount_amount_cents,
                plan_id=payload.plan_id,
            )
        )
    except DomainException as e:
        handle_domain_exception(e)

    return CouponRedeemResponse(
        redemption_id=result.redemption.id,
        coupon_type=result.coupon.coupon_type,
        value=result.coupon.value,
        comp_grant=(
            CompClassResponse.from_comp(result.comp_grant)
            if result.comp_grant is not None
            else None
        ),
        discount_handle=result.discount_handle,
    )


@router.post(
    "/{studio_id}/coupons",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_coupon(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: CouponCreateRequest = Body(...),
    current_user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponResponse:
    try:
        coupon = await asyncio.to_thread(
            lambda: coupon_service.create_coupon(
                studio_id,
                current_user_id,
                code=payload.code,
                coupon_type=payload.coupon_type,
                value=payload.value,
                applies_to=payload.applies_to,
                plan_ids=payload.plan_ids,
                valid_from=payload.valid_from,
                valid_until=payload.valid_until,
                max_redemptions=payload.max_redemptions,
                active=payload.active,
            )
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CouponResponse.from_coupon(coupon)


@router.get("/{studio_id}/coupons", response_model=CouponListResponse)
async def list_coupons(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponListResponse:
    try:
        coupons = await asyncio.to_thread(coupon_service.list_coupons, studio_id, current_user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return CouponListResponse(coupons=[CouponResponse.from_coupon(c) for c in coupons])


@router.put("/{studio_id}/coupons/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    coupon_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: CouponUpdateRequest = Body(...),
    current_user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponResponse:
    """Edit the fields present in the body; omitted fields keep their values."""
    changes = payload.model_dump(exclude_unset=True)
    try:
        coupon = await asyncio.to_thread(
            coupon_service.update_coupon, studio_id, coupon_id, current_user_id, changes
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CouponResponse.from_coupon(coupon)


@router.delete("/{studio_id}/coupons/{coupon_id}", response_model=CouponDeactivateResponse)
async def deactivate_coupon(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    coupon_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    coupon_service: CouponService = Depends(get_coupon_service),
) -> CouponDeactivateResponse:
    try:
        await asyncio.to_thread(
            coupon_service.deactivate_coupon, studio_id, coupon_id, current_user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CouponDeactivateResponse(coupon_id=coupon_id)
