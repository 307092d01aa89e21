# backend/studio_booking/routes/v1/comps.py
"""
Comp class routes - API v1

Mounted under /api/v1/studios.

Endpoints:
    POST /{studio_id}/members/{user_id}/comp - Grant free classes (staff)
    GET /{studio_id}/members/{user_id}/comps - Usable comp grants
    GET /{studio_id}/comps - Every grant in the studio (staff)
    DELETE /{studio_id}/comps/{comp_id} - Revoke a grant (staff)
"""

import asyncio
import logging

from fastapi import APIRouter, Body, Depends, Response, status
from fastapi.params import Path

from ...api.dependencies import get_credit_service, get_current_user_id
from ...core.exceptions import DomainException
from ...schemas.coupon import CompClassResponse, CompGrantRequest, CompListResponse
from ...services.credit_service import CreditService
from .classes import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["comps-v1"])


@router.post(
    "/{studio_id}/members/{user_id}/comp",
    response_model=CompClassResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_comp(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    user_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: CompGrantRequest = Body(...),
    current_user_id: str = Depends(get_current_user_id),
    credit_service: CreditService = Depends(get_credit_service),
) -> CompClassResponse:
    try:
        comp = await asyncio.to_thread(
            lambda: credit_service.grant_comp(
                studio_id,
                user_id,
                payload.classes,
                current_user_id,
                reason=payload.reason,
                expires_at=payload.expires_at,
            )
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CompClassResponse.from_comp(comp)


@router.get("/{studio_id}/members/{user_id}/comps", response_model=CompListResponse)
async def list_comps(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    user_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    credit_service: CreditService = Depends(get_credit_service),
) -> CompListResponse:
    try:
        comps = await asyncio.to_thread(
            credit_service.list_available_comps, studio_id, user_id, current_user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CompListResponse(comps=[CompClassResponse.from_comp(c) for c in comps])


@router.get("/{studio_id}/comps", response_model=CompListResponse)
async def list_studio_comps(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    credit_service: CreditService = Depends(get_credit_service),
) -> CompListResponse:
    try:
        comps = await asyncio.to_thread(
            credit_service.list_studio_comps, studio_id, current_user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CompListResponse(comps=[CompClassResponse.from_comp(c) for c in comps])


@router.delete(
    "/{studio_id}/comps/{comp_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def revoke_comp(
    studio_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    comp_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    current_user_id: str = Depends(get_current_user_id),
    credit_service: CreditService = Depends(get_credit_service),
) -> Response:
    try:
        await asyncio.to_thread(credit_service.revoke_comp, studio_id, comp_id, current_user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
