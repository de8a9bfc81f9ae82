"""
Coupon endpoints: validation for any signed-in user, self-service for professionals.
"""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.common import raise_coupon_http_error
from app.core.database import get_db
from app.core.dependencies import require_permissions, require_roles
from app.core.rate_limit import client_ip, coupon_validate_rate_limit
from app.core.rbac import Permission, UserRole, audience_for_role
from app.models.user import User
from app.schemas.coupon import (
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    CouponValidateRequest,
    CouponValidateResponse,
    ValidatedCoupon,
)
from app.services.coupon_rules import CouponRejection, discount_terms
from app.services.coupon_service import CouponService, CouponServiceError

router = APIRouter()


@router.post(
    "/validate",
    response_model=CouponValidateResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(coupon_validate_rate_limit)],
)
async def validate_coupon(
    body: CouponValidateRequest,
    current_user: User = Depends(require_permissions(Permission.COUPONS_VALIDATE)),
    db: AsyncSession = Depends(get_db),
):
    """
    Advisory coupon check for the pricing page.

    Rejections come back as 200 with ``valid: false`` and a reason, except a
    malformed code which is a 400. Checkout validates again on its own.
    """
    audience = body.target_audience or audience_for_role(current_user.role)
    verdict = await CouponService(db).validate(body.code, audience=audience)

    if verdict.valid:
        discount_type, discount_value = discount_terms(verdict.discount)
        return CouponValidateResponse(
            valid=True,
            coupon=ValidatedCoupon(
                code=verdict.code,
                discount_type=discount_type,
                discount_value=float(discount_value),
                description=verdict.description,
            ),
        )

    response = CouponValidateResponse(
        valid=False,
        error=verdict.rejection.message,
        reason=verdict.rejection.value,
    )
    if verdict.rejection == CouponRejection.INVALID_FORMAT:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=response.model_dump(exclude_none=True),
        )
    return response


# ---------------------------------------------------------------------------
# Professional-owned coupons
# ---------------------------------------------------------------------------

@router.get("/mine", response_model=list[CouponResponse])
async def list_my_coupons(
    include_retired: bool = False,
    current_user: User = Depends(require_roles(UserRole.PROFESSIONAL)),
    db: AsyncSession = Depends(get_db),
) -> list[CouponResponse]:
    """Coupons issued by the current professional."""
    coupons = await CouponService(db).list_coupons(
        professional_id=current_user.id,
        include_retired=include_retired,
    )
    return [CouponResponse.model_validate(c) for c in coupons]


@router.post("/mine", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_my_coupon(
    body: CouponCreate,
    request: Request,
    current_user: User = Depends(require_roles(UserRole.PROFESSIONAL)),
    db: AsyncSession = Depends(get_db),
) -> CouponResponse:
    """Issue a coupon for the professional's own patients."""
    try:
        coupon = await CouponService(db).create_coupon(
            actor=current_user,
            payload=body,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except CouponServiceError as exc:
        raise_coupon_http_error(exc)
    return CouponResponse.model_validate(coupon)


@router.patch("/mine/{coupon_id}", response_model=CouponResponse)
async def update_my_coupon(
    coupon_id: UUID,
    body: CouponUpdate,
    request: Request,
    current_user: User = Depends(require_roles(UserRole.PROFESSIONAL)),
    db: AsyncSession = Depends(get_db),
) -> CouponResponse:
    try:
        coupon = await CouponService(db).update_coupon(
            coupon_id,
            actor=current_user,
            payload=body,
            professional_id=current_user.id,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except CouponServiceError as exc:
        raise_coupon_http_error(exc)
    return CouponResponse.model_validate(coupon)


@router.delete("/mine/{coupon_id}", response_model=CouponResponse)
async def retire_my_coupon(
    coupon_id: UUID,
    request: Request,
    current_user: User = Depends(require_roles(UserRole.PROFESSIONAL)),
    db: AsyncSession = Depends(get_db),
) -> CouponResponse:
    """Retire (never hard-delete) one of the professional's coupons."""
    try:
        coupon = await CouponService(db).retire_coupon(
            coupon_id,
            actor=current_user,
            professional_id=current_user.id,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except CouponServiceError as exc:
        raise_coupon_http_error(exc)
    return CouponResponse.model_validate(coupon)
