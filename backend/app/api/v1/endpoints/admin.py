"""
Admin endpoints: platform coupons and the coupon audit log.
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.common import raise_coupon_http_error
from app.core.database import get_db
from app.core.dependencies import require_permissions
from app.core.rate_limit import client_ip
from app.core.rbac import Permission
from app.models.user import User
from app.schemas.admin import AuditLogListResponse, AuditLogResponse, PaginationMeta
from app.schemas.coupon import CouponAudience, CouponCreate, CouponResponse, CouponUpdate
from app.services.audit_log_service import AuditLogService
from app.services.coupon_service import CouponService, CouponServiceError

router = APIRouter()


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------

@router.get("/coupons", response_model=list[CouponResponse])
async def list_coupons(
    target_audience: Optional[CouponAudience] = Query(default=None),
    is_active: Optional[bool] = Query(default=None),
    professional_id: Optional[UUID] = Query(default=None),
    platform_only: bool = Query(default=False),
    include_retired: bool = Query(default=False),
    _current_user: User = Depends(require_permissions(Permission.ADMIN_COUPONS_READ)),
    db: AsyncSession = Depends(get_db),
) -> list[CouponResponse]:
    """List coupons from every issuer, with optional filters."""
    coupons = await CouponService(db).list_coupons(
        professional_id=professional_id,
        platform_only=platform_only,
        target_audience=target_audience,
        is_active=is_active,
        include_retired=include_retired,
    )
    return [CouponResponse.model_validate(c) for c in coupons]


@router.post("/coupons", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    body: CouponCreate,
    request: Request,
    current_user: User = Depends(require_permissions(Permission.ADMIN_COUPONS_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> CouponResponse:
    """Create a platform coupon."""
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


@router.patch("/coupons/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: UUID,
    body: CouponUpdate,
    request: Request,
    current_user: User = Depends(require_permissions(Permission.ADMIN_COUPONS_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> CouponResponse:
    """Update validity, cap, audience or description of any coupon."""
    try:
        coupon = await CouponService(db).update_coupon(
            coupon_id,
            actor=current_user,
            payload=body,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except CouponServiceError as exc:
        raise_coupon_http_error(exc)
    return CouponResponse.model_validate(coupon)


@router.delete("/coupons/{coupon_id}", response_model=CouponResponse)
async def retire_coupon(
    coupon_id: UUID,
    request: Request,
    current_user: User = Depends(require_permissions(Permission.ADMIN_COUPONS_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> CouponResponse:
    """Retire a coupon (set retired_at, is_active=False)."""
    try:
        coupon = await CouponService(db).retire_coupon(
            coupon_id,
            actor=current_user,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except CouponServiceError as exc:
        raise_coupon_http_error(exc)
    return CouponResponse.model_validate(coupon)


# ---------------------------------------------------------------------------
# Audit Log
# ---------------------------------------------------------------------------

@router.get("/audit-log", response_model=AuditLogListResponse)
async def list_audit_log(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    action: Optional[str] = Query(default=None),
    coupon_code: Optional[str] = Query(default=None),
    _current_user: User = Depends(require_permissions(Permission.ADMIN_COUPONS_READ)),
    db: AsyncSession = Depends(get_db),
) -> AuditLogListResponse:
    """Paginated coupon audit log with optional filters."""
    items, total = await AuditLogService.list_logs(
        db, page=page, limit=limit,
        action=action, coupon_code=coupon_code.upper() if coupon_code else None,
    )
    pages = (total + limit - 1) // limit if total else 0
    return AuditLogListResponse(
        items=[AuditLogResponse(**item) for item in items],
        pagination=PaginationMeta(total=total, page=page, pages=pages, limit=limit),
    )
