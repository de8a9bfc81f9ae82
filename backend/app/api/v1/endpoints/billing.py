"""
Billing endpoints: Stripe checkout and price quotes.
"""
from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.common import price_display_response
from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import require_permissions
from app.core.rbac import Permission, audience_for_role
from app.models.plan import Plan
from app.models.user import User
from app.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    QuoteRequest,
    QuoteResponse,
)
from app.services.checkout_service import (
    CheckoutService,
    CheckoutServiceError,
    StripeNotConfiguredError,
)
from app.services.coupon_service import CouponService
from app.services.pricing import compute_display_price, parse_plan_key, resolve_stripe_price_id

router = APIRouter()


def _resolve_origin(request: Request) -> str:
    """
    Origin used to build the Stripe return URLs.

    Uses CORS_ORIGINS as the allowlist so a forged Origin header cannot turn
    the checkout into an open redirect; anything else falls back to
    FRONTEND_URL.
    """
    origin = (request.headers.get("origin") or "").strip().rstrip("/")
    if origin:
        allowed_origins = [o.strip().rstrip("/") for o in settings.cors_origins_list]
        if "*" in allowed_origins or origin in allowed_origins:
            return origin
    return settings.FRONTEND_URL.rstrip("/")


def _raise_billing_http_error(exc: CheckoutServiceError) -> None:
    """Convert checkout domain errors to HTTP responses."""
    status_code = status.HTTP_400_BAD_REQUEST
    if exc.code == "email_not_verified":
        status_code = status.HTTP_403_FORBIDDEN
    elif exc.code == "upstream_error":
        status_code = status.HTTP_502_BAD_GATEWAY
    elif exc.code == "stripe_not_configured":
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    raise HTTPException(status_code=status_code, detail=exc.detail) from exc


def _get_checkout_service() -> CheckoutService:
    """Cria CheckoutService por request a partir das settings."""
    try:
        return CheckoutService.from_settings()
    except StripeNotConfiguredError as exc:
        _raise_billing_http_error(exc)


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    request: Request,
    current_user: User = Depends(require_permissions(Permission.BILLING_CHECKOUT)),
    db: AsyncSession = Depends(get_db),
) -> CheckoutResponse:
    """Start a Stripe Checkout for a professional plan, optionally with a coupon."""
    # An unknown plan is a 400 even when Stripe is not configured
    if resolve_stripe_price_id(body.plan_key) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Plano inválido: {body.plan_key}",
        )
    svc = _get_checkout_service()
    try:
        result = await svc.create_checkout(
            db,
            user=current_user,
            plan_key=body.plan_key,
            coupon_code=body.coupon_code,
            origin=_resolve_origin(request),
        )
    except CheckoutServiceError as exc:
        _raise_billing_http_error(exc)
    return CheckoutResponse(**result)


@router.post("/quote", response_model=QuoteResponse, response_model_exclude_none=True)
async def quote(
    body: QuoteRequest,
    current_user: User = Depends(require_permissions(Permission.BILLING_QUOTE)),
    db: AsyncSession = Depends(get_db),
) -> QuoteResponse:
    """
    Price for a plan key with an optional coupon, as checkout would charge it.

    An unusable coupon does not fail the quote: the price comes back without
    it, together with the rejection.
    """
    parsed = parse_plan_key(body.plan_key)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Plano inválido: {body.plan_key}",
        )

    stmt = select(Plan).where(Plan.name == parsed.tier, Plan.is_active.is_(True))
    plan = (await db.execute(stmt)).scalar_one_or_none()
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plano não encontrado.")

    discount = None
    coupon_fields: dict[str, str] = {}
    if body.coupon_code and body.coupon_code.strip():
        verdict = await CouponService(db).validate(
            body.coupon_code,
            audience=audience_for_role(current_user.role),
        )
        if verdict.valid:
            discount = verdict.discount
            coupon_fields["coupon_code"] = verdict.code
        else:
            coupon_fields["coupon_error"] = verdict.rejection.message
            coupon_fields["coupon_reason"] = verdict.rejection.value

    display = compute_display_price(
        Decimal(plan.price_cents) / 100,
        parsed.cycle,
        discount,
    )
    return QuoteResponse(
        plan_key=str(parsed),
        price=price_display_response(display),
        **coupon_fields,
    )
