"""
Public plans endpoint: no authentication required.
Returns active plans with monthly and annual prices for the pricing page.
"""
from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.endpoints.common import price_display_response
from app.core.database import get_db
from app.models.plan import Plan
from app.schemas.plan import PublicPlanResponse
from app.services.pricing import BillingCycle, compute_display_price

router = APIRouter()


def _to_public(plan: Plan) -> PublicPlanResponse:
    monthly = annual = None
    if not plan.is_free:
        base_price = Decimal(plan.price_cents) / 100
        monthly = price_display_response(compute_display_price(base_price, BillingCycle.MONTHLY))
        annual = price_display_response(compute_display_price(base_price, BillingCycle.ANNUAL))

    return PublicPlanResponse(
        id=plan.id,
        name=plan.name,
        display_name=plan.display_name,
        description=plan.description,
        features=list(plan.features or []),
        is_free=plan.is_free,
        sort_order=plan.sort_order,
        monthly=monthly,
        annual=annual,
    )


@router.get("", response_model=list[PublicPlanResponse])
async def list_public_plans(
    db: AsyncSession = Depends(get_db),
) -> list[PublicPlanResponse]:
    """List active plans (public, no auth required)."""
    stmt = select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.sort_order)
    plans = (await db.execute(stmt)).scalars().all()
    return [_to_public(p) for p in plans]
