"""
Price presentation: the arithmetic behind every price the user sees.

The composition order is fixed and is the one Stripe applies when charging
(annual price id first, then the coupon): base monthly price, then the annual
cycle discount, then the coupon. Values stay unrounded ``Decimal`` until
``PriceDisplay`` is built, where they are rounded once to centavos.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional

from app.core.config import settings
from app.services.coupon_rules import (
    Discount,
    FixedDiscount,
    PercentageDiscount,
    apply_discount,
    to_decimal,
)

ANNUAL_DISCOUNT_RATE = Decimal("0.26")
MONTHS_PER_YEAR = Decimal(12)
CENT = Decimal("0.01")

PLAN_TIERS: tuple[str, ...] = ("50", "100", "500")

# Stripe price per "{tier}-{cycle}" (BRL, recurring)
DEFAULT_STRIPE_PRICE_IDS: dict[str, str] = {
    "50-monthly": "price_1SnnwkGkdCMrcNFStMFm9v6T",
    "50-annual": "price_1SnnymGkdCMrcNFS9cMgasFR",
    "100-monthly": "price_1SnnzUGkdCMrcNFS30T5AJV5",
    "100-annual": "price_1SnnzeGkdCMrcNFS5ENfdfe7",
    "500-monthly": "price_1SnnzuGkdCMrcNFSbAY4xf5V",
    "500-annual": "price_1Sno0HGkdCMrcNFSX3yZBTMT",
}


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


@dataclass(frozen=True)
class PlanKey:
    """Parsed ``{tier}-{cycle}`` checkout key."""

    tier: str
    cycle: BillingCycle

    def __str__(self) -> str:
        return f"{self.tier}-{self.cycle.value}"


def parse_plan_key(raw: Optional[str]) -> Optional[PlanKey]:
    """Parse ``"100-annual"``; ``None`` for anything outside the known tiers/cycles."""
    if not raw or not isinstance(raw, str):
        return None
    tier, sep, cycle = raw.partition("-")
    if not sep or tier not in PLAN_TIERS:
        return None
    try:
        return PlanKey(tier=tier, cycle=BillingCycle(cycle))
    except ValueError:
        return None


def stripe_price_table() -> dict[str, str]:
    """Default price table with ``STRIPE_PRICE_IDS`` overrides applied."""
    table = dict(DEFAULT_STRIPE_PRICE_IDS)
    table.update(settings.stripe_price_ids_override)
    return table


def resolve_stripe_price_id(plan_key: Optional[str]) -> Optional[str]:
    """Stripe price id for a plan key, or ``None`` when the key is unknown."""
    parsed = parse_plan_key(plan_key)
    if parsed is None:
        return None
    return stripe_price_table().get(str(parsed))


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------

def cycle_unit_price(base_price: Decimal, cycle: BillingCycle) -> Decimal:
    """Monthly-equivalent price after the billing-cycle discount (unrounded)."""
    if cycle == BillingCycle.ANNUAL:
        annual_total = base_price * MONTHS_PER_YEAR * (Decimal(1) - ANNUAL_DISCOUNT_RATE)
        return annual_total / MONTHS_PER_YEAR
    return base_price


def annual_savings(base_price: Decimal) -> Decimal:
    """What a year on the annual cycle saves, independent of any coupon."""
    return base_price * MONTHS_PER_YEAR * ANNUAL_DISCOUNT_RATE


def round_brl(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def formatar_brl(value: Any) -> str:
    """pt-BR money formatting without symbol: ``1234.5`` -> ``"1.234,50"``."""
    amount = round_brl(to_decimal(value))
    text = f"{amount:,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_percent(value: Decimal) -> str:
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return formatar_brl(value).rstrip("0").rstrip(",")


@dataclass(frozen=True)
class PriceDisplay:
    """Everything a pricing card needs for one plan, cycle and coupon."""

    display_price: Decimal
    original_price: Decimal
    pre_coupon_price: Decimal
    annual_savings: Decimal
    cycle: BillingCycle
    show_monthly_strikethrough: bool
    show_coupon_strikethrough: bool
    discount_badges: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "display_price": self.display_price,
            "original_price": self.original_price,
            "pre_coupon_price": self.pre_coupon_price,
            "annual_savings": self.annual_savings,
            "cycle": self.cycle.value,
            "show_monthly_strikethrough": self.show_monthly_strikethrough,
            "show_coupon_strikethrough": self.show_coupon_strikethrough,
            "discount_badges": list(self.discount_badges),
        }


def discount_badge(discount: Discount) -> str:
    if isinstance(discount, PercentageDiscount):
        return f"-{format_percent(discount.percent)}%"
    if isinstance(discount, FixedDiscount):
        return f"-R$ {formatar_brl(discount.amount)}"
    raise TypeError(f"Unsupported discount: {discount!r}")


def compute_display_price(
    base_price: Any,
    cycle: BillingCycle | str,
    coupon: Optional[Discount] = None,
) -> PriceDisplay:
    """
    Price shown on the pricing page, equal to what checkout will charge.

    Args:
        base_price: Plan base monthly price in BRL (Decimal, int, float or str).
        cycle: ``monthly`` or ``annual``.
        coupon: Discount of an already validated coupon, if any. Not
            re-validated here.

    Returns:
        PriceDisplay with values rounded to centavos.

    Example:
        >>> compute_display_price(100, "annual").display_price
        Decimal('74.00')
    """
    cycle = BillingCycle(cycle)
    base = to_decimal(base_price)

    pre_coupon = cycle_unit_price(base, cycle)
    final = apply_discount(pre_coupon, coupon) if coupon is not None else pre_coupon

    badges: list[str] = []
    if cycle == BillingCycle.ANNUAL:
        badges.append(f"-{format_percent(ANNUAL_DISCOUNT_RATE * 100)}%")
    if coupon is not None:
        badges.append(discount_badge(coupon))

    display_price = round_brl(final)
    pre_coupon_price = round_brl(pre_coupon)
    original_price = round_brl(base)

    return PriceDisplay(
        display_price=display_price,
        original_price=original_price,
        pre_coupon_price=pre_coupon_price,
        annual_savings=round_brl(annual_savings(base)),
        cycle=cycle,
        show_monthly_strikethrough=pre_coupon_price != original_price,
        show_coupon_strikethrough=coupon is not None and display_price != pre_coupon_price,
        discount_badges=badges,
    )
