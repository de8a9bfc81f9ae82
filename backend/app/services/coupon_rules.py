"""
Coupon rule set shared by validation, quotes and checkout.

Everything here is pure: no database, no Stripe, no clock reads (callers
pass ``now``). ``CouponService.validate`` and ``CheckoutService`` both call
``evaluate_coupon`` independently; the verdict is never cached or trusted
across requests.
"""
from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

MAX_CODE_LENGTH = 20
GENERATED_CODE_LENGTH = 8
_CODE_PATTERN = re.compile(r"^[A-Z0-9]+$")
_CODE_ALPHABET = string.ascii_uppercase + string.digits

AUDIENCES: tuple[str, ...] = ("professionals", "patients", "all")


class CouponRejection(str, Enum):
    """Why a coupon cannot be applied. Values are the API ``reason`` codes."""

    INVALID_FORMAT = "invalid_format"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit_reached"
    AUDIENCE_MISMATCH = "audience_mismatch"

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES[self]


REJECTION_MESSAGES: dict[CouponRejection, str] = {
    CouponRejection.INVALID_FORMAT: "Formato de cupom inválido",
    CouponRejection.NOT_FOUND: "Cupom não encontrado",
    CouponRejection.INACTIVE: "Cupom inativo",
    CouponRejection.NOT_YET_VALID: "Cupom ainda não está válido",
    CouponRejection.EXPIRED: "Cupom expirado",
    CouponRejection.LIMIT_REACHED: "Cupom atingiu o limite de uso",
    CouponRejection.AUDIENCE_MISMATCH: "Cupom não válido para este tipo de usuário",
}


# ---------------------------------------------------------------------------
# Discount kinds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PercentageDiscount:
    """``percent`` off, 0 to 100."""

    percent: Decimal


@dataclass(frozen=True)
class FixedDiscount:
    """``amount`` BRL off the unit price, floored at zero."""

    amount: Decimal


Discount = Union[PercentageDiscount, FixedDiscount]


def discount_from_terms(discount_type: str, discount_value: Any) -> Discount:
    """Build the tagged discount from the stored ``discount_type``/``discount_value`` pair."""
    value = to_decimal(discount_value)
    if discount_type == "percentage":
        return PercentageDiscount(percent=value)
    if discount_type == "fixed":
        return FixedDiscount(amount=value)
    raise ValueError(f"Unknown discount_type: {discount_type!r}")


def apply_discount(price: Decimal, discount: Discount) -> Decimal:
    """Apply one discount to a unit price. No rounding happens here."""
    if isinstance(discount, PercentageDiscount):
        return price * (Decimal(1) - discount.percent / Decimal(100))
    if isinstance(discount, FixedDiscount):
        return max(price - discount.amount, Decimal(0))
    raise TypeError(f"Unsupported discount: {discount!r}")


def discount_terms(discount: Discount) -> tuple[str, Decimal]:
    """Inverse of ``discount_from_terms``."""
    if isinstance(discount, PercentageDiscount):
        return "percentage", discount.percent
    if isinstance(discount, FixedDiscount):
        return "fixed", discount.amount
    raise TypeError(f"Unsupported discount: {discount!r}")


def to_decimal(value: Any) -> Decimal:
    """Money-safe Decimal conversion (floats go through ``str``)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------

def normalize_code(raw: Optional[str]) -> Optional[str]:
    """
    Trim, upper-case and truncate a typed coupon code.

    Returns:
        The normalized code, or ``None`` when the result is empty or has
        characters outside ``[A-Z0-9]``.
    """
    if not isinstance(raw, str):
        return None
    code = raw.strip().upper()[:MAX_CODE_LENGTH]
    if not code or not _CODE_PATTERN.match(code):
        return None
    return code


def generate_code(length: int = GENERATED_CODE_LENGTH) -> str:
    """Random code for the management form's "generate" action."""
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CouponVerdict:
    """Outcome of evaluating one coupon row for one audience at one instant."""

    code: Optional[str]
    rejection: Optional[CouponRejection] = None
    discount: Optional[Discount] = None
    description: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.rejection is None

    @classmethod
    def rejected(cls, rejection: CouponRejection, code: Optional[str] = None) -> CouponVerdict:
        return cls(code=code, rejection=rejection)


def evaluate_coupon(
    coupon: Any,
    *,
    audience: str,
    now: datetime,
) -> CouponVerdict:
    """
    Decide whether a stored coupon can be applied.

    Checks run in a fixed order and the first failure wins: active,
    not-yet-valid, expired, usage cap, audience. ``valid_until`` itself is
    still valid (``now <= valid_until``).

    Args:
        coupon: Row-like object (``DiscountCoupon`` or anything with the
            same attributes). ``None`` means no row matched the code.
        audience: Caller audience (``professionals``, ``patients`` or ``all``).
        now: Naive UTC instant to evaluate at.
    """
    if coupon is None:
        return CouponVerdict.rejected(CouponRejection.NOT_FOUND)

    code = coupon.code
    if not coupon.is_active or getattr(coupon, "retired_at", None) is not None:
        return CouponVerdict.rejected(CouponRejection.INACTIVE, code)

    if now < coupon.valid_from:
        return CouponVerdict.rejected(CouponRejection.NOT_YET_VALID, code)

    if coupon.valid_until is not None and now > coupon.valid_until:
        return CouponVerdict.rejected(CouponRejection.EXPIRED, code)

    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        return CouponVerdict.rejected(CouponRejection.LIMIT_REACHED, code)

    if coupon.target_audience != "all" and coupon.target_audience != audience:
        return CouponVerdict.rejected(CouponRejection.AUDIENCE_MISMATCH, code)

    return CouponVerdict(
        code=code,
        discount=discount_from_terms(coupon.discount_type, coupon.discount_value),
        description=coupon.description,
    )
