"""
Pydantic schemas for Billing API: checkout and price quotes.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CheckoutRequest(BaseModel):
    """Plan key (``{50|100|500}-{monthly|annual}``) and optional coupon."""

    model_config = ConfigDict(populate_by_name=True)

    plan_key: str = Field(..., alias="planKey", max_length=32)
    coupon_code: Optional[str] = Field(default=None, alias="couponCode", max_length=100)


class CheckoutResponse(BaseModel):
    """Stripe-hosted checkout URL the client redirects to."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    session_id: str = Field(..., alias="sessionId")
    coupon_code: Optional[str] = Field(default=None, alias="couponCode")


class QuoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_key: str = Field(..., alias="planKey", max_length=32)
    coupon_code: Optional[str] = Field(default=None, alias="couponCode", max_length=100)


class PriceDisplayResponse(BaseModel):
    """Prices in BRL, already rounded to centavos."""

    model_config = ConfigDict(populate_by_name=True)

    cycle: Literal["monthly", "annual"]
    display_price: float = Field(..., alias="displayPrice")
    original_price: float = Field(..., alias="originalPrice")
    pre_coupon_price: float = Field(..., alias="preCouponPrice")
    annual_savings: float = Field(..., alias="annualSavings")
    show_monthly_strikethrough: bool = Field(..., alias="showMonthlyStrikethrough")
    show_coupon_strikethrough: bool = Field(..., alias="showCouponStrikethrough")
    discount_badges: list[str] = Field(default_factory=list, alias="discountBadges")


class QuoteResponse(BaseModel):
    """Quote for one plan key. ``couponError`` is set when the coupon was dropped."""

    model_config = ConfigDict(populate_by_name=True)

    plan_key: str = Field(..., alias="planKey")
    price: PriceDisplayResponse
    coupon_code: Optional[str] = Field(default=None, alias="couponCode")
    coupon_error: Optional[str] = Field(default=None, alias="couponError")
    coupon_reason: Optional[str] = Field(default=None, alias="couponReason")
