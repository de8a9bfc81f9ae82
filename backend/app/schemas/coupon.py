"""
Pydantic schemas for coupon validation and coupon management.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

CouponAudience = Literal["professionals", "patients", "all"]
DiscountType = Literal["percentage", "fixed"]


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ---------------------------------------------------------------------------
# Validation (public, camelCase)
# ---------------------------------------------------------------------------

class CouponValidateRequest(BaseModel):
    """Code typed by the user; audience defaults from the caller role."""

    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(..., max_length=100)
    target_audience: Optional[CouponAudience] = Field(default=None, alias="targetAudience")


class ValidatedCoupon(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    discount_type: DiscountType = Field(..., alias="discountType")
    discount_value: float = Field(..., alias="discountValue")
    description: Optional[str] = None


class CouponValidateResponse(BaseModel):
    """Advisory verdict. ``reason`` is the machine code, ``error`` the pt-BR message."""

    valid: bool
    coupon: Optional[ValidatedCoupon] = None
    error: Optional[str] = None
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Management (admin and professionals)
# ---------------------------------------------------------------------------

class CouponCreate(BaseModel):
    """New coupon. ``code`` is generated when omitted."""

    code: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    discount_type: DiscountType
    discount_value: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    target_audience: Optional[CouponAudience] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(value)


class CouponUpdate(BaseModel):
    """Mutable coupon fields. Discount terms and code are fixed at creation."""

    description: Optional[str] = Field(default=None, max_length=500)
    target_audience: Optional[CouponAudience] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(value)


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    target_audience: CouponAudience
    valid_from: datetime
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = None
    current_uses: int
    is_active: bool
    retired_at: Optional[datetime] = None
    created_by_type: str
    professional_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
