"""
Helpers shared by endpoint modules.
"""
from fastapi import HTTPException, status

from app.schemas.billing import PriceDisplayResponse
from app.services.coupon_service import CouponServiceError
from app.services.pricing import PriceDisplay


def raise_coupon_http_error(exc: CouponServiceError) -> None:
    """Convert coupon domain errors to HTTP responses."""
    status_code = status.HTTP_400_BAD_REQUEST
    if exc.code == "coupon_not_found":
        status_code = status.HTTP_404_NOT_FOUND
    elif exc.code in ("coupon_conflict", "coupon_retired"):
        status_code = status.HTTP_409_CONFLICT
    raise HTTPException(status_code=status_code, detail=exc.detail) from exc


def price_display_response(display: PriceDisplay) -> PriceDisplayResponse:
    return PriceDisplayResponse.model_validate(display.as_dict())
