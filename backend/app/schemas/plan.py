"""
Pydantic schemas for public Plan API.
"""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.billing import PriceDisplayResponse


class PublicPlanResponse(BaseModel):
    """Plan card on the public pricing page (no auth required)."""

    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    name: str
    display_name: str = Field(..., alias="displayName")
    description: Optional[str] = None
    features: list[str] = Field(default_factory=list)
    is_free: bool = Field(..., alias="isFree")
    sort_order: int = Field(..., alias="sortOrder")
    monthly: Optional[PriceDisplayResponse] = None
    annual: Optional[PriceDisplayResponse] = None
