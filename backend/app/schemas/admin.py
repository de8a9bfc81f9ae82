"""
Pydantic schemas for the Admin API: coupon audit trail.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class PaginationMeta(BaseModel):
    total: int
    page: int
    pages: int
    limit: int


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: Optional[UUID]
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    action: str
    coupon_id: Optional[UUID]
    coupon_code: Optional[str]
    changes: Optional[dict[str, Any]]
    ip_address: Optional[str]
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: list[AuditLogResponse]
    pagination: PaginationMeta
