"""
Database Models Package
SQLAlchemy ORM models for PostgreSQL.
"""

from app.models.user import User
from app.models.plan import Plan
from app.models.coupon import DiscountCoupon
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "Plan",
    "DiscountCoupon",
    "AuditLog",
]
