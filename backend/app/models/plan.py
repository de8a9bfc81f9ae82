"""
Plan model: professional subscription tiers.
"""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID as SQLAlchemyUUID

from app.core.database import Base


class Plan(Base):
    """
    Billable tier with its base monthly price.

    ``name`` is the tier half of a checkout plan key (``50`` in ``50-annual``).
    The Stripe price per billing cycle lives in the static price table of
    ``app.services.pricing``; the price here is what the pricing page shows.
    """

    __tablename__ = "plans"

    id = Column(SQLAlchemyUUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
    name = Column(String(50), unique=True, nullable=False, comment="tier: free, 50, 100, 500")
    display_name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    # Pricing
    price_cents = Column(Integer, nullable=False, default=0, comment="Base monthly price in cents (BRL)")
    is_free = Column(Boolean, default=False, nullable=False)

    features = Column(JSON, nullable=True, comment="List of feature bullet points")

    # Status / ordering
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, name='{self.name}', price={self.price_cents})>"
