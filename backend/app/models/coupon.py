"""
DiscountCoupon model: named discount grants with validity rules.
"""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as SQLAlchemyUUID
from sqlalchemy.orm import relationship

from app.core.database import Base


class DiscountCoupon(Base):
    """
    Coupon issued by the platform (admin) or by a professional.

    ``current_uses`` is only ever changed through the conditional UPDATE in
    ``CouponService.reserve_use`` / ``release_use``. Coupons are retired
    (``retired_at``) instead of deleted so checkout metadata keeps pointing
    at a real row.
    """

    __tablename__ = "discount_coupons"

    id = Column(SQLAlchemyUUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True, comment="Upper-case [A-Z0-9]")
    description = Column(Text, nullable=True)

    discount_type = Column(String(20), nullable=False, comment="percentage|fixed")
    discount_value = Column(Numeric(10, 2), nullable=False, comment="Percent (0-100) or BRL amount")

    target_audience = Column(
        String(20),
        nullable=False,
        default="all",
        comment="professionals|patients|all",
    )

    # Validity window (naive UTC)
    valid_from = Column(DateTime, nullable=False, default=datetime.utcnow)
    valid_until = Column(DateTime, nullable=True)

    # Usage
    max_uses = Column(Integer, nullable=True, comment="NULL = unlimited")
    current_uses = Column(Integer, nullable=False, default=0)

    # Status
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    retired_at = Column(DateTime, nullable=True, comment="Set when the coupon is retired; never reactivated")

    # Ownership
    created_by = Column(
        SQLAlchemyUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_type = Column(String(20), nullable=False, default="admin", comment="admin|professional")
    professional_id = Column(
        SQLAlchemyUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Owning professional; NULL = platform coupon",
    )

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    professional = relationship("User", foreign_keys=[professional_id])

    __table_args__ = (
        CheckConstraint("current_uses >= 0", name="ck_discount_coupons_uses_non_negative"),
        CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_discount_coupons_uses_within_cap",
        ),
        CheckConstraint(
            "discount_type IN ('percentage', 'fixed')",
            name="ck_discount_coupons_discount_type",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<DiscountCoupon(code='{self.code}', type='{self.discount_type}', "
            f"value={self.discount_value}, uses={self.current_uses}/{self.max_uses})>"
        )
