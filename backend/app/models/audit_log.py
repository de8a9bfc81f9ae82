"""
AuditLog model: immutable record of coupon management actions.
"""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID as SQLAlchemyUUID
from sqlalchemy.orm import relationship

from app.core.database import Base


class AuditLog(Base):
    """
    Who created, changed or retired a coupon, and how.

    ``coupon_code`` is denormalized so a disputed charge can be traced from
    the Stripe session metadata (which only carries the code).
    """

    __tablename__ = "audit_logs"

    id = Column(SQLAlchemyUUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
    actor_id = Column(
        SQLAlchemyUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    actor_role = Column(String(20), nullable=True, comment="admin|professional")
    action = Column(String(100), nullable=False, index=True, comment="coupon.created|coupon.updated|coupon.retired")
    coupon_id = Column(SQLAlchemyUUID(as_uuid=True), nullable=True, index=True)
    coupon_code = Column(String(20), nullable=True, index=True)
    changes = Column(JSON, nullable=True, comment="Snapshot on create, {field: {from, to}} on update")
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    actor = relationship("User", foreign_keys=[actor_id])

    def __repr__(self) -> str:
        return f"<AuditLog(action='{self.action}', coupon='{self.coupon_code}', actor={self.actor_id})>"
