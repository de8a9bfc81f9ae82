"""
User model: local mirror of the identity provider's account and role.
"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.dialects.postgresql import UUID as SQLAlchemyUUID

from app.core.database import Base
from app.core.rbac import UserRole


class User(Base):
    """
    Marketplace account (admin, professional or patient).

    Authentication happens upstream; this row only carries what billing
    needs: identity, verified email and role.
    """
    __tablename__ = "users"

    id = Column(SQLAlchemyUUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    full_name = Column(String(255), nullable=True)

    role = Column(
        String(20),
        default=UserRole.PATIENT.value,
        nullable=False,
        comment="admin|professional|patient",
    )

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
