"""
AuditLog service: coupon management trail, written in the caller's transaction.
"""
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog
from app.models.user import User


class AuditLogService:

    @staticmethod
    async def record(
        db: AsyncSession,
        *,
        actor: Optional[User],
        action: str,
        coupon_id: Optional[UUID] = None,
        coupon_code: Optional[str] = None,
        changes: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """
        Add an audit entry and flush, so a failed coupon write rolls it back too.

        Args:
            db: Active database session.
            actor: User performing the action (``None`` for system jobs).
            action: ``coupon.created``, ``coupon.updated`` or ``coupon.retired``.
            coupon_id: Affected coupon.
            coupon_code: Code of the affected coupon, kept for Stripe lookups.
            changes: Snapshot on create, ``{field: {"from": a, "to": b}}`` on update.
        """
        entry = AuditLog(
            actor_id=actor.id if actor is not None else None,
            actor_role=actor.role if actor is not None else None,
            action=action,
            coupon_id=coupon_id,
            coupon_code=coupon_code,
            changes=changes,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def list_logs(
        db: AsyncSession,
        *,
        page: int = 1,
        limit: int = 50,
        action: Optional[str] = None,
        coupon_code: Optional[str] = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """Paginated entries, newest first, with the actor's email joined in."""
        filters = []
        if action:
            filters.append(AuditLog.action == action)
        if coupon_code:
            filters.append(AuditLog.coupon_code == coupon_code)

        total = int(
            (await db.execute(select(func.count()).select_from(AuditLog).where(*filters))).scalar_one()
        )

        stmt = (
            select(AuditLog, User.email.label("actor_email"))
            .outerjoin(User, AuditLog.actor_id == User.id)
            .where(*filters)
            .order_by(desc(AuditLog.created_at))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        rows = (await db.execute(stmt)).all()

        items = [
            {
                "id": log.id,
                "actor_id": log.actor_id,
                "actor_email": actor_email,
                "actor_role": log.actor_role,
                "action": log.action,
                "coupon_id": log.coupon_id,
                "coupon_code": log.coupon_code,
                "changes": log.changes,
                "ip_address": log.ip_address,
                "created_at": log.created_at,
            }
            for log, actor_email in rows
        ]
        return items, total
