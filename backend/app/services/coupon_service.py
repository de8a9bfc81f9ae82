"""
Coupon service: validation against the store, usage accounting and management.

``validate`` is read-only and advisory. Usage only moves through
``reserve_use``/``release_use``, each a single conditional UPDATE, so two
checkouts racing for the last use of a coupon cannot both get it.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rbac import UserRole, normalize_role
from app.models.coupon import DiscountCoupon
from app.models.user import User
from app.schemas.coupon import CouponCreate, CouponUpdate
from app.services.audit_log_service import AuditLogService
from app.services.coupon_rules import (
    CouponRejection,
    CouponVerdict,
    evaluate_coupon,
    generate_code,
    normalize_code,
)

logger = logging.getLogger(__name__)

_GENERATE_ATTEMPTS = 5


class CouponServiceError(Exception):
    """Domain error for coupon management."""

    def __init__(self, detail: str, code: str = "coupon_error") -> None:
        self.detail = detail
        self.code = code
        super().__init__(detail)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    return value


class CouponService:
    """Coupon validation, usage counter and CRUD over ``discount_coupons``."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def get_by_code(self, code: str) -> Optional[DiscountCoupon]:
        stmt = (
            select(DiscountCoupon)
            .where(DiscountCoupon.code == code)
            .execution_options(populate_existing=True)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def validate(
        self,
        raw_code: Optional[str],
        *,
        audience: str,
        now: Optional[datetime] = None,
    ) -> CouponVerdict:
        """
        Verdict for a typed code and a caller audience.

        Inactive and retired rows are still loaded so they report
        ``inactive`` rather than ``not_found``.
        """
        code = normalize_code(raw_code)
        if code is None:
            return CouponVerdict.rejected(CouponRejection.INVALID_FORMAT)

        coupon = await self.get_by_code(code)
        return evaluate_coupon(coupon, audience=audience, now=now or datetime.utcnow())

    # ------------------------------------------------------------------
    # Usage accounting
    # ------------------------------------------------------------------

    async def reserve_use(self, code: str) -> bool:
        """
        Take one use of ``code`` if it is still available.

        Returns:
            False when no row matched: cap reached (or coupon deactivated)
            since it was validated.
        """
        stmt = (
            update(DiscountCoupon)
            .where(
                DiscountCoupon.code == code,
                DiscountCoupon.is_active.is_(True),
                DiscountCoupon.retired_at.is_(None),
                or_(
                    DiscountCoupon.max_uses.is_(None),
                    DiscountCoupon.current_uses < DiscountCoupon.max_uses,
                ),
            )
            .values(current_uses=DiscountCoupon.current_uses + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        return result.rowcount == 1

    async def release_use(self, code: str) -> bool:
        """Give back a use taken by ``reserve_use``. Never goes below zero."""
        stmt = (
            update(DiscountCoupon)
            .where(DiscountCoupon.code == code, DiscountCoupon.current_uses > 0)
            .values(current_uses=DiscountCoupon.current_uses - 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    async def list_coupons(
        self,
        *,
        professional_id: Optional[UUID] = None,
        platform_only: bool = False,
        target_audience: Optional[str] = None,
        is_active: Optional[bool] = None,
        include_retired: bool = False,
    ) -> list[DiscountCoupon]:
        """
        List coupons, newest first.

        ``professional_id`` scopes to one owner; ``platform_only`` keeps
        only admin-issued coupons.
        """
        stmt = select(DiscountCoupon)
        if professional_id is not None:
            stmt = stmt.where(DiscountCoupon.professional_id == professional_id)
        elif platform_only:
            stmt = stmt.where(DiscountCoupon.professional_id.is_(None))
        if target_audience is not None:
            stmt = stmt.where(DiscountCoupon.target_audience == target_audience)
        if is_active is not None:
            stmt = stmt.where(DiscountCoupon.is_active.is_(is_active))
        if not include_retired:
            stmt = stmt.where(DiscountCoupon.retired_at.is_(None))

        stmt = stmt.order_by(DiscountCoupon.created_at.desc())
        return list((await self._db.execute(stmt)).scalars().all())

    async def get_coupon(
        self,
        coupon_id: UUID,
        *,
        professional_id: Optional[UUID] = None,
    ) -> DiscountCoupon:
        stmt = select(DiscountCoupon).where(DiscountCoupon.id == coupon_id)
        if professional_id is not None:
            stmt = stmt.where(DiscountCoupon.professional_id == professional_id)
        coupon = (await self._db.execute(stmt)).scalar_one_or_none()
        if coupon is None:
            raise CouponServiceError("Cupom não encontrado.", code="coupon_not_found")
        return coupon

    async def create_coupon(
        self,
        *,
        actor: User,
        payload: CouponCreate,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> DiscountCoupon:
        """
        Create a coupon owned by ``actor``.

        Professionals issue coupons for their own patients (audience defaults
        to ``patients``); admins issue platform coupons (default ``all``).
        """
        is_professional = normalize_role(actor.role) == UserRole.PROFESSIONAL

        if payload.discount_type == "percentage" and payload.discount_value > 100:
            raise CouponServiceError(
                "Desconto percentual deve estar entre 0 e 100.",
                code="coupon_invalid",
            )

        valid_from = payload.valid_from or datetime.utcnow()
        self._check_window(valid_from, payload.valid_until)

        code = await self._resolve_new_code(payload.code)
        coupon = DiscountCoupon(
            code=code,
            description=payload.description,
            discount_type=payload.discount_type,
            discount_value=payload.discount_value,
            target_audience=payload.target_audience or ("patients" if is_professional else "all"),
            valid_from=valid_from,
            valid_until=payload.valid_until,
            max_uses=payload.max_uses,
            current_uses=0,
            is_active=True,
            created_by=actor.id,
            created_by_type="professional" if is_professional else "admin",
            professional_id=actor.id if is_professional else None,
        )
        self._db.add(coupon)
        try:
            await self._db.flush()
        except IntegrityError as exc:
            raise CouponServiceError(
                f"Já existe um cupom com o código '{code}'.",
                code="coupon_conflict",
            ) from exc

        await AuditLogService.record(
            self._db,
            actor=actor,
            action="coupon.created",
            coupon_id=coupon.id,
            coupon_code=coupon.code,
            changes={
                field: _jsonable(getattr(coupon, field))
                for field in (
                    "code",
                    "discount_type",
                    "discount_value",
                    "target_audience",
                    "valid_from",
                    "valid_until",
                    "max_uses",
                    "professional_id",
                )
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(
            "coupon_created code=%s type=%s value=%s actor=%s",
            coupon.code,
            coupon.discount_type,
            coupon.discount_value,
            actor.id,
        )
        await self._db.refresh(coupon)
        return coupon

    async def update_coupon(
        self,
        coupon_id: UUID,
        *,
        actor: User,
        payload: CouponUpdate,
        professional_id: Optional[UUID] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> DiscountCoupon:
        """Apply the mutable fields that changed and audit the diff."""
        coupon = await self.get_coupon(coupon_id, professional_id=professional_id)
        if coupon.retired_at is not None:
            raise CouponServiceError(
                "Cupom retirado não pode ser alterado.",
                code="coupon_retired",
            )

        update_data = payload.model_dump(exclude_unset=True)
        for field in ("target_audience", "valid_from", "is_active"):
            if field in update_data and update_data[field] is None:
                del update_data[field]

        max_uses = update_data.get("max_uses", coupon.max_uses)
        if max_uses is not None and max_uses < coupon.current_uses:
            raise CouponServiceError(
                f"Limite de uso não pode ser menor que os usos atuais ({coupon.current_uses}).",
                code="coupon_invalid",
            )
        self._check_window(
            update_data.get("valid_from", coupon.valid_from),
            update_data.get("valid_until", coupon.valid_until),
        )

        changes: dict[str, Any] = {}
        for field, value in update_data.items():
            old = getattr(coupon, field)
            if old != value:
                changes[field] = {"from": _jsonable(old), "to": _jsonable(value)}
                setattr(coupon, field, value)

        if changes:
            coupon.updated_at = datetime.utcnow()
            await AuditLogService.record(
                self._db,
                actor=actor,
                action="coupon.updated",
                coupon_id=coupon.id,
                coupon_code=coupon.code,
                changes=changes,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            await self._db.flush()
            await self._db.refresh(coupon)

        return coupon

    async def retire_coupon(
        self,
        coupon_id: UUID,
        *,
        actor: User,
        professional_id: Optional[UUID] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> DiscountCoupon:
        """Retire a coupon for good. Retiring twice is a no-op."""
        coupon = await self.get_coupon(coupon_id, professional_id=professional_id)
        if coupon.retired_at is not None:
            return coupon

        now = datetime.utcnow()
        was_active = coupon.is_active
        coupon.is_active = False
        coupon.retired_at = now
        coupon.updated_at = now

        await AuditLogService.record(
            self._db,
            actor=actor,
            action="coupon.retired",
            coupon_id=coupon.id,
            coupon_code=coupon.code,
            changes={
                "is_active": {"from": was_active, "to": False},
                "retired_at": {"from": None, "to": now.isoformat()},
                "current_uses": coupon.current_uses,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info("coupon_retired code=%s actor=%s", coupon.code, actor.id)

        await self._db.flush()
        await self._db.refresh(coupon)
        return coupon

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_window(valid_from: datetime, valid_until: Optional[datetime]) -> None:
        if valid_until is not None and valid_until <= valid_from:
            raise CouponServiceError(
                "Data final de validade deve ser posterior à data inicial.",
                code="coupon_invalid",
            )

    async def _resolve_new_code(self, raw_code: Optional[str]) -> str:
        if raw_code is not None and raw_code.strip():
            code = normalize_code(raw_code)
            if code is None:
                raise CouponServiceError(
                    CouponRejection.INVALID_FORMAT.message + ". Use apenas letras e números.",
                    code="coupon_invalid",
                )
            if await self.get_by_code(code) is not None:
                raise CouponServiceError(
                    f"Já existe um cupom com o código '{code}'.",
                    code="coupon_conflict",
                )
            return code

        for _ in range(_GENERATE_ATTEMPTS):
            code = generate_code()
            if await self.get_by_code(code) is None:
                return code
        raise CouponServiceError(
            "Não foi possível gerar um código único. Tente novamente.",
            code="coupon_conflict",
        )
