"""
Checkout service: Stripe Checkout sessions for professional subscriptions.

The coupon is re-validated here from scratch; whatever the client saw on the
pricing page is never trusted. A coupon use is reserved (and committed)
right before the Stripe session is created and given back if that call fails.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.user import User
from app.services.coupon_rules import (
    CouponRejection,
    CouponVerdict,
    FixedDiscount,
    PercentageDiscount,
)
from app.services.coupon_service import CouponService
from app.services.pricing import format_percent, formatar_brl, resolve_stripe_price_id

logger = logging.getLogger(__name__)

CHECKOUT_AUDIENCE = "professionals"
CHECKOUT_QUERY_PARAM = "checkout"

CHECKOUT_RETURN_MESSAGES: dict[str, str] = {
    "success": "Assinatura realizada com sucesso! Seu plano já está ativo.",
    "canceled": "Checkout cancelado. Você pode escolher um plano quando quiser.",
}


class CheckoutServiceError(Exception):
    """Domain error for checkout operations."""

    def __init__(self, detail: str, code: str = "checkout_error") -> None:
        self.detail = detail
        self.code = code
        super().__init__(detail)


class StripeNotConfiguredError(CheckoutServiceError):
    """Credenciais Stripe não configuradas."""

    def __init__(self, detail: str = "Stripe não configurado. Defina STRIPE_SECRET_KEY.") -> None:
        super().__init__(detail, code="stripe_not_configured")


class CheckoutService:
    """
    Starts Stripe-hosted subscription checkouts.

    Usa ``from_settings`` para carregar a chave do Stripe; a instância é
    criada por request.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        currency: str = "brl",
        return_path: str = "/dashboard/professional",
        coupon_fail_closed: bool = False,
    ) -> None:
        self._secret_key = secret_key
        self._currency = currency
        self._return_path = return_path
        self._coupon_fail_closed = coupon_fail_closed

    def _configure_stripe(self) -> None:
        """Seta stripe.api_key antes de cada operacao."""
        stripe.api_key = self._secret_key

    @classmethod
    def from_settings(cls) -> CheckoutService:
        """
        Build the service from application settings.

        Raises:
            StripeNotConfiguredError: If ``STRIPE_SECRET_KEY`` is empty.
        """
        if not settings.STRIPE_SECRET_KEY:
            raise StripeNotConfiguredError()
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            currency=settings.STRIPE_CURRENCY,
            return_path=settings.CHECKOUT_RETURN_PATH,
            coupon_fail_closed=settings.CHECKOUT_COUPON_FAIL_CLOSED,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_checkout(
        self,
        db: AsyncSession,
        *,
        user: User,
        plan_key: str,
        coupon_code: Optional[str] = None,
        origin: str,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Create a Stripe Checkout Session for a plan key like ``100-annual``.

        An invalid coupon is logged and dropped (checkout continues at full
        price) unless ``coupon_fail_closed`` is set.

        Returns:
            dict with url, session_id and coupon_code (the applied code or None).

        Raises:
            CheckoutServiceError: ``invalid_plan``, ``email_not_verified``,
                ``coupon_rejected`` (fail-closed only) or ``upstream_error``.
        """
        # Snapshot before any commit/rollback: a rollback expires ``user``.
        user_id = str(user.id)
        user_email = user.email

        price_id = resolve_stripe_price_id(plan_key)
        if price_id is None:
            logger.warning("checkout_invalid_plan user=%s plan_key=%r", user_id, plan_key)
            raise CheckoutServiceError(f"Plano inválido: {plan_key}", code="invalid_plan")

        if not user.email_verified:
            raise CheckoutServiceError(
                "Confirme seu e-mail antes de assinar um plano.",
                code="email_not_verified",
            )

        coupons = CouponService(db)
        verdict: Optional[CouponVerdict] = None
        if coupon_code and coupon_code.strip():
            verdict = await coupons.validate(coupon_code, audience=CHECKOUT_AUDIENCE, now=now)
            if not verdict.valid:
                logger.warning(
                    "checkout_coupon_rejected user=%s code=%r reason=%s",
                    user_id,
                    coupon_code,
                    verdict.rejection.value,
                )
                if self._coupon_fail_closed:
                    raise CheckoutServiceError(verdict.rejection.message, code="coupon_rejected")
                verdict = None

        self._configure_stripe()
        customer_kwarg = self._customer_kwargs(user_email)

        checkout_kwargs: dict[str, Any] = {}
        applied_code: Optional[str] = None
        counted = False
        if verdict is not None:
            stripe_coupon_id = self._ensure_stripe_coupon(verdict)
            applied_code, counted = await self._reserve_coupon_use(db, coupons, verdict.code)
            if applied_code is None:
                if self._coupon_fail_closed:
                    raise CheckoutServiceError(
                        CouponRejection.LIMIT_REACHED.message,
                        code="coupon_rejected",
                    )
            else:
                checkout_kwargs["discounts"] = [{"coupon": stripe_coupon_id}]

        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=self._return_url(origin, "success"),
                cancel_url=self._return_url(origin, "canceled"),
                metadata={
                    "user_id": user_id,
                    "plan_key": plan_key,
                    "coupon_code": applied_code or "",
                },
                **customer_kwarg,
                **checkout_kwargs,
            )
        except stripe.StripeError as exc:
            if counted:
                await self._release_coupon_use(db, coupons, applied_code)
            raise self._upstream_error("checkout_session_create", exc) from exc

        logger.info(
            "checkout_session_created user=%s plan_key=%s session=%s coupon=%s",
            user_id,
            plan_key,
            session.id,
            applied_code or "-",
        )
        return {
            "url": session.url,
            "session_id": session.id,
            "coupon_code": applied_code,
        }

    # ------------------------------------------------------------------
    # Stripe helpers
    # ------------------------------------------------------------------

    def _customer_kwargs(self, email: str) -> dict[str, str]:
        """Reuse the first Stripe customer with this email, else let Checkout create one."""
        try:
            customers = stripe.Customer.list(email=email, limit=1)
        except stripe.StripeError as exc:
            raise self._upstream_error("customer_list", exc) from exc

        if customers.data:
            return {"customer": customers.data[0].id}
        return {"customer_email": email}

    def _ensure_stripe_coupon(self, verdict: CouponVerdict) -> str:
        """
        Make sure a Stripe coupon with id == code exists and return its id.

        Retrieve first, create only when missing. Losing a creation race to a
        concurrent checkout is fine: the coupon is then retrieved.
        """
        coupon_id = verdict.code
        try:
            stripe.Coupon.retrieve(coupon_id)
            return coupon_id
        except stripe.InvalidRequestError as exc:
            if exc.code != "resource_missing":
                raise self._upstream_error("coupon_retrieve", exc) from exc
        except stripe.StripeError as exc:
            raise self._upstream_error("coupon_retrieve", exc) from exc

        try:
            stripe.Coupon.create(id=coupon_id, duration="once", **self._stripe_coupon_terms(verdict))
            logger.info("stripe_coupon_created code=%s", coupon_id)
        except stripe.InvalidRequestError as exc:
            if exc.code != "resource_already_exists":
                raise self._upstream_error("coupon_create", exc) from exc
            try:
                stripe.Coupon.retrieve(coupon_id)
            except stripe.StripeError as retry_exc:
                raise self._upstream_error("coupon_retrieve", retry_exc) from retry_exc
        except stripe.StripeError as exc:
            raise self._upstream_error("coupon_create", exc) from exc
        return coupon_id

    def _stripe_coupon_terms(self, verdict: CouponVerdict) -> dict[str, Any]:
        discount = verdict.discount
        if isinstance(discount, PercentageDiscount):
            return {
                "percent_off": float(discount.percent),
                "name": verdict.description or f"Desconto {format_percent(discount.percent)}%",
            }
        if isinstance(discount, FixedDiscount):
            cents = (discount.amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
            return {
                "amount_off": int(cents),
                "currency": self._currency,
                "name": verdict.description or f"Desconto R$ {formatar_brl(discount.amount)}",
            }
        raise TypeError(f"Unsupported discount: {discount!r}")

    @staticmethod
    def _upstream_error(step: str, exc: Exception) -> CheckoutServiceError:
        message = getattr(exc, "user_message", None) or str(exc)
        logger.error("stripe_error step=%s error=%s", step, message)
        return CheckoutServiceError(
            f"Erro ao comunicar com Stripe: {message}",
            code="upstream_error",
        )

    # ------------------------------------------------------------------
    # Usage accounting
    # ------------------------------------------------------------------

    @staticmethod
    async def _reserve_coupon_use(
        db: AsyncSession,
        coupons: CouponService,
        code: str,
    ) -> tuple[Optional[str], bool]:
        """
        Reserve one use and commit it before talking to Stripe again.

        Returns:
            (applied_code, counted). A lost race drops the coupon; a storage
            error keeps the discount but leaves the use uncounted.
        """
        try:
            reserved = await coupons.reserve_use(code)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("checkout_coupon_reserve_failed code=%s", code)
            return code, False

        if not reserved:
            logger.warning("checkout_coupon_rejected code=%s reason=limit_reached stage=reserve", code)
            return None, False
        return code, True

    @staticmethod
    async def _release_coupon_use(db: AsyncSession, coupons: CouponService, code: str) -> None:
        try:
            await coupons.release_use(code)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("checkout_coupon_release_failed code=%s", code)
        else:
            logger.info("checkout_coupon_released code=%s", code)

    # ------------------------------------------------------------------
    # Return URLs
    # ------------------------------------------------------------------

    def _return_url(self, origin: str, status: str) -> str:
        return f"{origin.rstrip('/')}{self._return_path}?{CHECKOUT_QUERY_PARAM}={status}"


def read_checkout_return(url: str) -> tuple[Optional[str], str]:
    """
    Read the ``checkout`` flag Stripe appends on redirect back.

    Returns:
        (status, cleaned_url). ``status`` is ``success``, ``canceled`` or None;
        ``cleaned_url`` no longer carries the flag, so reloading it does not
        show the notification again.
    """
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    values = [value for key, value in query if key == CHECKOUT_QUERY_PARAM]
    if not values:
        return None, url

    status = values[-1] if values[-1] in CHECKOUT_RETURN_MESSAGES else None
    remaining = [(key, value) for key, value in query if key != CHECKOUT_QUERY_PARAM]
    cleaned = urlunsplit(parts._replace(query=urlencode(remaining)))
    return status, cleaned
