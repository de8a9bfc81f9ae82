"""
Checkout service tests with Stripe mocked out.
"""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.models import DiscountCoupon
from app.services.checkout_service import (
    CheckoutService,
    CheckoutServiceError,
    StripeNotConfiguredError,
    read_checkout_return,
)
from app.services.coupon_service import CouponService
from app.services.pricing import DEFAULT_STRIPE_PRICE_IDS

ORIGIN = "https://assinesaude.com.br"


def _service(**overrides) -> CheckoutService:
    kwargs = {"secret_key": "sk_test_123"}
    kwargs.update(overrides)
    return CheckoutService(**kwargs)


def _missing(code: str = "DESC20") -> stripe.InvalidRequestError:
    return stripe.InvalidRequestError(f"No such coupon: '{code}'", "coupon", code="resource_missing")


class StripeMocks:
    """Patches for every Stripe call the checkout makes."""

    def __init__(self, *, customers=None, coupon_exists: bool = True) -> None:
        self.customer_list = MagicMock(return_value=SimpleNamespace(data=customers or []))
        self.coupon_retrieve = MagicMock()
        if not coupon_exists:
            self.coupon_retrieve.side_effect = _missing()
        self.coupon_create = MagicMock()
        self.session_create = MagicMock(
            return_value=SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1")
        )
        self._patches = [
            patch("stripe.Customer.list", self.customer_list),
            patch("stripe.Coupon.retrieve", self.coupon_retrieve),
            patch("stripe.Coupon.create", self.coupon_create),
            patch("stripe.checkout.Session.create", self.session_create),
        ]

    def __enter__(self) -> "StripeMocks":
        for p in self._patches:
            p.start()
        return self

    def __exit__(self, *exc) -> None:
        for p in self._patches:
            p.stop()

    def stripe_called(self) -> bool:
        return any(
            m.called
            for m in (self.customer_list, self.coupon_retrieve, self.coupon_create, self.session_create)
        )


async def _uses(session_factory, code: str) -> int:
    async with session_factory() as session:
        return (
            await session.execute(select(DiscountCoupon.current_uses).where(DiscountCoupon.code == code))
        ).scalar_one()


@pytest.mark.asyncio
async def test_unknown_plan_never_reaches_stripe(db, users) -> None:
    with StripeMocks() as mocks:
        with pytest.raises(CheckoutServiceError) as exc_info:
            await _service().create_checkout(
                db, user=users["professional"], plan_key="75-monthly", origin=ORIGIN
            )

    assert exc_info.value.code == "invalid_plan"
    assert not mocks.stripe_called()


@pytest.mark.asyncio
async def test_unverified_email_is_refused(db, users) -> None:
    with StripeMocks() as mocks:
        with pytest.raises(CheckoutServiceError) as exc_info:
            await _service().create_checkout(
                db, user=users["unverified"], plan_key="50-monthly", origin=ORIGIN
            )

    assert exc_info.value.code == "email_not_verified"
    assert not mocks.stripe_called()


@pytest.mark.asyncio
async def test_checkout_without_coupon_reuses_customer(db, users) -> None:
    user = users["professional"]
    with StripeMocks(customers=[SimpleNamespace(id="cus_123")]) as mocks:
        result = await _service().create_checkout(
            db, user=user, plan_key="100-annual", origin=ORIGIN + "/"
        )

    assert result["url"].startswith("https://checkout.stripe.com/")
    assert result["coupon_code"] is None
    mocks.customer_list.assert_called_once_with(email=user.email, limit=1)

    kwargs = mocks.session_create.call_args.kwargs
    assert kwargs["mode"] == "subscription"
    assert kwargs["customer"] == "cus_123"
    assert "customer_email" not in kwargs
    assert "discounts" not in kwargs
    assert kwargs["line_items"] == [{"price": DEFAULT_STRIPE_PRICE_IDS["100-annual"], "quantity": 1}]
    assert kwargs["success_url"] == f"{ORIGIN}/dashboard/professional?checkout=success"
    assert kwargs["cancel_url"] == f"{ORIGIN}/dashboard/professional?checkout=canceled"
    assert kwargs["metadata"] == {"user_id": str(user.id), "plan_key": "100-annual", "coupon_code": ""}


@pytest.mark.asyncio
async def test_new_customer_gets_customer_email(db, users) -> None:
    with StripeMocks() as mocks:
        await _service().create_checkout(db, user=users["professional"], plan_key="50-monthly", origin=ORIGIN)

    kwargs = mocks.session_create.call_args.kwargs
    assert kwargs["customer_email"] == users["professional"].email
    assert "customer" not in kwargs


@pytest.mark.asyncio
async def test_valid_coupon_is_materialized_once_and_counted(db, users, session_factory, make_coupon) -> None:
    await make_coupon("DESC20", discount_value=20, max_uses=10)
    user = users["professional"]

    with StripeMocks(coupon_exists=False) as mocks:
        result = await _service().create_checkout(
            db, user=user, plan_key="50-monthly", coupon_code=" desc20 ", origin=ORIGIN
        )

    assert result["coupon_code"] == "DESC20"
    mocks.coupon_create.assert_called_once_with(
        id="DESC20", duration="once", percent_off=20.0, name="Desconto 20%"
    )
    kwargs = mocks.session_create.call_args.kwargs
    assert kwargs["discounts"] == [{"coupon": "DESC20"}]
    assert kwargs["metadata"]["coupon_code"] == "DESC20"
    assert await _uses(session_factory, "DESC20") == 1

    # Second checkout: the Stripe coupon now exists and is only retrieved.
    with StripeMocks(coupon_exists=True) as mocks:
        await _service().create_checkout(
            db, user=user, plan_key="50-monthly", coupon_code="DESC20", origin=ORIGIN
        )

    mocks.coupon_create.assert_not_called()
    mocks.coupon_retrieve.assert_called_once_with("DESC20")
    assert await _uses(session_factory, "DESC20") == 2


@pytest.mark.asyncio
async def test_fixed_coupon_terms_in_centavos(db, users, make_coupon) -> None:
    await make_coupon("DEZ", discount_type="fixed", discount_value="10.50", description="Boas-vindas")

    with StripeMocks(coupon_exists=False) as mocks:
        await _service().create_checkout(
            db, user=users["professional"], plan_key="100-monthly", coupon_code="DEZ", origin=ORIGIN
        )

    mocks.coupon_create.assert_called_once_with(
        id="DEZ", duration="once", amount_off=1050, currency="brl", name="Boas-vindas"
    )


@pytest.mark.asyncio
async def test_lost_creation_race_retrieves_existing_coupon(db, users, make_coupon) -> None:
    await make_coupon("CORRIDA")

    with StripeMocks(coupon_exists=False) as mocks:
        mocks.coupon_retrieve.side_effect = [_missing("CORRIDA"), SimpleNamespace(id="CORRIDA")]
        mocks.coupon_create.side_effect = stripe.InvalidRequestError(
            "Coupon already exists.", "id", code="resource_already_exists"
        )
        result = await _service().create_checkout(
            db, user=users["professional"], plan_key="50-annual", coupon_code="CORRIDA", origin=ORIGIN
        )

    assert result["coupon_code"] == "CORRIDA"
    assert mocks.coupon_retrieve.call_count == 2


@pytest.mark.asyncio
async def test_invalid_coupon_degrades_to_full_price(db, users, session_factory, make_coupon) -> None:
    await make_coupon("PACIENTE", target_audience="patients", max_uses=5)

    with StripeMocks() as mocks:
        result = await _service().create_checkout(
            db, user=users["professional"], plan_key="50-monthly", coupon_code="PACIENTE", origin=ORIGIN
        )

    assert result["coupon_code"] is None
    kwargs = mocks.session_create.call_args.kwargs
    assert "discounts" not in kwargs
    assert kwargs["metadata"]["coupon_code"] == ""
    mocks.coupon_retrieve.assert_not_called()
    assert await _uses(session_factory, "PACIENTE") == 0


@pytest.mark.asyncio
async def test_invalid_coupon_fails_closed_when_configured(db, users, make_coupon) -> None:
    await make_coupon("VENCIDO", is_active=False)

    with StripeMocks() as mocks:
        with pytest.raises(CheckoutServiceError) as exc_info:
            await _service(coupon_fail_closed=True).create_checkout(
                db, user=users["professional"], plan_key="50-monthly", coupon_code="VENCIDO", origin=ORIGIN
            )

    assert exc_info.value.code == "coupon_rejected"
    assert exc_info.value.detail == "Cupom inativo"
    assert not mocks.stripe_called()


@pytest.mark.asyncio
async def test_last_use_taken_between_validation_and_reservation(db, users, make_coupon) -> None:
    await make_coupon("ULTIMO", max_uses=1)

    with StripeMocks() as mocks, patch.object(CouponService, "reserve_use", return_value=False):
        result = await _service().create_checkout(
            db, user=users["professional"], plan_key="50-monthly", coupon_code="ULTIMO", origin=ORIGIN
        )

    assert result["coupon_code"] is None
    assert "discounts" not in mocks.session_create.call_args.kwargs


@pytest.mark.asyncio
async def test_last_use_taken_fails_closed_when_configured(db, users, make_coupon) -> None:
    await make_coupon("ULTIMO", max_uses=1)

    with StripeMocks() as mocks, patch.object(CouponService, "reserve_use", return_value=False):
        with pytest.raises(CheckoutServiceError) as exc_info:
            await _service(coupon_fail_closed=True).create_checkout(
                db, user=users["professional"], plan_key="50-monthly", coupon_code="ULTIMO", origin=ORIGIN
            )

    assert exc_info.value.code == "coupon_rejected"
    assert exc_info.value.detail == "Cupom atingiu o limite de uso"
    mocks.session_create.assert_not_called()


@pytest.mark.asyncio
async def test_storage_error_on_reservation_keeps_discount(db, users, session_factory, make_coupon) -> None:
    await make_coupon("FALHA", max_uses=3)
    user_id = str(users["professional"].id)

    failing = OperationalError("UPDATE discount_coupons", {}, Exception("database is locked"))
    with StripeMocks() as mocks, patch.object(CouponService, "reserve_use", side_effect=failing):
        result = await _service().create_checkout(
            db, user=users["professional"], plan_key="50-monthly", coupon_code="FALHA", origin=ORIGIN
        )

    assert result["coupon_code"] == "FALHA"
    assert mocks.session_create.call_args.kwargs["discounts"] == [{"coupon": "FALHA"}]
    assert mocks.session_create.call_args.kwargs["metadata"]["user_id"] == user_id
    assert await _uses(session_factory, "FALHA") == 0


@pytest.mark.asyncio
async def test_session_failure_releases_reserved_use(db, users, session_factory, make_coupon) -> None:
    await make_coupon("DEVOLVE", max_uses=2, current_uses=1)

    with StripeMocks() as mocks:
        mocks.session_create.side_effect = stripe.APIConnectionError("Network error")
        with pytest.raises(CheckoutServiceError) as exc_info:
            await _service().create_checkout(
                db, user=users["professional"], plan_key="50-monthly", coupon_code="DEVOLVE", origin=ORIGIN
            )

    assert exc_info.value.code == "upstream_error"
    assert "Network error" in exc_info.value.detail
    assert await _uses(session_factory, "DEVOLVE") == 1


@pytest.mark.asyncio
async def test_customer_lookup_error_is_upstream(db, users) -> None:
    with StripeMocks() as mocks:
        mocks.customer_list.side_effect = stripe.AuthenticationError("Invalid API Key provided")
        with pytest.raises(CheckoutServiceError) as exc_info:
            await _service().create_checkout(db, user=users["professional"], plan_key="50-monthly", origin=ORIGIN)

    assert exc_info.value.code == "upstream_error"
    mocks.session_create.assert_not_called()


@pytest.mark.asyncio
async def test_coupon_create_error_is_upstream_and_nothing_reserved(
    db, users, session_factory, make_coupon
) -> None:
    await make_coupon("QUEBRA", max_uses=3)

    with StripeMocks(coupon_exists=False) as mocks:
        mocks.coupon_create.side_effect = stripe.InvalidRequestError("Invalid percent_off", "percent_off")
        with pytest.raises(CheckoutServiceError) as exc_info:
            await _service().create_checkout(
                db, user=users["professional"], plan_key="50-monthly", coupon_code="QUEBRA", origin=ORIGIN
            )

    assert exc_info.value.code == "upstream_error"
    mocks.session_create.assert_not_called()
    assert await _uses(session_factory, "QUEBRA") == 0


def test_from_settings_requires_secret_key(monkeypatch: pytest.MonkeyPatch) -> None:
    from app.core.config import settings

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    with pytest.raises(StripeNotConfiguredError):
        CheckoutService.from_settings()


@pytest.mark.parametrize(
    ("url", "expected_status", "expected_url"),
    [
        (
            "https://assinesaude.com.br/dashboard/professional?checkout=success",
            "success",
            "https://assinesaude.com.br/dashboard/professional",
        ),
        (
            "https://assinesaude.com.br/dashboard/professional?tab=plano&checkout=canceled",
            "canceled",
            "https://assinesaude.com.br/dashboard/professional?tab=plano",
        ),
        (
            "https://assinesaude.com.br/dashboard/professional?checkout=talvez",
            None,
            "https://assinesaude.com.br/dashboard/professional",
        ),
        (
            "https://assinesaude.com.br/dashboard/professional?tab=plano",
            None,
            "https://assinesaude.com.br/dashboard/professional?tab=plano",
        ),
    ],
)
def test_read_checkout_return(url: str, expected_status, expected_url: str) -> None:
    status, cleaned = read_checkout_return(url)

    assert status == expected_status
    assert cleaned == expected_url
    assert read_checkout_return(cleaned) == (None, cleaned)
