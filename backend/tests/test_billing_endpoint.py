"""
Billing API tests: public plans, quotes and checkout.
"""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException, status
from httpx import AsyncClient

from app.api.v1.endpoints.billing import _raise_billing_http_error
from app.services.checkout_service import CheckoutServiceError


@pytest.fixture
def stripe_session():
    """Stripe calls for a checkout with no customer and no coupon."""
    session_create = MagicMock(
        return_value=SimpleNamespace(id="cs_test_9", url="https://checkout.stripe.com/c/pay/cs_test_9")
    )
    with patch("stripe.Customer.list", MagicMock(return_value=SimpleNamespace(data=[]))), patch(
        "stripe.Coupon.retrieve", MagicMock()
    ), patch("stripe.checkout.Session.create", session_create):
        yield session_create


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_public_plans_with_prices(client: AsyncClient, plans) -> None:
    response = await client.get("/api/v1/plans")

    assert response.status_code == 200, response.text
    payload = response.json()
    assert [p["name"] for p in payload] == ["free", "50", "100", "500"]

    free = payload[0]
    assert free["isFree"] is True
    assert free["monthly"] is None and free["annual"] is None

    pro = payload[2]
    assert pro["monthly"]["displayPrice"] == 100.0
    assert pro["annual"]["displayPrice"] == 74.0
    assert pro["annual"]["annualSavings"] == 312.0
    assert pro["annual"]["discountBadges"] == ["-26%"]


# ---------------------------------------------------------------------------
# Quote
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_quote_applies_coupon_after_annual_discount(
    client: AsyncClient, users, plans, make_coupon, auth_headers
) -> None:
    await make_coupon("DESC20")

    response = await client.post(
        "/api/v1/billing/quote",
        json={"planKey": "100-annual", "couponCode": "desc20"},
        headers=auth_headers(users["professional"]),
    )

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["planKey"] == "100-annual"
    assert payload["couponCode"] == "DESC20"
    assert "couponError" not in payload
    assert payload["price"]["displayPrice"] == 59.2
    assert payload["price"]["preCouponPrice"] == 74.0
    assert payload["price"]["showCouponStrikethrough"] is True
    assert payload["price"]["discountBadges"] == ["-26%", "-20%"]


@pytest.mark.asyncio
async def test_quote_with_rejected_coupon_keeps_base_price(
    client: AsyncClient, users, plans, make_coupon, auth_headers
) -> None:
    await make_coupon("PACIENTE", target_audience="patients")

    response = await client.post(
        "/api/v1/billing/quote",
        json={"planKey": "50-monthly", "couponCode": "PACIENTE"},
        headers=auth_headers(users["professional"]),
    )

    payload = response.json()
    assert response.status_code == 200
    assert payload["price"]["displayPrice"] == 50.0
    assert payload["couponReason"] == "audience_mismatch"
    assert payload["couponError"] == "Cupom não válido para este tipo de usuário"
    assert "couponCode" not in payload


@pytest.mark.asyncio
@pytest.mark.parametrize(("plan_key", "expected_status"), [("75-monthly", 400), ("free-monthly", 400)])
async def test_quote_unknown_plan(
    client: AsyncClient, users, plans, auth_headers, plan_key: str, expected_status: int
) -> None:
    response = await client.post(
        "/api/v1/billing/quote",
        json={"planKey": plan_key},
        headers=auth_headers(users["professional"]),
    )
    assert response.status_code == expected_status


@pytest.mark.asyncio
async def test_quote_plan_missing_from_catalog(client: AsyncClient, users, auth_headers) -> None:
    response = await client.post(
        "/api/v1/billing/quote",
        json={"planKey": "50-monthly"},
        headers=auth_headers(users["professional"]),
    )
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_checkout_returns_stripe_url(
    client: AsyncClient, users, auth_headers, stripe_session
) -> None:
    response = await client.post(
        "/api/v1/billing/checkout",
        json={"planKey": "50-annual"},
        headers={**auth_headers(users["professional"]), "Origin": "http://localhost:5173"},
    )

    assert response.status_code == 200, response.text
    assert response.json() == {
        "url": "https://checkout.stripe.com/c/pay/cs_test_9",
        "sessionId": "cs_test_9",
        "couponCode": None,
    }
    kwargs = stripe_session.call_args.kwargs
    assert kwargs["success_url"] == "http://localhost:5173/dashboard/professional?checkout=success"


@pytest.mark.asyncio
async def test_checkout_ignores_unlisted_origin(
    client: AsyncClient, users, auth_headers, stripe_session
) -> None:
    response = await client.post(
        "/api/v1/billing/checkout",
        json={"planKey": "50-annual"},
        headers={**auth_headers(users["professional"]), "Origin": "https://phishing.example"},
    )

    assert response.status_code == 200
    kwargs = stripe_session.call_args.kwargs
    assert kwargs["cancel_url"] == "https://assinesaude.com.br/dashboard/professional?checkout=canceled"


@pytest.mark.asyncio
async def test_checkout_forbidden_for_patients(client: AsyncClient, users, auth_headers, stripe_session) -> None:
    response = await client.post(
        "/api/v1/billing/checkout",
        json={"planKey": "50-monthly"},
        headers=auth_headers(users["patient"]),
    )

    assert response.status_code == 403
    stripe_session.assert_not_called()


@pytest.mark.asyncio
async def test_checkout_invalid_plan_is_400(client: AsyncClient, users, auth_headers, stripe_session) -> None:
    response = await client.post(
        "/api/v1/billing/checkout",
        json={"planKey": "100-weekly"},
        headers=auth_headers(users["professional"]),
    )

    assert response.status_code == 400
    stripe_session.assert_not_called()


@pytest.mark.asyncio
async def test_checkout_unverified_email_is_403(client: AsyncClient, users, auth_headers, stripe_session) -> None:
    response = await client.post(
        "/api/v1/billing/checkout",
        json={"planKey": "100-monthly"},
        headers=auth_headers(users["unverified"]),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_checkout_without_stripe_key_is_503(
    client: AsyncClient, users, auth_headers, monkeypatch: pytest.MonkeyPatch
) -> None:
    from app.core.config import settings

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    response = await client.post(
        "/api/v1/billing/checkout",
        json={"planKey": "100-monthly"},
        headers=auth_headers(users["professional"]),
    )
    assert response.status_code == 503


@pytest.mark.asyncio
async def test_checkout_unknown_plan_without_stripe_key_is_400(
    client: AsyncClient, users, auth_headers, monkeypatch: pytest.MonkeyPatch
) -> None:
    from app.core.config import settings

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    response = await client.post(
        "/api/v1/billing/checkout",
        json={"planKey": "999-monthly"},
        headers=auth_headers(users["professional"]),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Plano inválido: 999-monthly"


@pytest.mark.parametrize(
    ("code", "expected_status"),
    [
        ("email_not_verified", status.HTTP_403_FORBIDDEN),
        ("upstream_error", status.HTTP_502_BAD_GATEWAY),
        ("stripe_not_configured", status.HTTP_503_SERVICE_UNAVAILABLE),
        ("invalid_plan", status.HTTP_400_BAD_REQUEST),
        ("coupon_rejected", status.HTTP_400_BAD_REQUEST),
    ],
)
def test_raise_billing_http_error_maps_service_codes(code: str, expected_status: int) -> None:
    with pytest.raises(HTTPException) as exc_info:
        _raise_billing_http_error(CheckoutServiceError("erro", code=code))

    assert exc_info.value.status_code == expected_status
    assert exc_info.value.detail == "erro"
