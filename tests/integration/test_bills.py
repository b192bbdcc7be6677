"""Integration tests: Bill endpoints."""

import base64
import json
from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from app.models.bill_request import BillRequest
from app.models.partner import Partner
from app.utils.time import get_utc_now
from conftest import KEY_ID, auth_headers


async def _create_bill(async_client: AsyncClient, api_base: str, partner_user, **overrides) -> dict:
    body = {"amount": "1000.00", "discount_rate": "6", "description": "Table 4"}
    body.update(overrides)
    resp = await async_client.post(f"{api_base}/bills/create", headers=auth_headers(partner_user), json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_create_bill(async_client: AsyncClient, api_base: str, partner, partner_user):
    """Partner creates a bill; the response carries the QR token and the full split."""
    data = await _create_bill(async_client, api_base, partner_user)

    assert data["bill_id"] == "BR-000001"
    assert data["qr_token"]
    assert data["expiry_minutes"] == 5
    assert data["merchant"]["business_name"] == "Chai Point"

    amounts = data["amounts"]
    assert amounts["original_amount_in_paise"] == 100000
    assert amounts["discount_amount_in_paise"] == 6000
    assert amounts["final_amount_in_paise"] == 94000
    assert amounts["platform_fee_in_paise"] == 1000
    assert amounts["partner_payout_in_paise"] == 99000
    assert Decimal(amounts["final_amount"]) == Decimal("940")


@pytest.mark.asyncio
async def test_create_bill_rejects_rate_above_limit(async_client: AsyncClient, api_base: str, partner, partner_user):
    resp = await async_client.post(
        f"{api_base}/bills/create",
        headers=auth_headers(partner_user),
        json={"amount": "1000.00", "discount_rate": "60"},
    )
    assert resp.status_code == 400, resp.text
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_create_bill_rejects_malformed_body(async_client: AsyncClient, api_base: str, partner, partner_user):
    resp = await async_client.post(
        f"{api_base}/bills/create",
        headers=auth_headers(partner_user),
        json={"amount": "-5", "discount_rate": "6"},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_non_partner_cannot_create_bills(async_client: AsyncClient, api_base: str, partner, user):
    resp = await async_client.post(
        f"{api_base}/bills/create",
        headers=auth_headers(user),
        json={"amount": "1000.00", "discount_rate": "6"},
    )
    assert resp.status_code == 403, resp.text
    assert resp.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_bills_require_authentication(async_client: AsyncClient, api_base: str):
    resp = await async_client.get(f"{api_base}/bills/active")
    assert resp.status_code in (401, 403)

    resp = await async_client.get(f"{api_base}/bills/active", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_active_bills_and_cancel(async_client: AsyncClient, api_base: str, partner, partner_user):
    first = await _create_bill(async_client, api_base, partner_user)
    second = await _create_bill(async_client, api_base, partner_user, amount="250.50")

    resp = await async_client.get(f"{api_base}/bills/active", headers=auth_headers(partner_user))
    assert resp.status_code == 200, resp.text
    listed = resp.json()["data"]
    assert [b["bill_id"] for b in listed] == [second["bill_id"], first["bill_id"]]
    assert listed[0]["amount_in_paise"] == 25050

    resp = await async_client.delete(f"{api_base}/bills/{first['bill_id']}", headers=auth_headers(partner_user))
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["status"] == "CANCELLED"

    resp = await async_client.get(f"{api_base}/bills/active", headers=auth_headers(partner_user))
    assert [b["bill_id"] for b in resp.json()["data"]] == [second["bill_id"]]

    resp = await async_client.delete(f"{api_base}/bills/{first['bill_id']}", headers=auth_headers(partner_user))
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_STATE"


@pytest.mark.asyncio
async def test_cancel_unknown_bill(async_client: AsyncClient, api_base: str, partner, partner_user):
    resp = await async_client.delete(f"{api_base}/bills/BR-999999", headers=auth_headers(partner_user))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_validate_bill(async_client: AsyncClient, api_base: str, partner, partner_user, user):
    bill = await _create_bill(async_client, api_base, partner_user)

    resp = await async_client.post(
        f"{api_base}/bills/validate", headers=auth_headers(user), json={"qr_token": bill["qr_token"]}
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["bill_id"] == bill["bill_id"]
    assert data["merchant"]["partner_id"] == str(partner.id)
    assert data["amounts"]["final_amount_in_paise"] == 94000
    assert data["description"] == "Table 4"
    # Payout details stay with the partner
    assert "partner_payout" not in data["amounts"]


@pytest.mark.asyncio
async def test_validate_rejects_tampered_token(async_client: AsyncClient, api_base: str, partner, partner_user, user):
    bill = await _create_bill(async_client, api_base, partner_user)
    claims = json.loads(base64.urlsafe_b64decode(bill["qr_token"]))
    claims["amount"] = 100
    tampered = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode()

    for token in (tampered, "garbage"):
        resp = await async_client.post(f"{api_base}/bills/validate", headers=auth_headers(user), json={"qr_token": token})
        assert resp.status_code == 400, resp.text
        assert resp.json()["error"]["code"] == "INVALID_QR_TOKEN"


@pytest.mark.asyncio
async def test_validate_expired_bill(async_client: AsyncClient, api_base: str, session_factory, partner, partner_user, user):
    bill = await _create_bill(async_client, api_base, partner_user)
    async with session_factory() as session:
        await session.execute(
            update(BillRequest)
            .where(BillRequest.bill_id == bill["bill_id"])
            .values(expires_at=get_utc_now() - timedelta(seconds=30))
        )
        await session.commit()

    resp = await async_client.post(
        f"{api_base}/bills/validate", headers=auth_headers(user), json={"qr_token": bill["qr_token"]}
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "BILL_EXPIRED"


@pytest.mark.asyncio
async def test_validate_cancelled_bill(async_client: AsyncClient, api_base: str, partner, partner_user, user):
    bill = await _create_bill(async_client, api_base, partner_user)
    await async_client.delete(f"{api_base}/bills/{bill['bill_id']}", headers=auth_headers(partner_user))

    resp = await async_client.post(
        f"{api_base}/bills/validate", headers=auth_headers(user), json={"qr_token": bill["qr_token"]}
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "BILL_CANCELLED"


@pytest.mark.asyncio
async def test_pay_bill(async_client: AsyncClient, api_base: str, razorpay, partner, partner_user, user):
    bill = await _create_bill(async_client, api_base, partner_user)

    resp = await async_client.post(f"{api_base}/bills/pay", headers=auth_headers(user), json={"bill_id": bill["bill_id"]})
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    assert data["order_id"] == "TT-000001"
    assert data["order"]["status"] == "PENDING"
    assert data["order"]["final_amount_in_paise"] == 94000
    assert data["gateway"]["amount"] == 94000
    assert data["gateway"]["currency"] == "INR"
    assert data["gateway"]["key"] == KEY_ID
    assert data["gateway"]["order_id"] in razorpay.orders

    # Second scan of the same bill
    resp = await async_client.post(f"{api_base}/bills/pay", headers=auth_headers(user), json={"bill_id": bill["bill_id"]})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "BILL_ALREADY_USED"

    resp = await async_client.post(
        f"{api_base}/bills/validate", headers=auth_headers(user), json={"qr_token": bill["qr_token"]}
    )
    assert resp.json()["error"]["code"] == "BILL_ALREADY_USED"


@pytest.mark.asyncio
async def test_pay_bill_gateway_down(async_client: AsyncClient, api_base: str, razorpay, partner, partner_user, user):
    bill = await _create_bill(async_client, api_base, partner_user)
    razorpay.fail_with = "timeout"

    resp = await async_client.post(f"{api_base}/bills/pay", headers=auth_headers(user), json={"bill_id": bill["bill_id"]})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "GATEWAY_TIMEOUT"

    razorpay.fail_with = None
    resp = await async_client.post(f"{api_base}/bills/pay", headers=auth_headers(user), json={"bill_id": bill["bill_id"]})
    assert resp.status_code == 201, resp.text


@pytest.mark.asyncio
async def test_pay_inactive_merchant(async_client: AsyncClient, api_base: str, session_factory, partner, partner_user, user):
    bill = await _create_bill(async_client, api_base, partner_user)
    async with session_factory() as session:
        stored = await session.get(Partner, partner.id)
        stored.payout_enabled = False
        await session.commit()

    resp = await async_client.post(f"{api_base}/bills/pay", headers=auth_headers(user), json={"bill_id": bill["bill_id"]})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "MERCHANT_INACTIVE"
