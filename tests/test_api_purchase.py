import hashlib
import hmac
import time

import httpx
import pytest

from api.dependencies import get_purchase_service, get_uow_factory
from application.services.purchase_service import PurchaseApplicationService
from application.services.token_service import create_access_token
from domain.purchase.entity import PurchaseStatus
from infrastructure.external.payments.razorpay_client import compute_payment_signature
from infrastructure.external.payments.stripe_client import StripeCheckoutClient
from main import app
from tests.helpers import RAZORPAY_KEY_SECRET, STRIPE_WEBHOOK_SECRET, enrolled_student_rows, load_purchase


def _auth(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
async def client(uow_factory, purchase_service, seeded):
    async def _service():
        yield purchase_service

    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_purchase_service] = _service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def test_routes_registered():
    paths = {route.path for route in app.routes}
    assert "/api/v1/purchase/checkout/create-checkout-session" in paths
    assert "/api/v1/purchase/webhook" in paths
    assert "/api/v1/purchase/course/{course_id}/detail-with-status" in paths
    assert "/api/v1/purchase/" in paths
    assert "/api/v1/purchase/refunds" in paths
    assert "/api/v1/razorpay/create-order" in paths
    assert "/api/v1/razorpay/verify-payment" in paths
    assert "/health" in paths


@pytest.mark.asyncio
async def test_order_verify_then_status(client, session_factory, seeded):
    resp = await client.post("/api/v1/razorpay/create-order", json={"courseId": 10}, headers=_auth(1))
    assert resp.status_code == 200
    data = resp.json()["data"]
    order_id = data["order"]["id"]
    assert data["order"]["amount"] == 49900
    assert data["course"]["name"] == "Async Python"

    signature = compute_payment_signature(order_id, "pay_1", RAZORPAY_KEY_SECRET)
    resp = await client.post(
        "/api/v1/razorpay/verify-payment",
        json={"razorpay_order_id": order_id, "razorpay_payment_id": "pay_1", "razorpay_signature": signature},
        headers=_auth(1),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["message"] == "Payment verified successfully"
    assert body["data"] == {"course_id": 10}

    resp = await client.get("/api/v1/purchase/course/10/detail-with-status", headers=_auth(1))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["is_purchased"] is True
    assert all(lecture["is_preview_free"] for lecture in data["course"]["lectures"])
    assert await enrolled_student_rows(session_factory, 10) == [1]

    resp = await client.get("/api/v1/purchase/", headers=_auth(1))
    assert [c["id"] for c in resp.json()["data"]] == [10]


@pytest.mark.asyncio
async def test_wrong_signature_is_rejected(client, order_gateway, uow_factory, seeded):
    resp = await client.post("/api/v1/razorpay/create-order", json={"course_id": 10}, headers=_auth(1))
    order_id = resp.json()["data"]["order"]["id"]

    resp = await client.post(
        "/api/v1/razorpay/verify-payment",
        json={"razorpay_order_id": order_id, "razorpay_payment_id": "pay_1", "razorpay_signature": "0" * 64},
        headers=_auth(1),
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Payment signature verification failed"
    assert body["error"]["type"] == "PaymentSignatureError"
    purchase = await load_purchase(uow_factory, order_gateway.orders[0].purchase_id)
    assert purchase.status == PurchaseStatus.PENDING


@pytest.mark.asyncio
async def test_non_ascii_signature_is_rejected(client, seeded):
    resp = await client.post("/api/v1/razorpay/create-order", json={"courseId": 10}, headers=_auth(1))
    order_id = resp.json()["data"]["order"]["id"]

    resp = await client.post(
        "/api/v1/razorpay/verify-payment",
        json={"razorpay_order_id": order_id, "razorpay_payment_id": "pay_1", "razorpay_signature": "é" * 64},
        headers=_auth(1),
    )

    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "PaymentSignatureError"


@pytest.mark.asyncio
async def test_status_for_unpurchased_and_missing_course(client, seeded):
    resp = await client.get("/api/v1/purchase/course/10/detail-with-status", headers=_auth(1))
    assert resp.json()["data"]["is_purchased"] is False

    resp = await client.get("/api/v1/purchase/course/999/detail-with-status", headers=_auth(1))
    assert resp.status_code == 404

    resp = await client.get("/api/v1/purchase/", headers=_auth(1))
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_checkout_returns_url(client, checkout_gateway, seeded):
    resp = await client.post(
        "/api/v1/purchase/checkout/create-checkout-session",
        json={"courseId": 10},
        headers=_auth(1),
    )
    assert resp.status_code == 200
    purchase_id = checkout_gateway.created[0].purchase_id
    assert resp.json()["data"]["checkout_url"].endswith(f"cs_test_{purchase_id}")


@pytest.mark.asyncio
async def test_authentication_required(client, seeded):
    resp = await client.post("/api/v1/razorpay/create-order", json={"courseId": 10})
    assert resp.status_code == 401

    resp = await client.post("/api/v1/razorpay/create-order", json={"courseId": 10}, headers=_auth(404))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_token_from_cookie(client, seeded):
    client.cookies.set("token", create_access_token(1))
    resp = await client.get("/api/v1/purchase/", headers={})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_refund_requires_admin(client, checkout_gateway, seeded):
    await client.post("/api/v1/purchase/checkout/create-checkout-session", json={"courseId": 10}, headers=_auth(1))
    reference = f"cs_test_{checkout_gateway.created[0].purchase_id}"

    resp = await client.post("/api/v1/purchase/refunds", json={"provider_reference": reference}, headers=_auth(1))
    assert resp.status_code == 403

    # Pending purchases cannot be refunded
    resp = await client.post("/api/v1/purchase/refunds", json={"provider_reference": reference}, headers=_auth(2))
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_admin_refund(client, purchase_service, checkout_gateway, seeded):
    await client.post("/api/v1/purchase/checkout/create-checkout-session", json={"courseId": 10}, headers=_auth(1))
    reference = f"cs_test_{checkout_gateway.created[0].purchase_id}"
    await purchase_service.complete(reference, provider_payment_id="pi_1")

    resp = await client.post(
        "/api/v1/purchase/refunds",
        json={"provider_reference": reference, "reason": "duplicate"},
        headers=_auth(2),
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "refunded"
    assert data["refund_reason"] == "duplicate"
    assert data["external_refund_id"] == "re_1"


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(client, uow_factory, seeded):
    stripe_service = PurchaseApplicationService(
        uow_factory=uow_factory,
        checkout_gateway=StripeCheckoutClient(secret_key="sk_test_123", webhook_secret=STRIPE_WEBHOOK_SECRET),
    )

    async def _service():
        yield stripe_service

    app.dependency_overrides[get_purchase_service] = _service

    resp = await client.post(
        "/api/v1/purchase/webhook",
        content=b'{"id": "evt_1", "type": "checkout.session.completed"}',
        headers={"Stripe-Signature": "t=1,v1=bad", "Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "PaymentSignatureError"

    resp = await client.post("/api/v1/purchase/webhook", content=b"{}")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_webhook_acknowledges_unhandled_event(client, uow_factory, seeded):
    payload = '{"id": "evt_2", "object": "event", "type": "invoice.paid", "data": {"object": {"id": "in_1"}}}'
    ts = int(time.time())
    mac = hmac.new(STRIPE_WEBHOOK_SECRET.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    stripe_service = PurchaseApplicationService(
        uow_factory=uow_factory,
        checkout_gateway=StripeCheckoutClient(secret_key="sk_test_123", webhook_secret=STRIPE_WEBHOOK_SECRET),
    )

    async def _service():
        yield stripe_service

    app.dependency_overrides[get_purchase_service] = _service

    resp = await client.post(
        "/api/v1/purchase/webhook",
        content=payload.encode(),
        headers={"stripe-signature": f"t={ts},v1={mac}"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"received": True}


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "healthy"


@pytest.mark.asyncio
async def test_invalid_token_and_request_id_echo(client, seeded):
    resp = await client.get(
        "/api/v1/purchase/",
        headers={"Authorization": "Bearer not-a-jwt", "X-Request-ID": "req-123"},
    )
    assert resp.status_code == 401
    assert resp.headers["X-Request-ID"] == "req-123"
    body = resp.json()
    assert body["error"]["type"] == "TokenInvalid"
    assert body["error"]["request_id"] == "req-123"
