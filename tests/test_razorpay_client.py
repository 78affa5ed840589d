import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import OrderRequest, RefundRequest
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from infrastructure.external.payments.razorpay_client import RazorpayClient, compute_payment_signature
from tests.helpers import RAZORPAY_KEY_SECRET


def _client(handler) -> RazorpayClient:
    return RazorpayClient(
        key_id="rzp_test_key",
        key_secret=RAZORPAY_KEY_SECRET,
        api_base="https://api.razorpay.test",
        transport=httpx.MockTransport(handler),
    )


def test_signature_is_hmac_of_order_and_payment():
    sig = compute_payment_signature("order_1", "pay_1", RAZORPAY_KEY_SECRET)
    assert len(sig) == 64
    assert sig != compute_payment_signature("order_1", "pay_2", RAZORPAY_KEY_SECRET)

    client = RazorpayClient(key_id="rzp_test_key", key_secret=RAZORPAY_KEY_SECRET)
    client.verify_payment_signature("order_1", "pay_1", sig)


@pytest.mark.parametrize(
    "order_id,payment_id,signature",
    [
        ("order_1", "pay_1", "0" * 64),
        ("order_2", "pay_1", None),
        ("", "pay_1", "abc"),
        ("order_1", "", "abc"),
        ("order_1", "pay_1", "é" * 64),
    ],
)
def test_signature_mismatch_raises(order_id, payment_id, signature):
    client = RazorpayClient(key_id="rzp_test_key", key_secret=RAZORPAY_KEY_SECRET)
    if signature is None:
        # valid signature for a different order
        signature = compute_payment_signature("order_1", payment_id, RAZORPAY_KEY_SECRET)
    with pytest.raises(PaymentSignatureError):
        client.verify_payment_signature(order_id, payment_id, signature)


def test_signature_check_fails_closed_without_secret():
    client = RazorpayClient(key_id="rzp_test_key", key_secret=RAZORPAY_KEY_SECRET)
    client.key_secret = None
    sig = compute_payment_signature("order_1", "pay_1", RAZORPAY_KEY_SECRET)
    with pytest.raises(PaymentSignatureError):
        client.verify_payment_signature("order_1", "pay_1", sig)


@pytest.mark.asyncio
async def test_create_order_posts_minor_units():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "id": "order_abc",
            "entity": "order",
            "amount": 49900,
            "amount_paid": 0,
            "currency": "INR",
            "receipt": "course_10",
            "status": "created",
            "notes": seen["body"]["notes"],
        })

    client = _client(handler)
    try:
        order = await client.create_order(OrderRequest(
            purchase_id=7,
            amount=Decimal("499"),
            currency="INR",
            receipt="course_10",
            notes={"course_id": "10", "user_id": "1", "purchase_id": "7"},
        ))
    finally:
        await client.aclose()

    assert seen["path"] == "/v1/orders"
    assert seen["auth"].startswith("Basic ")
    assert seen["body"]["amount"] == 49900
    assert seen["body"]["currency"] == "INR"
    assert order.id == "order_abc"
    assert order.amount == 49900
    # Unknown provider fields are kept
    assert order.model_dump()["amount_paid"] == 0


@pytest.mark.asyncio
async def test_create_order_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": "BAD_REQUEST_ERROR", "description": "amount too small"}})

    client = _client(handler)
    with pytest.raises(PaymentProviderError) as exc_info:
        await client.create_order(OrderRequest(purchase_id=1, amount=Decimal("0"), currency="INR", receipt="course_1"))
    assert exc_info.value.details["provider_code"] == "BAD_REQUEST_ERROR"
    assert exc_info.value.details["status_code"] == 400
    await client.aclose()


@pytest.mark.asyncio
async def test_create_order_without_credentials():
    client = RazorpayClient(key_id="rzp_test_key", key_secret=RAZORPAY_KEY_SECRET)
    client.key_secret = None
    with pytest.raises(PaymentProviderError):
        await client.create_order(OrderRequest(purchase_id=1, amount=Decimal("1"), currency="INR", receipt="course_1"))


@pytest.mark.asyncio
async def test_fetch_status_paid_finds_captured_payment():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/orders/order_abc":
            return httpx.Response(200, json={
                "id": "order_abc", "amount": 49900, "amount_paid": 49900, "currency": "INR", "status": "paid",
            })
        if request.url.path == "/v1/orders/order_abc/payments":
            return httpx.Response(200, json={"items": [
                {"id": "pay_failed", "status": "failed"},
                {"id": "pay_ok", "status": "captured"},
            ]})
        return httpx.Response(404)

    client = _client(handler)
    status = await client.fetch_status("order_abc")
    await client.aclose()

    assert status.status == "paid"
    assert status.provider_payment_id == "pay_ok"
    assert status.settled_amount == Decimal("499.00")


@pytest.mark.asyncio
async def test_fetch_status_attempted_is_open():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "order_abc", "amount": 49900, "currency": "INR", "status": "attempted"})

    client = _client(handler)
    status = await client.fetch_status("order_abc")
    await client.aclose()
    assert status.status == "open"
    assert status.provider_payment_id is None


@pytest.mark.asyncio
async def test_fetch_status_retries_transport_errors():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json={"id": "order_abc", "amount": 49900, "currency": "INR", "status": "created"})

    client = _client(handler)
    status = await client.fetch_status("order_abc")
    await client.aclose()
    assert calls["n"] == 2
    assert status.status == "open"


@pytest.mark.asyncio
async def test_refund_posts_to_payment():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "rfnd_1", "status": "processed", "amount": 49900})

    client = _client(handler)
    result = await client.refund(RefundRequest(
        provider_reference="order_abc",
        provider_payment_id="pay_ok",
        amount=Decimal("499"),
        currency="INR",
    ))
    await client.aclose()

    assert seen["path"] == "/v1/payments/pay_ok/refund"
    assert seen["body"]["amount"] == 49900
    assert result.refund_id == "rfnd_1"


@pytest.mark.asyncio
async def test_refund_requires_payment_id():
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(PaymentProviderError):
        await client.refund(RefundRequest(provider_reference="order_abc", amount=Decimal("1"), currency="INR"))
