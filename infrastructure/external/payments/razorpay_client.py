"""
Razorpay Orders adapter over the REST API (httpx, HTTP basic auth).

Orders are allocated synchronously; payment confirmation is relayed by the
client together with `razorpay_signature`, which is
HMAC-SHA256(key_secret, f"{order_id}|{payment_id}") in hex.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    OrderRequest,
    ProviderOrder,
    ProviderPaymentStatus,
    RefundRequest,
    RefundResult,
)
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.payments.base import BasePaymentClient, from_minor, to_minor
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentSignatureError,
)


logger = get_logger(__name__)


def compute_payment_signature(order_id: str, payment_id: str, key_secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        *,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        api_base: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self.key_id = key_id or payment_settings.razorpay.key_id
        self.key_secret = key_secret or payment_settings.razorpay.key_secret
        self.api_base = (api_base or payment_settings.razorpay.api_base).rstrip("/")

    def _client_kwargs(self) -> dict[str, Any]:
        if not self.key_id or not self.key_secret:
            raise PaymentProviderError("Razorpay credentials are not configured", provider=self.provider)
        return {"base_url": self.api_base, "auth": (self.key_id, self.key_secret)}

    def _raise_for_response(self, resp: httpx.Response, message: str) -> None:
        if resp.is_success:
            return
        provider_code = None
        description = None
        try:
            error = (resp.json() or {}).get("error") or {}
            provider_code = error.get("code")
            description = error.get("description")
        except ValueError:
            pass
        logger.warning(
            "razorpay_request_failed",
            status_code=resp.status_code,
            provider_code=provider_code,
            description=description,
        )
        raise PaymentProviderError(
            message,
            provider=self.provider,
            provider_code=provider_code,
            details={"status_code": resp.status_code},
        )

    async def create_order(self, req: OrderRequest) -> ProviderOrder:
        payload = {
            "amount": to_minor(req.amount, req.currency),
            "currency": req.currency,
            "receipt": req.receipt,
            "notes": req.notes,
        }
        self._log("razorpay_order_create", purchase_id=req.purchase_id, receipt=req.receipt)
        try:
            async with self.client() as http:
                resp = await http.post("/v1/orders", json=payload)
        except httpx.HTTPError as exc:
            raise PaymentProviderError("Failed to reach payment provider", provider=self.provider) from exc
        self._raise_for_response(resp, "Failed to create order")

        data = resp.json()
        if not data.get("id"):
            raise PaymentProviderError("Order response has no id", provider=self.provider)
        self._log("razorpay_order_created", purchase_id=req.purchase_id, provider_reference=data["id"])
        return ProviderOrder.model_validate(data)

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> None:
        """Raise PaymentSignatureError unless the relayed signature matches"""
        if not self.key_secret:
            logger.error("razorpay_key_secret_missing")
            raise PaymentSignatureError(provider=self.provider)
        if not order_id or not payment_id or not signature:
            raise PaymentSignatureError(provider=self.provider)
        expected = compute_payment_signature(order_id, payment_id, self.key_secret)
        # Bytes: compare_digest rejects non-ASCII str with TypeError
        if not hmac.compare_digest(expected.encode(), signature.encode("utf-8")):
            logger.warning("razorpay_signature_mismatch", provider_reference=order_id)
            raise PaymentSignatureError(provider=self.provider)

    async def refund(self, req: RefundRequest) -> RefundResult:
        if not req.provider_payment_id:
            raise PaymentProviderError(
                "Purchase has no payment id to refund",
                provider=self.provider,
                details={"provider_reference": req.provider_reference},
            )
        payload: dict[str, Any] = {
            "amount": to_minor(req.amount, req.currency),
            "notes": {"provider_reference": req.provider_reference, "reason": req.reason or ""},
        }
        try:
            async with self.client() as http:
                resp = await http.post(f"/v1/payments/{req.provider_payment_id}/refund", json=payload)
        except httpx.HTTPError as exc:
            raise PaymentProviderError("Failed to reach payment provider", provider=self.provider) from exc
        self._raise_for_response(resp, "Refund failed")

        data = resp.json()
        self._log("razorpay_refund_created", provider_reference=req.provider_reference, refund_id=data.get("id"))
        return RefundResult(
            refund_id=str(data.get("id")),
            status=str(data.get("status") or ""),
            provider=self.provider,
            amount=req.amount,
        )

    async def fetch_status(self, provider_reference: str) -> ProviderPaymentStatus:
        async def _get(path: str) -> httpx.Response:
            async with self.client() as http:
                return await http.get(path)

        try:
            resp = await self._retry(lambda: _get(f"/v1/orders/{provider_reference}"))
            self._raise_for_response(resp, "Failed to fetch order")
            order = resp.json()
            status = self._map_status(str(order.get("status") or ""))
            payment_id = None
            settled = None
            if status == "paid":
                currency = str(order.get("currency") or payment_settings.currency)
                settled = from_minor(order.get("amount_paid") or order.get("amount") or 0, currency)
                payments = await self._retry(lambda: _get(f"/v1/orders/{provider_reference}/payments"))
                self._raise_for_response(payments, "Failed to fetch order payments")
                for item in payments.json().get("items") or []:
                    if item.get("status") == "captured":
                        payment_id = item.get("id")
                        break
        except httpx.HTTPError as exc:
            raise PaymentProviderError("Failed to reach payment provider", provider=self.provider) from exc

        return ProviderPaymentStatus(
            provider=self.provider,
            provider_reference=provider_reference,
            status=status,
            settled_amount=settled,
            provider_payment_id=payment_id,
        )
