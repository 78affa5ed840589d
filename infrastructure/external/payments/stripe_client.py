"""
Stripe Checkout adapter using the official stripe-python SDK.

- Hosted sessions via `stripe.checkout.Session.create`, keyed per purchase
  with an idempotency key so a client retry cannot open a second session.
- Webhooks verified with `stripe.Webhook.construct_event` against the
  genuine `Stripe-Signature` header and the configured tolerance.
- The SDK is synchronous; calls run in a worker thread.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Optional

import stripe

from application.dtos.payments import (
    CheckoutSession,
    CheckoutSessionRequest,
    ProviderPaymentStatus,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.payments.base import BasePaymentClient, from_minor, to_minor
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentSignatureError,
)
from shared.codes.payment_codes import PROVIDER_EVENT_TO_ACTION, STRIPE_PAID_STATES


logger = get_logger(__name__)


def _header(headers: dict[str, Any], name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


class StripeCheckoutClient(BasePaymentClient):
    provider = "stripe"
    retryable_errors = (stripe.APIConnectionError, stripe.RateLimitError)

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        tolerance: Optional[int] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        self.secret_key = secret_key or payment_settings.stripe.secret_key
        self.webhook_secret = webhook_secret or payment_settings.stripe.webhook_secret
        self.tolerance = tolerance if tolerance is not None else payment_settings.webhook.tolerance_seconds

    def _api_key(self) -> str:
        if not self.secret_key:
            raise PaymentProviderError("Stripe secret key is not configured", provider=self.provider)
        return self.secret_key

    async def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSession:
        api_key = self._api_key()
        product_data: dict[str, Any] = {"name": req.product_name}
        if req.product_description:
            product_data["description"] = req.product_description
        if req.product_image:
            product_data["images"] = [req.product_image]

        self._log("stripe_checkout_create", purchase_id=req.purchase_id, course_id=req.course_id)
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                mode="payment",
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": req.currency.lower(),
                        "product_data": product_data,
                        "unit_amount": to_minor(req.amount, req.currency),
                    },
                    "quantity": 1,
                }],
                success_url=req.success_url,
                cancel_url=req.cancel_url,
                client_reference_id=str(req.purchase_id),
                metadata=req.metadata,
                api_key=api_key,
                idempotency_key=req.idempotency_key,
            )
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                "Failed to create checkout session",
                provider=self.provider,
                provider_code=getattr(exc, "code", None),
            ) from exc

        session_id = session.get("id")
        url = session.get("url")
        if not session_id or not url:
            raise PaymentProviderError("Checkout session has no usable URL", provider=self.provider)
        self._log("stripe_checkout_created", purchase_id=req.purchase_id, provider_reference=session_id)
        return CheckoutSession(session_id=str(session_id), url=str(url), provider=self.provider)

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        """
        Authenticate and normalize a webhook delivery.

        Fails closed: a missing secret, missing header, bad signature or
        unparsable body all raise PaymentSignatureError with the same message.
        """
        if not self.webhook_secret:
            logger.error("stripe_webhook_secret_missing")
            raise PaymentSignatureError(provider=self.provider)
        sig = _header(headers, "Stripe-Signature")
        if not sig:
            raise PaymentSignatureError(provider=self.provider)
        try:
            event = stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=self.webhook_secret,
                tolerance=self.tolerance,
            )
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("stripe_webhook_rejected", reason=type(exc).__name__)
            raise PaymentSignatureError(provider=self.provider) from exc

        event_type = str(event.get("type") or "")
        obj = (event.get("data") or {}).get("object") or {}
        action = PROVIDER_EVENT_TO_ACTION[self.provider].get(event_type)
        payment_status = obj.get("payment_status")
        if action == "complete" and payment_status not in STRIPE_PAID_STATES:
            # Session finished but funds are not collected yet (delayed methods)
            action = None

        currency = (obj.get("currency") or payment_settings.currency).upper()
        settled = None
        if obj.get("amount_total") is not None:
            settled = from_minor(obj["amount_total"], currency)

        return WebhookEvent(
            id=str(event.get("id") or ""),
            type=event_type,
            provider=self.provider,
            action=action,
            provider_reference=obj.get("id") if action else None,
            provider_payment_id=obj.get("payment_intent"),
            settled_amount=settled,
            currency=currency,
            payment_status=payment_status,
            metadata=dict(obj.get("metadata") or {}),
        )

    async def refund(self, req: RefundRequest) -> RefundResult:
        api_key = self._api_key()
        if not req.provider_payment_id:
            raise PaymentProviderError(
                "Purchase has no payment intent to refund",
                provider=self.provider,
                details={"provider_reference": req.provider_reference},
            )
        try:
            refund = await asyncio.to_thread(
                stripe.Refund.create,
                payment_intent=req.provider_payment_id,
                amount=to_minor(req.amount, req.currency),
                metadata={"provider_reference": req.provider_reference, "reason": req.reason or ""},
                api_key=api_key,
                idempotency_key=req.idempotency_key,
            )
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                "Refund failed",
                provider=self.provider,
                provider_code=getattr(exc, "code", None),
            ) from exc
        self._log("stripe_refund_created", provider_reference=req.provider_reference, refund_id=refund.get("id"))
        return RefundResult(
            refund_id=str(refund.get("id")),
            status=str(refund.get("status") or ""),
            provider=self.provider,
            amount=req.amount,
        )

    async def fetch_status(self, provider_reference: str) -> ProviderPaymentStatus:
        api_key = self._api_key()

        async def _retrieve():
            return await asyncio.to_thread(
                stripe.checkout.Session.retrieve, provider_reference, api_key=api_key
            )

        try:
            session = await self._retry(_retrieve)
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                "Failed to fetch checkout session",
                provider=self.provider,
                provider_code=getattr(exc, "code", None),
            ) from exc

        status = self._map_status(str(session.get("status") or ""))
        if status == "paid" and session.get("payment_status") not in STRIPE_PAID_STATES:
            status = "open"
        currency = (session.get("currency") or payment_settings.currency).upper()
        settled: Optional[Decimal] = None
        if session.get("amount_total") is not None:
            settled = from_minor(session["amount_total"], currency)
        return ProviderPaymentStatus(
            provider=self.provider,
            provider_reference=provider_reference,
            status=status,
            settled_amount=settled,
            provider_payment_id=session.get("payment_intent"),
        )
