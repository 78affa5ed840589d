"""
Payment gateway ports.

The application depends on these Protocols; infrastructure provides the
adapters. The two shapes mirror the two delivery models: a hosted checkout
confirmed by webhook push, and an order confirmed by a client-relayed
signature.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import (
    CheckoutSession,
    CheckoutSessionRequest,
    OrderRequest,
    ProviderOrder,
    ProviderPaymentStatus,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)


@runtime_checkable
class CheckoutGateway(Protocol):
    provider: str

    async def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSession: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...

    async def refund(self, req: RefundRequest) -> RefundResult: ...

    async def fetch_status(self, provider_reference: str) -> ProviderPaymentStatus: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class OrderGateway(Protocol):
    provider: str

    async def create_order(self, req: OrderRequest) -> ProviderOrder: ...

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> None: ...

    async def refund(self, req: RefundRequest) -> RefundResult: ...

    async def fetch_status(self, provider_reference: str) -> ProviderPaymentStatus: ...

    async def aclose(self) -> None: ...
