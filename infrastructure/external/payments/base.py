"""
Base payment client implementing shared concerns: http, retry, logging,
amount conversion and status mapping.

Concrete providers subclass and implement provider-specific logic.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging_config import get_logger
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

# ISO-4217 currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "XAF", "XOF"}


def to_minor(amount: Decimal, currency: str) -> int:
    """Major units -> provider minor units (x100, x1 for zero-decimal currencies)"""
    exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
    return int((Decimal(amount) * (Decimal(10) ** exponent)).to_integral_value())


def from_minor(amount: int, currency: str) -> Decimal:
    exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
    return (Decimal(int(amount)) / (Decimal(10) ** exponent)).quantize(Decimal(1) / (Decimal(10) ** exponent))


class BasePaymentClient:
    provider: str = "base"
    # Transient failures worth another read attempt; SDK-backed clients override
    retryable_errors: tuple[type[BaseException], ...] = (httpx.TimeoutException, httpx.TransportError)

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 2.0, "read": 10.0, "write": 10.0, "total": 15.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    def _client_kwargs(self) -> dict[str, Any]:
        """Extra httpx.AsyncClient arguments (base_url, auth) for subclasses"""
        return {}

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeouts,
                transport=self._transport,
                **self._client_kwargs(),
            )
        # Kept open for reuse; aclose() releases it
        yield self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        """Retry transport failures; only for reads, never for creates or refunds"""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(self.retryable_errors),
            reraise=True,
        ):
            with attempt:
                return await fn()

    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, "open")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
