"""
Payment settings, kept apart from core.config so provider credentials can be
loaded (and overridden in tests) independently of the application settings.

Environment keys use the PAYMENT__ prefix, e.g. PAYMENT__STRIPE__SECRET_KEY.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None


class RazorpaySettings(BaseModel):
    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    api_base: str = "https://api.razorpay.com"


class ReconcileSettings(BaseModel):
    pending_ttl_minutes: int = 60
    batch_size: int = 100
    interval_seconds: int = 900


class PaymentSettings(BaseSettings):
    currency: str = "INR"
    client_url: str = "http://localhost:5173"
    refund_window_days: int = 30
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    razorpay: RazorpaySettings = Field(default_factory=RazorpaySettings)

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
