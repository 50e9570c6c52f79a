"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so the PayPal surface can be loaded
and overridden on its own (e.g. PAYPAL__CLIENT_ID, RATE_LIMIT__MAX_ATTEMPTS).
"""
from __future__ import annotations

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    # Applies to refunds only; order create/get/capture are never retried.
    max: int = 2
    base_backoff: float = 0.2


class RateLimitSettings(BaseModel):
    max_attempts: int = 10
    decay_seconds: int = 60
    mismatch_penalty: int = 3
    key_prefix: str = "paypal-capture"


class PaypalSettings(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    mode: Literal["sandbox", "live"] = "sandbox"
    webhook_id: Optional[str] = None
    currency: str = "EUR"
    brand_name: Optional[str] = None
    checkout_complete_url: str = "http://localhost:8000/api/v1/payments/checkout/complete"
    flow: Literal["redirect", "inline_sdk"] = "redirect"
    token_cache: bool = True


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    paypal: PaypalSettings = Field(default_factory=PaypalSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
