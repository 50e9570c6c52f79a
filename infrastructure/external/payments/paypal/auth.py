"""
PayPal client-credentials token exchange.

Tokens may be cached in-process until shortly before `expires_in`; the
capture and webhook paths stay correct with caching disabled, in which case
every call fetches a fresh token.
"""
from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from core.logging_config import get_logger
from domain.payment.exceptions import AuthenticationError, ConfigurationError
from infrastructure.external.payments.base import BasePaymentClient


logger = get_logger(__name__)

TOKEN_PATH = "/v1/oauth2/token"
# Refresh this many seconds before the processor-declared expiry
EXPIRY_SKEW_SECONDS = 60


class PaypalAccessTokenProvider(BasePaymentClient):
    provider = "paypal"

    def __init__(
        self,
        *,
        client_id: Optional[str],
        client_secret: Optional[str],
        base_url: str,
        cache_tokens: bool = True,
        timeouts: Optional[dict[str, float]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url=base_url, timeouts=timeouts, transport=transport)
        self._client_id = client_id
        self._client_secret = client_secret
        self._cache_tokens = cache_tokens
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    def _cached(self) -> Optional[str]:
        if self._cache_tokens and self._token and time.monotonic() < self._expires_at:
            return self._token
        return None

    async def get_access_token(self) -> str:
        cached = self._cached()
        if cached:
            return cached
        if not self._client_id or not self._client_secret:
            raise ConfigurationError(
                "PayPal client credentials are not configured. Set PAYPAL__CLIENT_ID and PAYPAL__CLIENT_SECRET.",
                setting="paypal.client_id",
            )

        response = await self._send(
            "POST",
            TOKEN_PATH,
            auth=(self._client_id, self._client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        if not response.is_success:
            logger.error(
                "paypal_token_exchange_failed",
                status_code=response.status_code,
                provider_code=self._json(response).get("error"),
            )
            raise AuthenticationError(
                "Failed to obtain PayPal access token",
                provider=self.provider,
                details={"status_code": response.status_code},
            )

        body: dict[str, Any] = self._json(response)
        token = body.get("access_token")
        if not token:
            raise AuthenticationError("PayPal token response carried no access_token", provider=self.provider)

        if self._cache_tokens:
            ttl = int(body.get("expires_in") or 0) - EXPIRY_SKEW_SECONDS
            self._token = token
            self._expires_at = time.monotonic() + max(ttl, 0)
        return token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0
