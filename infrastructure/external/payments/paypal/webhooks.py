"""
PayPal webhook signature verification via the Notifications API.

verify() never raises for a bad or unverifiable notification; it answers
False. A missing webhook id is a deployment error and raises.
"""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional

import httpx

from application.ports.payment_gateway import AccessTokenProvider
from core.logging_config import get_logger
from domain.payment.exceptions import ConfigurationError
from infrastructure.external.payments.base import BasePaymentClient
from shared.codes.payment_codes import WEBHOOK_VERIFICATION_SUCCESS


logger = get_logger(__name__)

VERIFY_PATH = "/v1/notifications/verify-webhook-signature"

# payload field -> transmission header
SIGNATURE_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class PaypalWebhookSignatureVerifier(BasePaymentClient):
    provider = "paypal"

    def __init__(
        self,
        *,
        token_provider: AccessTokenProvider,
        webhook_id: Optional[str],
        base_url: str,
        timeouts: Optional[dict[str, float]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url=base_url, timeouts=timeouts, transport=transport)
        self._tokens = token_provider
        self._webhook_id = webhook_id

    @staticmethod
    def _collect_headers(headers: Mapping[str, Any]) -> dict[str, str]:
        lowered = {str(k).lower(): v for k, v in headers.items()}
        collected: dict[str, str] = {}
        for field, header in SIGNATURE_HEADERS.items():
            value = lowered.get(header)
            if value:
                collected[field] = str(value)
        return collected

    async def verify(self, headers: Mapping[str, Any], raw_body: bytes) -> bool:
        if not self._webhook_id:
            raise ConfigurationError(
                "PayPal webhook id is not configured. Set PAYPAL__WEBHOOK_ID.",
                setting="paypal.webhook_id",
            )

        fields = self._collect_headers(headers)
        missing = sorted(set(SIGNATURE_HEADERS) - set(fields))
        if missing:
            logger.warning("webhook_signature_headers_missing", missing=missing)
            return False

        try:
            event = json.loads(raw_body)
            token = await self._tokens.get_access_token()
            response = await self._send(
                "POST",
                VERIFY_PATH,
                json={**fields, "webhook_id": self._webhook_id, "webhook_event": event},
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            )
        except Exception as exc:
            logger.warning("webhook_signature_verification_error", error=str(exc), error_type=type(exc).__name__)
            return False

        if not response.is_success:
            logger.warning("webhook_signature_verification_http_error", status_code=response.status_code)
            return False

        status = self._json(response).get("verification_status")
        if status != WEBHOOK_VERIFICATION_SUCCESS:
            logger.warning(
                "webhook_signature_invalid",
                verification_status=status,
                transmission_id=fields.get("transmission_id"),
            )
            return False
        return True
