"""
Factory for PayPal processor clients.

Every collaborator is built explicitly from settings and handed to the
services that need it; nothing here is a process-wide singleton.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from core.settings import PaymentSettings, payment_settings
from infrastructure.external.payments.paypal import (
    PaypalAccessTokenProvider,
    PaypalOrdersClient,
    PaypalWebhookSignatureVerifier,
    api_base_url,
)


@dataclass
class PaypalClients:
    token_provider: PaypalAccessTokenProvider
    orders: PaypalOrdersClient
    verifier: PaypalWebhookSignatureVerifier

    async def aclose(self) -> None:
        await self.orders.aclose()
        await self.verifier.aclose()
        await self.token_provider.aclose()


def create_paypal_clients(
    config: Optional[PaymentSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaypalClients:
    cfg = config or payment_settings
    base_url = api_base_url(cfg.paypal.mode)
    timeouts = cfg.timeouts.model_dump()
    retry = {"max": cfg.retry.max, "base": cfg.retry.base_backoff}

    token_provider = PaypalAccessTokenProvider(
        client_id=cfg.paypal.client_id,
        client_secret=cfg.paypal.client_secret,
        base_url=base_url,
        cache_tokens=cfg.paypal.token_cache,
        timeouts=timeouts,
        transport=transport,
    )
    orders = PaypalOrdersClient(
        token_provider=token_provider,
        base_url=base_url,
        timeouts=timeouts,
        retry=retry,
        transport=transport,
    )
    verifier = PaypalWebhookSignatureVerifier(
        token_provider=token_provider,
        webhook_id=cfg.paypal.webhook_id,
        base_url=base_url,
        timeouts=timeouts,
        transport=transport,
    )
    return PaypalClients(token_provider=token_provider, orders=orders, verifier=verifier)


__all__ = ["PaypalClients", "create_paypal_clients"]
