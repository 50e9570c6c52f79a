"""
PayPal Orders v2 / Payments v2 adapter.

Thin request/response mapping only. Create, get and capture are never
retried here; retry policy belongs to the caller. Refunds carry a stable
PayPal-Request-Id and may be retried on transport errors.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional
from urllib.parse import quote

import httpx

from application.dtos.payments import (
    Capture,
    CaptureResult,
    CreatedOrder,
    CreateOrder,
    Order,
    PurchaseUnit,
    RefundResult,
)
from application.ports.payment_gateway import AccessTokenProvider
from infrastructure.external.payments.base import BasePaymentClient


# PayPal rejects decimals for these currencies
ZERO_DECIMAL_CURRENCIES = {"HUF", "JPY", "TWD"}


class PaypalOrdersClient(BasePaymentClient):
    provider = "paypal"

    def __init__(
        self,
        *,
        token_provider: AccessTokenProvider,
        base_url: str,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url=base_url, timeouts=timeouts, retry=retry, transport=transport)
        self._tokens = token_provider

    @staticmethod
    def _format_amount(amount: Decimal, currency: str) -> str:
        exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
        quantum = Decimal(1).scaleb(-exponent)
        return str(Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP))

    @staticmethod
    def _order_path(order_id: str, suffix: str = "") -> str:
        return f"/v2/checkout/orders/{quote(order_id, safe='')}{suffix}"

    async def _headers(self, request_id: Optional[str] = None) -> dict[str, str]:
        token = await self._tokens.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        return headers

    @staticmethod
    def _purchase_units(body: dict[str, Any]) -> list[PurchaseUnit]:
        units: list[PurchaseUnit] = []
        for raw in body.get("purchase_units") or []:
            if not isinstance(raw, dict):
                continue
            payments = raw.get("payments") or {}
            captures = [
                Capture(capture_id=str(c.get("id") or ""), status=c.get("status"))
                for c in (payments.get("captures") or [])
                if isinstance(c, dict)
            ]
            units.append(PurchaseUnit(reference_id=raw.get("reference_id"), captures=captures))
        return units

    async def create_order(self, req: CreateOrder) -> CreatedOrder:
        unit: dict[str, Any] = {
            "reference_id": req.reference_id,
            "amount": {
                "currency_code": req.currency,
                "value": self._format_amount(req.amount, req.currency),
            },
        }
        if req.description:
            unit["description"] = req.description[:127]
        payload: dict[str, Any] = {"intent": "CAPTURE", "purchase_units": [unit]}
        if req.return_url:
            context: dict[str, Any] = {
                "return_url": req.return_url,
                "cancel_url": req.cancel_url or req.return_url,
                "user_action": "PAY_NOW",
            }
            if req.brand_name:
                context["brand_name"] = req.brand_name
            payload["payment_source"] = {"paypal": {"experience_context": context}}

        response = await self._send(
            "POST",
            "/v2/checkout/orders",
            json=payload,
            headers=await self._headers(req.idempotency_key),
        )
        self._raise_for_status(response, "create_order")
        body = self._json(response)
        links = body.get("links") or []
        approval_url = next(
            (link.get("href") for link in links if link.get("rel") == "payer-action"),
            None,
        ) or next((link.get("href") for link in links if link.get("rel") == "approve"), None)
        self._log("paypal_order_created", order_id=body.get("id"), reference_id=req.reference_id)
        return CreatedOrder(order_id=str(body.get("id") or ""), status=body.get("status"), approval_url=approval_url)

    async def get_order(self, order_id: str) -> Order:
        response = await self._send("GET", self._order_path(order_id), headers=await self._headers())
        self._raise_for_status(response, "get_order")
        body = self._json(response)
        return Order(
            order_id=str(body.get("id") or order_id),
            status=body.get("status"),
            purchase_units=self._purchase_units(body),
        )

    async def capture_order(self, order_id: str) -> CaptureResult:
        response = await self._send(
            "POST",
            self._order_path(order_id, "/capture"),
            json={},
            headers=await self._headers(),
        )
        self._raise_for_status(response, "capture_order")
        body = self._json(response)
        result = CaptureResult(
            order_id=str(body.get("id") or order_id),
            status=body.get("status"),
            purchase_units=self._purchase_units(body),
        )
        self._log("paypal_order_captured", order_id=result.order_id, status=result.status)
        return result

    async def refund_capture(
        self,
        capture_id: str,
        amount: Decimal,
        currency: str,
        *,
        request_id: Optional[str] = None,
    ) -> RefundResult:
        response = await self._send(
            "POST",
            f"/v2/payments/captures/{quote(capture_id, safe='')}/refund",
            json={"amount": {"currency_code": currency.upper(), "value": self._format_amount(amount, currency)}},
            headers=await self._headers(request_id),
            retry=True,
        )
        self._raise_for_status(response, "refund_capture")
        body = self._json(response)
        return RefundResult(
            refund_id=str(body.get("id") or ""),
            status=str(body.get("status") or ""),
            provider=self.provider,
            capture_id=capture_id,
        )
