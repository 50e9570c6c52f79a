import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import CreateOrder
from domain.payment.exceptions import UpstreamError
from infrastructure.external.payments.paypal import PaypalOrdersClient


class _Tokens:
    async def get_access_token(self):
        return "A21AA"


def _client(handler, **kwargs):
    return PaypalOrdersClient(
        token_provider=_Tokens(),
        base_url="https://api-m.sandbox.paypal.com",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _order_body(order_id="5O190127TN364715T", status="COMPLETED", reference_id="42", captures=("3C679366HH908993F",)):
    return {
        "id": order_id,
        "status": status,
        "purchase_units": [
            {
                "reference_id": reference_id,
                "payments": {"captures": [{"id": cid, "status": status} for cid in captures]},
            }
        ],
    }


@pytest.mark.asyncio
async def test_create_order_builds_capture_intent_with_experience_context():
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        seen["payload"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "ORDER-1",
                "status": "PAYER_ACTION_REQUIRED",
                "links": [
                    {"rel": "self", "href": "https://api-m.sandbox.paypal.com/v2/checkout/orders/ORDER-1"},
                    {"rel": "payer-action", "href": "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1"},
                ],
            },
        )

    client = _client(handler)
    created = await client.create_order(
        CreateOrder(
            amount=Decimal("120"),
            currency="eur",
            reference_id="42",
            description="Room 42",
            return_url="https://shop.test/complete?id=42",
            cancel_url="https://shop.test/complete?id=42&cancelled=true",
            brand_name="Shop",
            idempotency_key="key-1",
        )
    )

    assert created.order_id == "ORDER-1"
    assert created.approval_url.endswith("token=ORDER-1")
    payload = seen["payload"]
    assert payload["intent"] == "CAPTURE"
    unit = payload["purchase_units"][0]
    assert unit["reference_id"] == "42"
    assert unit["amount"] == {"currency_code": "EUR", "value": "120.00"}
    context = payload["payment_source"]["paypal"]["experience_context"]
    assert context["user_action"] == "PAY_NOW"
    assert context["brand_name"] == "Shop"
    assert context["cancel_url"].endswith("cancelled=true")
    assert seen["headers"]["paypal-request-id"] == "key-1"
    assert seen["headers"]["authorization"] == "Bearer A21AA"


@pytest.mark.asyncio
async def test_create_order_without_return_url_omits_payment_source():
    seen = {}

    def handler(request):
        seen["payload"] = json.loads(request.content)
        return httpx.Response(
            201,
            json={"id": "ORDER-2", "status": "CREATED", "links": [{"rel": "approve", "href": "https://approve"}]},
        )

    created = await _client(handler).create_order(CreateOrder(amount=Decimal("10"), currency="USD", reference_id="7"))

    assert "payment_source" not in seen["payload"]
    assert created.approval_url == "https://approve"


def test_zero_decimal_currency_formatting():
    assert PaypalOrdersClient._format_amount(Decimal("1500.4"), "JPY") == "1500"
    assert PaypalOrdersClient._format_amount(Decimal("9.999"), "EUR") == "10.00"


@pytest.mark.asyncio
async def test_get_order_exposes_reference_id_and_quotes_path():
    seen = {}

    def handler(request):
        seen["raw_path"] = request.url.raw_path
        return httpx.Response(200, json=_order_body(status="APPROVED", captures=()))

    order = await _client(handler).get_order("ORDER/../x")

    assert order.reference_id == "42"
    assert seen["raw_path"] == b"/v2/checkout/orders/ORDER%2F..%2Fx"


@pytest.mark.asyncio
async def test_capture_order_parses_first_capture_id():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["prefer"] = request.headers.get("prefer")
        return httpx.Response(201, json=_order_body(captures=("CAP-1", "CAP-2")))

    result = await _client(handler).capture_order("5O190127TN364715T")

    assert seen["path"] == "/v2/checkout/orders/5O190127TN364715T/capture"
    assert seen["prefer"] == "return=representation"
    assert result.status == "COMPLETED"
    assert result.first_capture_id == "CAP-1"
    assert len(result.captures) == 2


@pytest.mark.asyncio
async def test_non_2xx_raises_upstream_error_with_processor_details():
    def handler(request):
        return httpx.Response(
            422,
            json={"name": "UNPROCESSABLE_ENTITY", "message": "The requested action could not be performed", "debug_id": "dbg-1"},
        )

    with pytest.raises(UpstreamError) as exc_info:
        await _client(handler).capture_order("ORDER-1")

    err = exc_info.value
    assert err.status_code == 422
    assert err.provider_code == "UNPROCESSABLE_ENTITY"
    assert err.details["debug_id"] == "dbg-1"


@pytest.mark.asyncio
async def test_capture_is_not_retried_on_transport_error():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("reset", request=request)

    with pytest.raises(UpstreamError):
        await _client(handler).capture_order("ORDER-1")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_refund_retries_transport_errors_with_stable_request_id():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("reset", request=request)
        return httpx.Response(201, json={"id": "REFUND-1", "status": "COMPLETED"})

    client = _client(handler, retry={"max": 2, "base": 0.0})
    result = await client.refund_capture("CAP-1", Decimal("120"), "EUR", request_id="refund-42-CAP-1")

    assert result.refund_id == "REFUND-1"
    assert len(calls) == 2
    assert {c.headers["paypal-request-id"] for c in calls} == {"refund-42-CAP-1"}
    assert calls[-1].url.path == "/v2/payments/captures/CAP-1/refund"
    assert json.loads(calls[-1].content)["amount"] == {"currency_code": "EUR", "value": "120.00"}
