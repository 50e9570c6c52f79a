"""
Payments API routes.

Thin HTTP layer over ReservationPaymentGateway. The capture endpoint answers
with the flat JSON the client-side SDK expects; every other route uses the
unified response envelope.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_payment_gateway
from application.services.payment_service import ReservationPaymentGateway
from core.logging_config import get_logger
from core.response import success_response
from domain.payment.capture import CaptureState, RejectionReason
from domain.payment.exceptions import UnknownOrderError


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _client_ip(request: Request) -> str:
    ip = getattr(request.state, "client_ip", None)
    if ip:
        return ip
    return request.client.host if request.client else "unknown"


@router.post("/capture/{order_id}", summary="Capture an approved order")
async def capture_order(
    order_id: str,
    request: Request,
    gateway: ReservationPaymentGateway = Depends(get_payment_gateway),
):
    try:
        outcome = await gateway.capture_order(order_id, _client_ip(request))
    except UnknownOrderError:
        return JSONResponse(status_code=403, content={"error": "Invalid order"})

    if outcome.state == CaptureState.CAPTURED:
        return JSONResponse(
            content={
                "status": "COMPLETED",
                "captureId": outcome.capture_id,
                "reservationId": outcome.reservation.id,
            }
        )
    if outcome.reason == RejectionReason.UPSTREAM_ERROR:
        return JSONResponse(
            status_code=500,
            content={"error": "Capture failed", "message": "Payment could not be processed"},
        )
    return JSONResponse(
        status_code=400,
        content={"error": "Capture failed", "status": outcome.order_status},
    )


@router.post("/webhooks/paypal", summary="PayPal webhook")
async def paypal_webhook(
    request: Request,
    gateway: ReservationPaymentGateway = Depends(get_payment_gateway),
):
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    ack = await gateway.verify_payment(headers, raw_body)
    for event in gateway.webhook_processor.clear_events():
        logger.info(
            "reservation_event_emitted",
            event_name=type(event).__name__,
            event_id=event.event_id,
            reservation_id=event.reservation_id,
            capture_id=event.capture_id,
        )
    return success_response(data=ack.model_dump(mode="json"), message="Webhook received")


@router.get("/checkout/complete", summary="Handle return from checkout")
async def checkout_complete(
    request: Request,
    id: int = Query(..., description="Reservation id"),
    token: Optional[str] = Query(default=None),
    cancelled: bool = Query(default=False),
    gateway: ReservationPaymentGateway = Depends(get_payment_gateway),
):
    result = await gateway.handle_redirect_back(id, token, _client_ip(request), cancelled)
    return success_response(data=result)


@router.post("/reservations/{reservation_id}/intent", summary="Create payment intent")
async def create_payment_intent(
    reservation_id: int,
    gateway: ReservationPaymentGateway = Depends(get_payment_gateway),
):
    # the order amount always comes from the stored reservation
    intent = await gateway.payment_intent(None, reservation_id)
    return success_response(data=intent.model_dump(mode="json"), message="Payment intent created")
