"""
Application service the host reservation system talks to.

One class serves both checkout flows. `PaymentFlowMode.REDIRECT` sends the
payer to the processor's approval page and captures when they come back;
`PaymentFlowMode.INLINE_SDK` lets the client-side SDK drive approval and
capture through the capture endpoint, so the redirect-back handler only
reports whether settlement already happened.

Collaborators are injected from the composition root (API dependencies),
keeping the dependency direction one-way.
"""
from __future__ import annotations

import hashlib
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlencode

from application.dtos.payments import CreateOrder, PaymentIntentResult, RefundResult, WebhookAck
from application.ports.payment_gateway import OrderLifecycleClient
from application.services.capture_service import CaptureReconciliationService
from application.services.webhook_service import WebhookEventProcessor
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException, ReservationNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.capture import CaptureOutcome
from domain.payment.exceptions import (
    MalformedResponseError,
    PaymentAlreadyCapturedError,
    PaymentProviderError,
    RefundFailedException,
)
from domain.reservation.entity import Reservation


logger = get_logger(__name__)


class PaymentFlowMode(str, Enum):
    REDIRECT = "redirect"
    INLINE_SDK = "inline_sdk"


def _order_idempotency_key(reservation: Reservation, amount: Decimal, currency: str) -> str:
    # Stable across retries of the same intent; a recorded pending order starts a new key
    base = f"create|{reservation.id}|{amount}|{currency}|{reservation.pending_order_id or ''}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


class ReservationPaymentGateway:
    def __init__(
        self,
        orders: OrderLifecycleClient,
        capture_service: CaptureReconciliationService,
        webhook_processor: WebhookEventProcessor,
        uow_factory: Callable[[], AbstractUnitOfWork],
        *,
        mode: PaymentFlowMode = PaymentFlowMode.REDIRECT,
        checkout_complete_url: str = "",
        default_currency: str = "EUR",
        brand_name: Optional[str] = None,
    ) -> None:
        self.orders = orders
        self.capture_service = capture_service
        self.webhook_processor = webhook_processor
        self._uow_factory = uow_factory
        self.mode = PaymentFlowMode(mode)
        self.checkout_complete_url = checkout_complete_url
        self.default_currency = default_currency
        self.brand_name = brand_name

    @property
    def provider(self) -> str:
        return self.orders.provider

    def supports_webhooks(self) -> bool:
        return True

    def redirects_for_payment(self) -> bool:
        return self.mode == PaymentFlowMode.REDIRECT

    async def _load(self, reservation_id: int) -> Reservation:
        async with self._uow_factory() as uow:
            reservation = await uow.reservation_repository.get_by_id(reservation_id)
        if reservation is None:
            raise ReservationNotFoundException(reservation_id)
        return reservation

    def _return_urls(self, reservation_id: int) -> tuple[str, str]:
        sep = "&" if "?" in self.checkout_complete_url else "?"
        return_url = f"{self.checkout_complete_url}{sep}{urlencode({'id': reservation_id})}"
        cancel_url = f"{self.checkout_complete_url}{sep}{urlencode({'id': reservation_id, 'cancelled': 'true'})}"
        return return_url, cancel_url

    async def payment_intent(self, amount: Optional[Decimal], reservation_id: int) -> PaymentIntentResult:
        """Create a processor order bound to the reservation and record it as pending.

        The order is always raised for the reservation's own amount; `None` means
        "use the stored amount" and any other value must equal it.
        """
        reservation = await self._load(reservation_id)
        if reservation.is_settled():
            raise PaymentAlreadyCapturedError(reservation.id)
        if amount is None:
            amount = reservation.amount
        elif Decimal(amount) != reservation.amount:
            logger.warning(
                "payment_intent_amount_mismatch",
                reservation_id=reservation.id,
                requested=str(amount),
                expected=str(reservation.amount),
            )
            raise DomainValidationException(
                "Amount does not match reservation",
                field="amount",
                details={"reservation_id": reservation.id},
            )

        currency = reservation.currency or self.default_currency
        req = CreateOrder(
            amount=amount,
            currency=currency,
            reference_id=reservation.reference_id,
            description=reservation.title,
            brand_name=self.brand_name,
            idempotency_key=_order_idempotency_key(reservation, amount, currency),
        )
        if self.redirects_for_payment():
            req.return_url, req.cancel_url = self._return_urls(reservation.id)

        logger.info(
            "payment_intent_request",
            reservation_id=reservation.id,
            provider=self.provider,
            mode=self.mode.value,
            idempotency_key=req.idempotency_key,
        )
        created = await self.orders.create_order(req)
        if self.redirects_for_payment() and not created.approval_url:
            raise MalformedResponseError(
                "Created order carried no approval link",
                provider=self.provider,
                details={"order_id": created.order_id},
            )

        async with self._uow_factory() as uow:
            recorded = await uow.reservation_repository.record_pending_order(reservation.id, created.order_id)
        if recorded is None:
            # settled concurrently while the order was being created
            raise PaymentAlreadyCapturedError(reservation.id)

        logger.info(
            "payment_intent_created",
            reservation_id=reservation.id,
            order_id=created.order_id,
            status=created.status,
        )
        if self.redirects_for_payment():
            return PaymentIntentResult(id=created.order_id, redirect_to=created.approval_url)
        return PaymentIntentResult(id=created.order_id, client_secret=created.order_id)

    async def refund(self, reservation_id: int) -> RefundResult:
        reservation = await self._load(reservation_id)
        if not reservation.payment_id:
            raise RefundFailedException(
                "Reservation has no captured payment",
                provider=self.provider,
                details={"reservation_id": reservation.id},
            )

        logger.info("payment_refund_request", reservation_id=reservation.id, capture_id=reservation.payment_id)
        try:
            result = await self.orders.refund_capture(
                reservation.payment_id,
                reservation.amount,
                reservation.currency or self.default_currency,
                request_id=f"refund-{reservation.id}-{reservation.payment_id}",
            )
        except PaymentProviderError as exc:
            logger.error("payment_refund_failed", reservation_id=reservation.id, details=exc.details)
            raise RefundFailedException(
                exc.message,
                provider=self.provider,
                details={"reservation_id": reservation.id, "cause": exc.error_type},
            ) from exc

        reservation.mark_refunded()
        async with self._uow_factory() as uow:
            await uow.reservation_repository.update(reservation)
        logger.info(
            "payment_refunded",
            reservation_id=reservation.id,
            refund_id=result.refund_id,
            status=result.status,
        )
        return result

    async def handle_redirect_back(
        self,
        reservation_id: int,
        token: Optional[str],
        client_ip: str,
        cancelled: bool = False,
    ) -> dict[str, Any]:
        """Resolve the payer's return from checkout to `{status, reservation}`."""
        reservation = await self._load(reservation_id)

        if self.mode == PaymentFlowMode.INLINE_SDK:
            if cancelled:
                status: Any = False
            elif reservation.is_settled() and not reservation.pending_order_id:
                status = True
            else:
                logger.info(
                    "redirect_back_not_settled",
                    reservation_id=reservation.id,
                    has_pending_order=bool(reservation.pending_order_id),
                )
                status = False
            return {"status": status, "reservation": reservation.to_dict()}

        if not cancelled and reservation.is_settled() and not reservation.pending_order_id:
            # repeated return from checkout; the capture already went through
            logger.info("redirect_back_already_settled", reservation_id=reservation.id)
            return {"status": True, "reservation": reservation.to_dict()}

        outcome = await self.capture_service.reconcile(reservation, token, client_ip, cancelled)
        return {"status": outcome.status, "reservation": outcome.reservation.to_dict()}

    async def capture_order(self, order_id: str, client_ip: str) -> CaptureOutcome:
        return await self.capture_service.capture_for_order(order_id, client_ip)

    async def verify_payment(self, headers: Mapping[str, Any], raw_body: bytes) -> WebhookAck:
        ack = await self.webhook_processor.handle(raw_body, headers)
        logger.info(
            "payment_webhook_handled",
            provider=self.provider,
            event_type=ack.event_type,
            action=ack.action,
        )
        return ack

    async def aclose(self) -> None:
        # Best-effort close underlying resources
        for collaborator in (self.orders, self.webhook_processor.verifier):
            close = getattr(collaborator, "aclose", None)
            if callable(close):
                await close()
