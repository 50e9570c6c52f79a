"""
Capture reconciliation: validate an order against the reservation it claims
to pay for, then capture it.

Every check that can reject runs before the capture call, and a rejected
attempt never mutates the reservation. The rate-limit bucket is keyed per
client IP so that enumerating reservation ids or guessing tokens is bounded
even across reservations.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import CaptureResult
from application.ports.payment_gateway import OrderLifecycleClient
from application.ports.rate_limiter import RateLimitStore
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.capture import CaptureOutcome, CaptureState, RejectionReason
from domain.payment.exceptions import (
    BindingMismatchError,
    MalformedResponseError,
    PaymentProviderError,
    UnknownOrderError,
)
from domain.reservation.entity import Reservation
from shared.codes.payment_codes import ORDER_STATUS_COMPLETED, ORDER_STATUS_PENDING


logger = get_logger(__name__)


class CaptureReconciliationService:
    def __init__(
        self,
        orders: OrderLifecycleClient,
        rate_limiter: RateLimitStore,
        uow_factory: Callable[[], AbstractUnitOfWork],
        *,
        max_attempts: int = 10,
        decay_seconds: int = 60,
        mismatch_penalty: int = 3,
        key_prefix: str = "paypal-capture",
    ) -> None:
        self.orders = orders
        self.rate_limiter = rate_limiter
        self._uow_factory = uow_factory
        self.max_attempts = max_attempts
        self.decay_seconds = decay_seconds
        self.mismatch_penalty = mismatch_penalty
        self.key_prefix = key_prefix

    def bucket_key(self, client_ip: str) -> str:
        return f"{self.key_prefix}:{client_ip}"

    async def _penalize(self, key: str, amount: int) -> int:
        return await self.rate_limiter.hit(key, amount=amount, decay_seconds=self.decay_seconds)

    async def _reject_mismatch(
        self,
        reservation: Reservation,
        key: str,
        reason: RejectionReason,
        error: BindingMismatchError,
        client_ip: str,
    ) -> CaptureOutcome:
        attempts = await self._penalize(key, self.mismatch_penalty)
        logger.warning(
            "capture_binding_mismatch",
            reservation_id=reservation.id,
            client_ip=client_ip,
            reason=reason.value,
            attempts=attempts,
            details=error.details,
        )
        return CaptureOutcome.rejected(reservation, reason)

    async def reconcile(
        self,
        reservation: Reservation,
        token: Optional[str],
        client_ip: str,
        cancelled: bool = False,
    ) -> CaptureOutcome:
        """Run one capture attempt for `reservation` using the order id `token`."""
        if cancelled:
            logger.info("capture_cancelled_by_payer", reservation_id=reservation.id)
            return CaptureOutcome.rejected(reservation, RejectionReason.CANCELLED)

        if not token:
            logger.info("capture_missing_token", reservation_id=reservation.id)
            return CaptureOutcome.rejected(reservation, RejectionReason.MISSING_TOKEN)

        key = self.bucket_key(client_ip)
        attempts = await self.rate_limiter.attempts(key)
        if attempts >= self.max_attempts:
            logger.warning(
                "capture_rate_limited",
                reservation_id=reservation.id,
                client_ip=client_ip,
                attempts=attempts,
            )
            return CaptureOutcome.rejected(reservation, RejectionReason.RATE_LIMITED)

        if reservation.pending_order_id and token != reservation.pending_order_id:
            error = BindingMismatchError(
                "Order token does not match the reservation's pending order",
                reservation_id=reservation.id,
                details={"token": token},
            )
            return await self._reject_mismatch(
                reservation, key, RejectionReason.TOKEN_MISMATCH, error, client_ip
            )

        # VALIDATING_REFERENCE
        try:
            order = await self.orders.get_order(token)
        except PaymentProviderError as exc:
            logger.error(
                "capture_get_order_failed",
                reservation_id=reservation.id,
                order_id=token,
                error_type=exc.error_type,
                details=exc.details,
            )
            return CaptureOutcome.rejected(reservation, RejectionReason.UPSTREAM_ERROR)

        if order.reference_id != reservation.reference_id:
            error = BindingMismatchError(
                "Order reference id does not match reservation",
                reservation_id=reservation.id,
                details={"order_id": token, "order_reference_id": order.reference_id},
            )
            return await self._reject_mismatch(
                reservation, key, RejectionReason.REFERENCE_MISMATCH, error, client_ip
            )

        # CAPTURING
        await self._penalize(key, 1)
        try:
            result = await self.orders.capture_order(token)
        except PaymentProviderError as exc:
            logger.error(
                "capture_order_failed",
                reservation_id=reservation.id,
                order_id=token,
                error_type=exc.error_type,
                details=exc.details,
            )
            return CaptureOutcome.rejected(reservation, RejectionReason.UPSTREAM_ERROR)

        return await self._finish(reservation, result, key)

    async def _finish(self, reservation: Reservation, result: CaptureResult, key: str) -> CaptureOutcome:
        if result.status == ORDER_STATUS_COMPLETED:
            capture_id = result.first_capture_id
            if not capture_id:
                error = MalformedResponseError(
                    "Capture completed without a capture id",
                    provider=self.orders.provider,
                    details={"order_id": result.order_id, "captures": len(result.captures)},
                )
                logger.error(
                    "capture_missing_capture_id",
                    reservation_id=reservation.id,
                    order_id=result.order_id,
                    details=error.details,
                )
                return CaptureOutcome.rejected(
                    reservation, RejectionReason.MALFORMED_RESPONSE, order_status=result.status
                )
            settled = await self._settle(reservation, capture_id)
            await self.rate_limiter.clear(key)
            logger.info(
                "capture_completed",
                reservation_id=reservation.id,
                order_id=result.order_id,
                capture_id=capture_id,
            )
            return CaptureOutcome(
                state=CaptureState.CAPTURED,
                reservation=settled,
                capture_id=capture_id,
                order_status=result.status,
            )

        if result.status == ORDER_STATUS_PENDING:
            logger.info("capture_pending", reservation_id=reservation.id, order_id=result.order_id)
            return CaptureOutcome(
                state=CaptureState.PENDING_SETTLEMENT,
                reservation=reservation,
                order_status=result.status,
            )

        logger.warning(
            "capture_unexpected_status",
            reservation_id=reservation.id,
            order_id=result.order_id,
            status=result.status,
        )
        return CaptureOutcome.rejected(
            reservation, RejectionReason.UNEXPECTED_STATUS, order_status=result.status
        )

    async def _settle(self, reservation: Reservation, capture_id: str) -> Reservation:
        """Conditionally bind the capture to the reservation; returns the fresh reservation."""
        async with self._uow_factory() as uow:
            repo = uow.reservation_repository
            if not await repo.settle_capture(reservation.id, capture_id):
                # Funds were collected; the stored payment id is kept for manual reconciliation.
                current = await repo.get_by_id(reservation.id)
                logger.error(
                    "capture_settle_conflict",
                    reservation_id=reservation.id,
                    capture_id=capture_id,
                    stored_payment_id=current.payment_id if current else None,
                )
                return current or reservation
            fresh = await repo.get_by_id(reservation.id)
        if fresh is None:
            reservation.record_capture(capture_id)
        return fresh or reservation

    async def capture_for_order(self, order_id: str, client_ip: str) -> CaptureOutcome:
        """Capture entry point for the inline SDK flow, where only the order id is known."""
        async with self._uow_factory() as uow:
            reservation = await uow.reservation_repository.get_by_pending_order_id(order_id)
        if reservation is None:
            logger.warning("capture_unknown_order", order_id=order_id, client_ip=client_ip)
            raise UnknownOrderError(order_id)
        logger.info("capture_requested", order_id=order_id, reservation_id=reservation.id)
        return await self.reconcile(reservation, order_id, client_ip)
