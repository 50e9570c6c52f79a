"""
Webhook event processor.

Authenticity is established before anything else is looked at: a body that
does not parse or a signature the processor does not confirm is rejected
without touching reservation state. Deliveries are at-least-once and
unordered, so every transition is idempotent and state the reservation
cannot take is acknowledged, never bounced back as an error.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Mapping

from application.dtos.payments import WebhookAck, WebhookEvent
from application.ports.payment_gateway import WebhookSignatureVerifier
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.exceptions import ConfigurationError, WebhookRejectedError
from domain.reservation.entity import ReservationStatus
from domain.reservation.events import ReservationCancelled, ReservationConfirmed, ReservationEvent
from shared.codes.payment_codes import ACTIONABLE_WEBHOOK_EVENTS, EVENT_CAPTURE_COMPLETED


logger = get_logger(__name__)

PROVIDER = "paypal"


class WebhookEventProcessor:
    def __init__(
        self,
        verifier: WebhookSignatureVerifier,
        uow_factory: Callable[[], AbstractUnitOfWork],
    ) -> None:
        self.verifier = verifier
        self._uow_factory = uow_factory
        self._events: list[ReservationEvent] = []

    @property
    def events(self) -> list[ReservationEvent]:
        return list(self._events)

    def clear_events(self) -> list[ReservationEvent]:
        drained, self._events = self._events, []
        return drained

    @staticmethod
    def _parse(raw_body: bytes) -> WebhookEvent:
        try:
            data = json.loads(raw_body)
        except (ValueError, TypeError) as exc:
            logger.warning("webhook_invalid_json")
            raise WebhookRejectedError("Invalid webhook payload", provider=PROVIDER) from exc
        if not isinstance(data, dict) or not data:
            logger.warning("webhook_invalid_json", payload_type=type(data).__name__)
            raise WebhookRejectedError("Invalid webhook payload", provider=PROVIDER)
        # Fields of an unexpected shape are dropped so the event-type filter
        # acknowledges the delivery instead of it being refused.
        event_id = data.get("id")
        event_type = data.get("event_type")
        resource = data.get("resource")
        return WebhookEvent.model_validate(
            {
                **data,
                "id": str(event_id) if isinstance(event_id, (str, int)) else None,
                "event_type": event_type if isinstance(event_type, str) else None,
                "resource": resource if isinstance(resource, dict) else {},
            }
        )

    async def _verify(self, headers: Mapping[str, Any], raw_body: bytes) -> None:
        try:
            valid = await self.verifier.verify(headers, raw_body)
        except ConfigurationError as exc:
            logger.error("webhook_verifier_not_configured", setting=(exc.details or {}).get("setting"))
            raise WebhookRejectedError("Webhook signature could not be verified", provider=PROVIDER) from exc
        except Exception as exc:
            logger.error("webhook_signature_verification_failed", error=str(exc))
            raise WebhookRejectedError("Webhook signature could not be verified", provider=PROVIDER) from exc
        if not valid:
            logger.warning("webhook_signature_invalid")
            raise WebhookRejectedError("Invalid webhook signature", provider=PROVIDER)

    async def handle(self, raw_body: bytes, headers: Mapping[str, Any]) -> WebhookAck:
        event = self._parse(raw_body)
        await self._verify(headers, raw_body)

        event_type = event.event_type
        if event_type not in ACTIONABLE_WEBHOOK_EVENTS:
            logger.info("webhook_event_ignored", event_type=event_type, event_id=event.id)
            return WebhookAck(event_type=event_type)

        capture_id = event.capture_id
        if not capture_id:
            logger.warning("webhook_missing_capture_id", event_type=event_type, event_id=event.id)
            return WebhookAck(event_type=event_type)

        async with self._uow_factory() as uow:
            repo = uow.reservation_repository
            reservation = await repo.get_by_payment_id(capture_id)
            if reservation is None:
                logger.info("webhook_reservation_not_found", capture_id=capture_id, event_type=event_type)
                return WebhookAck(event_type=event_type)

            if reservation.status == ReservationStatus.CONFIRMED:
                logger.info("webhook_already_confirmed", reservation_id=reservation.id, event_type=event_type)
                return WebhookAck(event_type=event_type, action="noop", reservation_id=reservation.id)

            try:
                if event_type == EVENT_CAPTURE_COMPLETED:
                    changed = reservation.confirm()
                    new_event: ReservationEvent = ReservationConfirmed(
                        reservation_id=reservation.id, capture_id=capture_id
                    )
                    action = "confirmed"
                else:
                    changed = reservation.cancel()
                    new_event = ReservationCancelled(
                        reservation_id=reservation.id, capture_id=capture_id, reason=event_type
                    )
                    action = "cancelled"
            except DomainValidationException as exc:
                logger.warning(
                    "webhook_transition_rejected",
                    reservation_id=reservation.id,
                    status=reservation.status.value,
                    event_type=event_type,
                    error=exc.message,
                )
                return WebhookAck(event_type=event_type, action="noop", reservation_id=reservation.id)

            if not changed:
                return WebhookAck(event_type=event_type, action="noop", reservation_id=reservation.id)

            await repo.update(reservation)

        self._events.append(new_event)
        logger.info(
            "webhook_reservation_transitioned",
            reservation_id=reservation.id,
            capture_id=capture_id,
            event_type=event_type,
            action=action,
        )
        return WebhookAck(event_type=event_type, action=action, reservation_id=reservation.id)
