import json

import pytest

from application.services.webhook_service import WebhookEventProcessor
from domain.payment.exceptions import ConfigurationError, WebhookRejectedError
from domain.reservation.entity import ReservationStatus
from domain.reservation.events import ReservationCancelled, ReservationConfirmed
from tests.fakes import StubVerifier, make_reservation


class _CountingStore:
    """Wraps the in-memory store to count lookups by capture id."""

    def __init__(self, store):
        self.store = store
        self.lookups = 0

    def uow_factory(self):
        base = self.store.uow_factory()

        def factory():
            uow = base()
            original = uow.reservation_repository.get_by_payment_id

            async def counted(payment_id):
                self.lookups += 1
                return await original(payment_id)

            uow.reservation_repository.get_by_payment_id = counted
            return uow

        return factory


def _event(event_type="PAYMENT.CAPTURE.COMPLETED", capture_id="CAPTURE-42"):
    resource = {"id": capture_id} if capture_id else {}
    return json.dumps({"id": "WH-EVT-1", "event_type": event_type, "resource": resource}).encode()


@pytest.mark.asyncio
async def test_duplicate_completed_event_confirms_once(store):
    store.add(make_reservation(42, payment_id="CAPTURE-42"))
    processor = WebhookEventProcessor(StubVerifier(), store.uow_factory())

    first = await processor.handle(_event(), {})
    second = await processor.handle(_event(), {})

    assert first.action == "confirmed"
    assert second.action == "noop"
    assert store.get(42).status == ReservationStatus.CONFIRMED
    events = processor.clear_events()
    assert len(events) == 1
    assert isinstance(events[0], ReservationConfirmed)
    assert processor.events == []


@pytest.mark.asyncio
async def test_invalid_json_rejected_without_lookup(store):
    counting = _CountingStore(store)
    verifier = StubVerifier()
    processor = WebhookEventProcessor(verifier, counting.uow_factory())

    with pytest.raises(WebhookRejectedError):
        await processor.handle(b"{not json", {})
    assert counting.lookups == 0
    assert verifier.calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"{}", b"[]", b"null", b"\"text\""])
async def test_empty_or_non_object_payload_rejected(store, body):
    processor = WebhookEventProcessor(StubVerifier(), store.uow_factory())

    with pytest.raises(WebhookRejectedError):
        await processor.handle(body, {})


@pytest.mark.asyncio
async def test_invalid_signature_rejected_without_lookup(store):
    store.add(make_reservation(42, payment_id="CAPTURE-42"))
    counting = _CountingStore(store)
    processor = WebhookEventProcessor(StubVerifier(result=False), counting.uow_factory())

    with pytest.raises(WebhookRejectedError):
        await processor.handle(_event(), {})
    assert counting.lookups == 0
    assert store.get(42).status == ReservationStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [RuntimeError("network down"), ConfigurationError("missing webhook id", setting="paypal.webhook_id")],
)
async def test_verifier_exception_becomes_rejection(store, error):
    processor = WebhookEventProcessor(StubVerifier(error=error), store.uow_factory())

    with pytest.raises(WebhookRejectedError):
        await processor.handle(_event(), {})


@pytest.mark.asyncio
async def test_unrecognized_event_type_acknowledged_without_transition(store):
    store.add(make_reservation(42, payment_id="CAPTURE-42"))
    counting = _CountingStore(store)
    processor = WebhookEventProcessor(StubVerifier(), counting.uow_factory())

    ack = await processor.handle(_event("CHECKOUT.ORDER.APPROVED"), {})

    assert ack.action == "ignored"
    assert counting.lookups == 0
    assert store.get(42).status == ReservationStatus.PENDING
    assert processor.events == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"id": "WH-2", "event_type": 123, "resource": {"id": "CAPTURE-42"}},
        {"id": "WH-3", "event_type": ["PAYMENT.CAPTURE.COMPLETED"]},
        {"id": 7, "event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": ["CAPTURE-42"]},
        {"event_type": "PAYMENT.CAPTURE.DENIED", "resource": "CAPTURE-42"},
    ],
)
async def test_oddly_shaped_fields_are_verified_then_acknowledged(store, payload):
    store.add(make_reservation(42, payment_id="CAPTURE-42"))
    verifier = StubVerifier()
    processor = WebhookEventProcessor(verifier, store.uow_factory())

    ack = await processor.handle(json.dumps(payload).encode(), {})

    assert verifier.calls == 1
    assert ack.action == "ignored"
    assert store.get(42).status == ReservationStatus.PENDING


@pytest.mark.asyncio
async def test_missing_capture_id_acknowledged(store):
    processor = WebhookEventProcessor(StubVerifier(), store.uow_factory())

    ack = await processor.handle(_event(capture_id=None), {})

    assert ack.action == "ignored"


@pytest.mark.asyncio
async def test_unknown_capture_acknowledged(store):
    processor = WebhookEventProcessor(StubVerifier(), store.uow_factory())

    ack = await processor.handle(_event(capture_id="CAPTURE-UNKNOWN"), {})

    assert ack.action == "ignored"
    assert ack.reservation_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type", ["PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.REFUNDED"])
async def test_denied_or_refunded_cancels_pending_reservation(store, event_type):
    store.add(make_reservation(42, payment_id="CAPTURE-42"))
    processor = WebhookEventProcessor(StubVerifier(), store.uow_factory())

    ack = await processor.handle(_event(event_type), {})

    assert ack.action == "cancelled"
    assert store.get(42).status == ReservationStatus.CANCELLED
    (event,) = processor.clear_events()
    assert isinstance(event, ReservationCancelled)
    assert event.reason == event_type


@pytest.mark.asyncio
async def test_confirmed_reservation_is_not_cancelled_by_late_refund_event(store):
    store.add(make_reservation(42, payment_id="CAPTURE-42", status=ReservationStatus.CONFIRMED))
    processor = WebhookEventProcessor(StubVerifier(), store.uow_factory())

    ack = await processor.handle(_event("PAYMENT.CAPTURE.REFUNDED"), {})

    assert ack.action == "noop"
    assert store.get(42).status == ReservationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_impossible_transition_is_acknowledged(store):
    store.add(make_reservation(42, payment_id="CAPTURE-42", status=ReservationStatus.EXPIRED))
    processor = WebhookEventProcessor(StubVerifier(), store.uow_factory())

    ack = await processor.handle(_event(), {})

    assert ack.action == "noop"
    assert store.get(42).status == ReservationStatus.EXPIRED
    assert processor.events == []
