import pytest

from application.services.capture_service import CaptureReconciliationService
from domain.payment.capture import CaptureState, RejectionReason
from domain.payment.exceptions import AuthenticationError, UnknownOrderError, UpstreamError
from infrastructure.cache import InMemoryRateLimitStore
from tests.fakes import make_reservation


IP = "203.0.113.7"
BUCKET = f"paypal-capture:{IP}"


def _service(orders, store, limiter=None):
    return CaptureReconciliationService(
        orders,
        limiter or InMemoryRateLimitStore(),
        store.uow_factory(),
    )


@pytest.mark.asyncio
async def test_completed_capture_settles_and_clears_bucket(orders, store):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    orders.capture_ids = ["CAPTURE-42"]
    limiter = InMemoryRateLimitStore()
    await limiter.hit(BUCKET, amount=4)
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-42", IP)

    assert outcome.state == CaptureState.CAPTURED
    assert outcome.status is True
    assert outcome.capture_id == "CAPTURE-42"
    saved = store.get(42)
    assert saved.payment_id == "CAPTURE-42"
    assert saved.pending_order_id is None
    assert outcome.reservation.payment_id == "CAPTURE-42"
    assert await limiter.attempts(BUCKET) == 0


@pytest.mark.asyncio
async def test_reference_mismatch_never_captures_and_applies_heavy_penalty(orders, store):
    reservation = store.add(make_reservation(42))
    orders.bind("ORDER-99", "99")
    limiter = InMemoryRateLimitStore()
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-99", IP)

    assert outcome.state == CaptureState.REJECTED
    assert outcome.reason == RejectionReason.REFERENCE_MISMATCH
    assert outcome.status is False
    assert orders.calls_to("capture_order") == []
    assert await limiter.attempts(BUCKET) == 3
    assert store.get(42).payment_id is None


@pytest.mark.asyncio
async def test_token_for_other_reservation_rejected_before_processor_call(orders, store):
    # reservation 42 has its own pending order; attacker presents the order of reservation 99
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    orders.bind("ORDER-99", "99")
    limiter = InMemoryRateLimitStore()
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-99", IP)

    assert outcome.state == CaptureState.REJECTED
    assert outcome.reason == RejectionReason.TOKEN_MISMATCH
    assert orders.calls == []
    assert await limiter.attempts(BUCKET) == 3
    assert store.get(42).pending_order_id == "ORDER-42"


@pytest.mark.asyncio
async def test_cancelled_makes_no_calls_and_no_penalty(orders, store):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    limiter = InMemoryRateLimitStore()
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-42", IP, cancelled=True)

    assert outcome.reason == RejectionReason.CANCELLED
    assert outcome.status is False
    assert orders.calls == []
    assert await limiter.attempts(BUCKET) == 0


@pytest.mark.asyncio
async def test_missing_token_rejected_without_calls(orders, store):
    reservation = store.add(make_reservation(42))
    limiter = InMemoryRateLimitStore()
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, None, IP)

    assert outcome.reason == RejectionReason.MISSING_TOKEN
    assert orders.calls == []
    assert await limiter.attempts(BUCKET) == 0


@pytest.mark.asyncio
async def test_eleventh_attempt_is_rate_limited_without_upstream_call(orders, store):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    limiter = InMemoryRateLimitStore()
    for _ in range(10):
        await limiter.hit(BUCKET)
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-42", IP)

    assert outcome.reason == RejectionReason.RATE_LIMITED
    assert orders.calls == []
    assert await limiter.attempts(BUCKET) == 10


@pytest.mark.asyncio
async def test_rate_limit_is_per_ip(orders, store):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    limiter = InMemoryRateLimitStore()
    for _ in range(10):
        await limiter.hit(BUCKET)
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-42", "198.51.100.1")

    assert outcome.state == CaptureState.CAPTURED


@pytest.mark.asyncio
async def test_pending_capture_keeps_increment(orders, store):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    orders.capture_status = "PENDING"
    limiter = InMemoryRateLimitStore()
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-42", IP)

    assert outcome.state == CaptureState.PENDING_SETTLEMENT
    assert outcome.status == "pending"
    assert await limiter.attempts(BUCKET) == 1
    assert store.get(42).payment_id is None


@pytest.mark.asyncio
async def test_unexpected_status_rejected(orders, store):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    orders.capture_status = "VOIDED"
    svc = _service(orders, store)

    outcome = await svc.reconcile(reservation, "ORDER-42", IP)

    assert outcome.reason == RejectionReason.UNEXPECTED_STATUS
    assert outcome.order_status == "VOIDED"


@pytest.mark.asyncio
async def test_completed_without_capture_id_is_malformed(orders, store):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    orders.capture_ids = []
    svc = _service(orders, store)

    outcome = await svc.reconcile(reservation, "ORDER-42", IP)

    assert outcome.reason == RejectionReason.MALFORMED_RESPONSE
    assert store.get(42).payment_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        UpstreamError("boom", provider="paypal", status_code=500),
        AuthenticationError("no token", provider="paypal"),
    ],
)
async def test_get_order_failure_rejects_without_penalty(orders, store, error):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.get_error = error
    limiter = InMemoryRateLimitStore()
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-42", IP)

    assert outcome.reason == RejectionReason.UPSTREAM_ERROR
    assert orders.calls_to("capture_order") == []
    assert await limiter.attempts(BUCKET) == 0


@pytest.mark.asyncio
async def test_capture_failure_keeps_single_increment(orders, store):
    reservation = store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    orders.capture_error = UpstreamError("unprocessable", provider="paypal", status_code=422)
    limiter = InMemoryRateLimitStore()
    svc = _service(orders, store, limiter)

    outcome = await svc.reconcile(reservation, "ORDER-42", IP)

    assert outcome.reason == RejectionReason.UPSTREAM_ERROR
    assert await limiter.attempts(BUCKET) == 1


@pytest.mark.asyncio
async def test_conflicting_settlement_is_not_overwritten(orders, store):
    store.add(make_reservation(42, payment_id="CAPTURE-OLD"))
    stale = make_reservation(42)
    orders.bind("ORDER-42", "42")
    orders.capture_ids = ["CAPTURE-NEW"]
    svc = _service(orders, store)

    outcome = await svc.reconcile(stale, "ORDER-42", IP)

    assert outcome.state == CaptureState.CAPTURED
    assert store.get(42).payment_id == "CAPTURE-OLD"


@pytest.mark.asyncio
async def test_capture_for_order_resolves_pending_reservation(orders, store):
    store.add(make_reservation(42, pending_order_id="ORDER-42"))
    orders.bind("ORDER-42", "42")
    svc = _service(orders, store)

    outcome = await svc.capture_for_order("ORDER-42", IP)

    assert outcome.state == CaptureState.CAPTURED
    assert outcome.reservation.id == 42


@pytest.mark.asyncio
async def test_capture_for_unknown_order_raises(orders, store):
    svc = _service(orders, store)

    with pytest.raises(UnknownOrderError):
        await svc.capture_for_order("ORDER-NOPE", IP)
    assert orders.calls == []
