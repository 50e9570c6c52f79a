"""
Payment specific codes and PayPal status vocabulary.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002
    AUTHENTICATION_ERROR = 60005
    MALFORMED_RESPONSE = 60006
    CONFIGURATION_ERROR = 60007

    # Capture protocol errors (61xxx)
    BINDING_MISMATCH = 61000
    UNKNOWN_ORDER = 61001
    ALREADY_CAPTURED = 61002
    REFUND_FAILED = 61003


# PayPal Orders v2 order / capture statuses
ORDER_STATUS_COMPLETED = "COMPLETED"
ORDER_STATUS_PENDING = "PENDING"

# Webhook event types that move a reservation
EVENT_CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
EVENT_CAPTURE_DENIED = "PAYMENT.CAPTURE.DENIED"
EVENT_CAPTURE_REFUNDED = "PAYMENT.CAPTURE.REFUNDED"

ACTIONABLE_WEBHOOK_EVENTS = frozenset(
    {EVENT_CAPTURE_COMPLETED, EVENT_CAPTURE_DENIED, EVENT_CAPTURE_REFUNDED}
)

WEBHOOK_VERIFICATION_SUCCESS = "SUCCESS"
