"""
Capture protocol vocabulary: states, rejection reasons and the outcome
returned to callers of the reconciliation service.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from domain.reservation.entity import Reservation


class CaptureState(str, Enum):
    PENDING_CREATION = "pending_creation"
    PENDING_APPROVAL = "pending_approval"
    VALIDATING_REFERENCE = "validating_reference"
    CAPTURING = "capturing"
    CAPTURED = "captured"
    REJECTED = "rejected"
    PENDING_SETTLEMENT = "pending_settlement"


class RejectionReason(str, Enum):
    CANCELLED = "cancelled"
    MISSING_TOKEN = "missing_token"
    RATE_LIMITED = "rate_limited"
    TOKEN_MISMATCH = "token_mismatch"
    REFERENCE_MISMATCH = "reference_mismatch"
    UPSTREAM_ERROR = "upstream_error"
    MALFORMED_RESPONSE = "malformed_response"
    UNEXPECTED_STATUS = "unexpected_status"


@dataclass
class CaptureOutcome:
    """Terminal result of one reconciliation attempt.

    `reason` is for logs and internal routing only; it must not be echoed
    to the end user.
    """

    state: CaptureState
    reservation: Reservation
    capture_id: Optional[str] = None
    order_status: Optional[str] = None
    reason: Optional[RejectionReason] = None

    @property
    def status(self) -> Union[bool, str]:
        if self.state == CaptureState.CAPTURED:
            return True
        if self.state == CaptureState.PENDING_SETTLEMENT:
            return "pending"
        return False

    @classmethod
    def rejected(
        cls,
        reservation: Reservation,
        reason: RejectionReason,
        *,
        order_status: Optional[str] = None,
    ) -> "CaptureOutcome":
        return cls(
            state=CaptureState.REJECTED,
            reservation=reservation,
            order_status=order_status,
            reason=reason,
        )
