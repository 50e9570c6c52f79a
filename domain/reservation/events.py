"""
Reservation domain events raised by the payment flows.

The host reservation system consumes these; the domain stays free of any
transport.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class ReservationEvent:
    reservation_id: int
    capture_id: Optional[str] = None
    source: str = "webhook"
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ReservationConfirmed(ReservationEvent):
    pass


@dataclass
class ReservationCancelled(ReservationEvent):
    reason: Optional[str] = None
