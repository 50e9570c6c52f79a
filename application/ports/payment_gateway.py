"""
Payment processor ports (application/ports) exposing replaceable protocols.

Application depends on these Protocols; infrastructure implements adapters
and tests supply doubles. No module-level client state: every service
receives its collaborators explicitly.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    CaptureResult,
    CreatedOrder,
    CreateOrder,
    Order,
    RefundResult,
)


@runtime_checkable
class AccessTokenProvider(Protocol):
    async def get_access_token(self) -> str: ...


@runtime_checkable
class OrderLifecycleClient(Protocol):
    """Create/get/capture orders and refund captures against the processor.

    Every operation raises UpstreamError on non-2xx or transport failure
    and performs no retries of its own.
    """

    provider: str

    async def create_order(self, req: CreateOrder) -> CreatedOrder: ...

    async def get_order(self, order_id: str) -> Order: ...

    async def capture_order(self, order_id: str) -> CaptureResult: ...

    async def refund_capture(
        self,
        capture_id: str,
        amount: Decimal,
        currency: str,
        *,
        request_id: Optional[str] = None,
    ) -> RefundResult: ...


@runtime_checkable
class WebhookSignatureVerifier(Protocol):
    """Returns False for anything but a processor-confirmed signature.

    Only a missing webhook id configuration may raise.
    """

    async def verify(self, headers: Mapping[str, Any], raw_body: bytes) -> bool: ...
