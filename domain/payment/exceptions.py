"""
Payment error taxonomy mapped to unified BusinessException variants.

Provider-facing errors (authentication, upstream, malformed responses) share
the PaymentProviderError base so callers can treat "the processor did not
give us a usable answer" as one case. Binding mismatches are security events
and are handled separately. None of these distinctions reach the end user,
who only ever sees success, pending or failure.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "PaymentProviderError",
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        self.provider = provider
        self.provider_code = provider_code
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
        )


class UpstreamError(PaymentProviderError):
    """Processor API failure: non-2xx response, transport error or timeout."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        status_code: int | None = None,
        details: Optional[dict] = None,
    ):
        self.status_code = status_code
        merged = {"status_code": status_code}
        if details:
            merged.update(details)
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=merged,
            code=PaymentCode.PROVIDER_ERROR,
            error_type="UpstreamError",
        )


class AuthenticationError(PaymentProviderError):
    """Client-credentials exchange did not yield a bearer token."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            details=details,
            code=PaymentCode.AUTHENTICATION_ERROR,
            error_type="AuthenticationError",
        )


class MalformedResponseError(PaymentProviderError):
    """Processor answered success but omitted fields we rely on."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            details=details,
            code=PaymentCode.MALFORMED_RESPONSE,
            error_type="MalformedResponseError",
        )


class RefundFailedException(PaymentProviderError):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            details=details,
            code=PaymentCode.REFUND_FAILED,
            error_type="RefundFailed",
        )


class ConfigurationError(BusinessException):
    def __init__(self, message: str, *, setting: str | None = None):
        super().__init__(
            code=PaymentCode.CONFIGURATION_ERROR,
            message=message,
            error_type="ConfigurationError",
            details={"setting": setting} if setting else None,
        )


class BindingMismatchError(BusinessException):
    """Presented order/token is not bound to the reservation it targets."""

    def __init__(self, message: str, *, reservation_id: int, details: Optional[dict] = None):
        full_details = {"reservation_id": reservation_id}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.BINDING_MISMATCH,
            message=message,
            error_type="BindingMismatch",
            details=full_details,
        )


class UnknownOrderError(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=PaymentCode.UNKNOWN_ORDER,
            message="Invalid order",
            error_type="UnknownOrder",
            details={"order_id": order_id},
        )


class PaymentAlreadyCapturedError(BusinessException):
    def __init__(self, reservation_id: int):
        super().__init__(
            code=PaymentCode.ALREADY_CAPTURED,
            message="Reservation is already paid",
            error_type="PaymentAlreadyCaptured",
            details={"reservation_id": reservation_id},
        )


class WebhookRejectedError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="WebhookRejected",
            details=full_details,
        )
