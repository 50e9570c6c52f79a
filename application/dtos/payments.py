"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    return u


class CreateOrder(BaseModel):
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str
    reference_id: str
    description: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    brand_name: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class CreatedOrder(BaseModel):
    order_id: str
    status: Optional[str] = None
    approval_url: Optional[str] = None


class Capture(BaseModel):
    capture_id: str
    status: Optional[str] = None


class PurchaseUnit(BaseModel):
    reference_id: Optional[str] = None
    captures: list[Capture] = Field(default_factory=list)


class Order(BaseModel):
    order_id: str
    status: Optional[str] = None
    purchase_units: list[PurchaseUnit] = Field(default_factory=list)

    @property
    def reference_id(self) -> Optional[str]:
        """Reference id of the first purchase unit (the reservation binding)."""
        if not self.purchase_units:
            return None
        return self.purchase_units[0].reference_id


class CaptureResult(BaseModel):
    order_id: str
    status: Optional[str] = None
    purchase_units: list[PurchaseUnit] = Field(default_factory=list)

    @property
    def captures(self) -> list[Capture]:
        return [c for unit in self.purchase_units for c in unit.captures]

    @property
    def first_capture_id(self) -> Optional[str]:
        if not self.purchase_units or not self.purchase_units[0].captures:
            return None
        return self.purchase_units[0].captures[0].capture_id or None


class RefundResult(BaseModel):
    refund_id: str
    status: str
    provider: str
    capture_id: Optional[str] = None


class PaymentIntentResult(BaseModel):
    id: str
    client_secret: str = ""
    redirect_to: Optional[str] = None


class WebhookAck(BaseModel):
    event_type: Optional[str] = None
    action: str = "ignored"
    reservation_id: Optional[int] = None


class WebhookEvent(BaseModel):
    id: Optional[str] = None
    event_type: Optional[str] = None
    resource: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    @property
    def capture_id(self) -> Optional[str]:
        value = self.resource.get("id")
        return str(value) if value else None
