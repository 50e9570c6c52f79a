"""
预订领域实体 - 支付相关的预订状态
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException


class ReservationStatus(str, Enum):
    """预订状态枚举"""
    PENDING = "pending"          # 待支付
    CONFIRMED = "confirmed"      # 已确认
    CANCELLED = "cancelled"      # 已取消
    EXPIRED = "expired"          # 已过期
    REFUNDED = "refunded"        # 已退款


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Reservation:
    """
    预订聚合根（由宿主系统拥有，这里只关心支付字段）

    业务规则：
    1. 同一时间最多一个 pending_order_id
    2. payment_id 只能写入一次（相同值重复写入为幂等空操作）
    3. 已支付的预订不能再创建支付订单
    4. 只有 pending 的预订可以确认或取消
    """

    id: int
    status: ReservationStatus
    amount: Decimal
    currency: str
    title: Optional[str] = None
    payment_id: Optional[str] = None
    pending_order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(
                f"Reservation amount must be positive: {self.amount}",
                field="amount",
            )
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def reference_id(self) -> str:
        """处理方订单上绑定的 reference_id"""
        return str(self.id)

    def is_settled(self) -> bool:
        return bool(self.payment_id)

    def record_pending_order(self, order_id: str) -> None:
        """记录新建的支付订单，替换旧的待支付订单"""
        if self.is_settled():
            raise DomainValidationException(
                "Reservation already has a settled payment",
                field="payment_id",
            )
        self.pending_order_id = order_id
        self.updated_at = datetime.now(timezone.utc)

    def can_settle(self, capture_id: str) -> bool:
        """payment_id 为空或与本次 capture 相同才允许写入"""
        return self.payment_id is None or self.payment_id == capture_id

    def record_capture(self, capture_id: str) -> None:
        """
        写入 capture 标识并清除待支付订单

        业务规则：不允许覆盖另一个已结算的 capture
        """
        if not self.can_settle(capture_id):
            raise DomainValidationException(
                f"Reservation {self.id} already settled with another capture",
                field="payment_id",
            )
        self.payment_id = capture_id
        self.pending_order_id = None
        self.updated_at = datetime.now(timezone.utc)

    def confirm(self) -> bool:
        """确认预订；已确认时返回 False（幂等）"""
        if self.status == ReservationStatus.CONFIRMED:
            return False
        if self.status != ReservationStatus.PENDING:
            raise DomainValidationException(
                f"Cannot confirm reservation in status {self.status.value}",
                field="status",
            )
        self.status = ReservationStatus.CONFIRMED
        self.updated_at = datetime.now(timezone.utc)
        return True

    def cancel(self) -> bool:
        """取消预订；已取消时返回 False（幂等）"""
        if self.status == ReservationStatus.CANCELLED:
            return False
        if self.status != ReservationStatus.PENDING:
            raise DomainValidationException(
                f"Cannot cancel reservation in status {self.status.value}",
                field="status",
            )
        self.status = ReservationStatus.CANCELLED
        self.updated_at = datetime.now(timezone.utc)
        return True

    def mark_refunded(self) -> None:
        """退款成功后标记预订"""
        if not self.is_settled():
            raise DomainValidationException(
                "Reservation has no captured payment to refund",
                field="payment_id",
            )
        self.status = ReservationStatus.REFUNDED
        self.updated_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "amount": str(self.amount),
            "currency": self.currency,
            "title": self.title,
            "payment_id": self.payment_id,
            "pending_order_id": self.pending_order_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
