"""
预订数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from .base import Base


class ReservationModel(Base):
    """
    预订数据库模型（仅包含支付流程涉及的列）

    业务规则都在 domain.reservation.entity.Reservation 中
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=True, comment="预订标题，用作订单描述")

    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="应付金额")
    currency = Column(String(3), nullable=False, default="EUR", comment="货币代码 ISO-4217")

    status = Column(
        String(50),
        nullable=False,
        default="pending",
        index=True,
        comment="预订状态: pending/confirmed/cancelled/expired/refunded",
    )

    # 支付处理方标识
    payment_id = Column(String(100), unique=True, nullable=True, index=True, comment="capture ID，结算后写入")
    pending_order_id = Column(String(100), nullable=True, index=True, comment="待支付的处理方订单ID")

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="创建时间",
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        comment="更新时间",
    )

    def __repr__(self):
        return f"<Reservation(id={self.id}, status={self.status}, payment_id={self.payment_id})>"
