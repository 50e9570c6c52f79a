"""
预订仓储实现 - 使用SQLAlchemy实现数据访问

payment_id / pending_order_id 只通过条件 UPDATE 修改，
update() 只写状态类字段，避免并发的 capture 与 webhook 互相覆盖。
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ReservationNotFoundException
from domain.reservation.entity import Reservation, ReservationStatus
from domain.reservation.repository import ReservationRepository
from infrastructure.models.reservation import ReservationModel


logger = get_logger(__name__)


class SQLAlchemyReservationRepository(ReservationRepository):
    """预订仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ReservationModel) -> Reservation:
        """将数据库模型转换为领域实体"""
        return Reservation(
            id=model.id,
            status=ReservationStatus(model.status),
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            title=model.title,
            payment_id=model.payment_id,
            pending_order_id=model.pending_order_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _fetch_one(self, *criteria) -> Optional[Reservation]:
        result = await self.session.execute(
            select(ReservationModel)
            .where(*criteria)
            .execution_options(populate_existing=True)
        )
        db_reservation = result.scalar_one_or_none()
        return self._to_entity(db_reservation) if db_reservation else None

    async def add(self, reservation: Reservation) -> Reservation:
        """新增预订"""
        db_reservation = ReservationModel(
            id=reservation.id,
            title=reservation.title,
            amount=reservation.amount,
            currency=reservation.currency,
            status=reservation.status.value,
            payment_id=reservation.payment_id,
            pending_order_id=reservation.pending_order_id,
        )
        self.session.add(db_reservation)
        await self.session.flush()
        await self.session.refresh(db_reservation)
        return self._to_entity(db_reservation)

    async def get_by_id(self, reservation_id: int) -> Optional[Reservation]:
        """根据ID获取预订"""
        return await self._fetch_one(ReservationModel.id == reservation_id)

    async def get_by_payment_id(self, payment_id: str) -> Optional[Reservation]:
        """根据 capture 标识获取预订"""
        return await self._fetch_one(ReservationModel.payment_id == payment_id)

    async def get_by_pending_order_id(self, order_id: str) -> Optional[Reservation]:
        """根据待支付订单ID获取预订"""
        return await self._fetch_one(ReservationModel.pending_order_id == order_id)

    async def record_pending_order(self, reservation_id: int, order_id: str) -> Optional[Reservation]:
        """记录待支付订单ID；已结算的预订不会被修改，返回None"""
        result = await self.session.execute(
            update(ReservationModel)
            .where(
                ReservationModel.id == reservation_id,
                ReservationModel.payment_id.is_(None),
            )
            .values(pending_order_id=order_id, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        logger.info("reservation_pending_order_recorded", reservation_id=reservation_id, order_id=order_id)
        return await self.get_by_id(reservation_id)

    async def settle_capture(self, reservation_id: int, capture_id: str) -> bool:
        """条件写入 payment_id：仅当为空或等于 capture_id"""
        result = await self.session.execute(
            update(ReservationModel)
            .where(
                ReservationModel.id == reservation_id,
                or_(
                    ReservationModel.payment_id.is_(None),
                    ReservationModel.payment_id == capture_id,
                ),
            )
            .values(
                payment_id=capture_id,
                pending_order_id=None,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        settled = result.rowcount == 1
        logger.info(
            "reservation_settle_attempted",
            reservation_id=reservation_id,
            capture_id=capture_id,
            settled=settled,
        )
        return settled

    async def update(self, reservation: Reservation) -> Reservation:
        """更新预订状态（不改动 payment_id / pending_order_id）"""
        result = await self.session.execute(
            select(ReservationModel).where(ReservationModel.id == reservation.id)
        )
        db_reservation = result.scalar_one_or_none()

        if not db_reservation:
            raise ReservationNotFoundException(reservation.id)

        db_reservation.status = reservation.status.value
        db_reservation.title = reservation.title
        db_reservation.updated_at = reservation.updated_at or datetime.now(timezone.utc)

        await self.session.flush()
        await self.session.refresh(db_reservation)

        logger.info(
            "reservation_updated",
            reservation_id=db_reservation.id,
            status=db_reservation.status,
        )
        return self._to_entity(db_reservation)
