"""
预订仓储接口 - 定义支付流程需要的数据访问
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Reservation


class ReservationRepository(ABC):
    """预订仓储抽象接口"""

    @abstractmethod
    async def add(self, reservation: Reservation) -> Reservation:
        """新增预订（预订由宿主系统创建，此处用于导入与测试）"""
        pass

    @abstractmethod
    async def get_by_id(self, reservation_id: int) -> Optional[Reservation]:
        """根据ID获取预订"""
        pass

    @abstractmethod
    async def get_by_payment_id(self, payment_id: str) -> Optional[Reservation]:
        """根据 capture 标识获取预订（webhook 使用）"""
        pass

    @abstractmethod
    async def get_by_pending_order_id(self, order_id: str) -> Optional[Reservation]:
        """根据待支付订单ID获取预订（前端 SDK capture 使用）"""
        pass

    @abstractmethod
    async def record_pending_order(self, reservation_id: int, order_id: str) -> Optional[Reservation]:
        """记录待支付订单ID"""
        pass

    @abstractmethod
    async def settle_capture(self, reservation_id: int, capture_id: str) -> bool:
        """
        条件写入 payment_id 并清除 pending_order_id

        仅当 payment_id 为空或等于 capture_id 时写入；返回是否写入成功。
        """
        pass

    @abstractmethod
    async def update(self, reservation: Reservation) -> Reservation:
        """更新预订状态"""
        pass
