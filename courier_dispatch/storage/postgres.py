# courier_dispatch/storage/postgres.py
"""
Хранилище на PostgreSQL.
Собирает репозитории доменов поверх общего DatabaseManager.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from courier_dispatch.common.constants import ApprovalStatus, OrderStatus
from courier_dispatch.common.exceptions import (
    DriverNotFoundError,
    DriverUnavailableError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from courier_dispatch.core.assignments.models import Assignment, AssignmentDetails, DispatchStats
from courier_dispatch.core.assignments.repository import AssignmentRepository
from courier_dispatch.core.drivers.models import Driver, DriverCreateDTO
from courier_dispatch.core.drivers.repository import DriverRepository
from courier_dispatch.core.orders.models import Order, OrderCreateDTO
from courier_dispatch.core.orders.repository import OrderRepository
from courier_dispatch.infra.database import DatabaseManager
from courier_dispatch.storage.base import DispatchStorage, outcome_from_flag


class PostgresDispatchStorage(DispatchStorage):
    """Хранилище заказов, курьеров и назначений в PostgreSQL."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Подключённый менеджер базы данных
        """
        self._db = db
        self.orders = OrderRepository(db)
        self.drivers = DriverRepository(db)
        self.assignments = AssignmentRepository(db)

    # --- операции движка ---

    async def get_eligible_drivers(self) -> list[Driver]:
        return await self.drivers.get_eligible()

    async def commit_assignment(
        self,
        order_id: int,
        driver_id: int,
        distance: float,
    ) -> tuple[Assignment, Order, Driver]:
        # Исключение внутри transaction() откатывает все три записи
        async with self._db.transaction() as conn:
            order = await self.orders.mark_assigned(order_id, conn=conn)
            if order is None:
                status = await conn.fetchval("SELECT status FROM orders WHERE id = $1", order_id)
                if status is None:
                    raise OrderNotFoundError(order_id)
                raise InvalidTransitionError(status, OrderStatus.ASSIGNED.value)

            driver = await self.drivers.reserve(driver_id, conn=conn)
            if driver is None:
                exists = await conn.fetchval("SELECT EXISTS (SELECT 1 FROM drivers WHERE id = $1)", driver_id)
                if not exists:
                    raise DriverNotFoundError(driver_id)
                raise DriverUnavailableError(driver_id)

            assignment = await self.assignments.create(order_id, driver_id, distance, conn=conn)
        return assignment, order, driver

    async def find_assignment_by_order(self, order_id: int) -> Optional[Assignment]:
        return await self.assignments.get_by_order(order_id)

    async def set_order_status(self, order_id: int, status: OrderStatus) -> Order:
        return await self.orders.update_status(order_id, status)

    async def set_driver_availability(self, driver_id: int, available: bool) -> Driver:
        return await self.drivers.update_fields(driver_id, is_available=available)

    async def mark_assignment_declined(self, assignment_id: int) -> Assignment:
        return await self.assignments.mark_declined(assignment_id)

    async def has_active_assignment(self, driver_id: int, exclude_order_id: int | None = None) -> bool:
        return await self.assignments.has_active_for_driver(driver_id, exclude_order_id)

    async def record_notification_outcome(self, assignment_id: int, sent: bool) -> Assignment:
        return await self.assignments.set_notification(assignment_id, outcome_from_flag(sent))

    async def get_pending_orders(self) -> list[Order]:
        return await self.orders.get_pending()

    # --- заказы ---

    async def get_order(self, order_id: int) -> Optional[Order]:
        return await self.orders.get_by_id(order_id)

    async def create_order(self, dto: OrderCreateDTO) -> Order:
        return await self.orders.create(dto)

    async def list_orders(self) -> list[Order]:
        return await self.orders.get_all()

    # --- курьеры ---

    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        return await self.drivers.get_by_id(driver_id)

    async def get_driver_by_telegram_id(self, telegram_id: str) -> Optional[Driver]:
        return await self.drivers.get_by_telegram_id(telegram_id)

    async def create_driver(self, dto: DriverCreateDTO) -> Driver:
        return await self.drivers.create(dto)

    async def list_drivers(self, approval_status: ApprovalStatus | None = None) -> list[Driver]:
        if approval_status is None:
            return await self.drivers.get_all()
        return await self.drivers.get_by_approval(approval_status)

    async def set_driver_online(self, driver_id: int, online: bool) -> Driver:
        return await self.drivers.update_fields(driver_id, is_online=online)

    async def set_driver_location(self, driver_id: int, latitude: float, longitude: float) -> Driver:
        return await self.drivers.update_fields(driver_id, latitude=latitude, longitude=longitude)

    async def set_driver_telegram_id(self, driver_id: int, telegram_id: str) -> Driver:
        return await self.drivers.update_fields(driver_id, telegram_id=telegram_id.lstrip("@"))

    async def set_driver_approval(
        self,
        driver_id: int,
        status: ApprovalStatus,
        approved_by: str,
    ) -> Driver:
        approved_at = datetime.now(timezone.utc) if status == ApprovalStatus.APPROVED else None
        return await self.drivers.update_fields(
            driver_id,
            approval_status=status,
            approved_at=approved_at,
            approved_by=approved_by,
        )

    # --- отчёты ---

    async def get_recent_assignments(self, limit: int = 10) -> list[AssignmentDetails]:
        return await self.assignments.get_recent(limit)

    async def get_driver_assignments(self, driver_id: int, limit: int = 20) -> list[AssignmentDetails]:
        return await self.assignments.get_recent(limit, driver_id=driver_id)

    async def get_stats(self) -> DispatchStats:
        return await self.assignments.get_stats()
