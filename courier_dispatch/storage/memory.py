# courier_dispatch/storage/memory.py
"""
Хранилище в памяти процесса.

Повторяет ограничения схемы PostgreSQL (уникальность назначения на заказ,
номера заказа и telegram_id курьера). Используется в тестах и в демо-режиме
без базы данных.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from courier_dispatch.common.constants import ACTIVE_ORDER_STATUSES, ApprovalStatus, NotificationOutcome, OrderStatus
from courier_dispatch.common.exceptions import (
    AssignmentExistsError,
    AssignmentNotFoundError,
    DriverNotFoundError,
    DriverUnavailableError,
    DuplicateEntityError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from courier_dispatch.core.assignments.models import Assignment, AssignmentDetails, DispatchStats
from courier_dispatch.core.drivers.models import Driver, DriverCreateDTO
from courier_dispatch.core.orders.models import Order, OrderCreateDTO
from courier_dispatch.storage.base import DispatchStorage, outcome_from_flag


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDispatchStorage(DispatchStorage):
    """Хранилище заказов, курьеров и назначений в словарях."""

    def __init__(self) -> None:
        self._orders: dict[int, Order] = {}
        self._drivers: dict[int, Driver] = {}
        self._assignments: dict[int, Assignment] = {}
        self._assignment_by_order: dict[int, int] = {}
        self._next_id = {"order": 1, "driver": 1, "assignment": 1}
        self._lock = asyncio.Lock()

    def _allocate_id(self, kind: str) -> int:
        value = self._next_id[kind]
        self._next_id[kind] = value + 1
        return value

    # =========================================================================
    # ЗАПОЛНЕНИЕ (тесты и демо)
    # =========================================================================

    def add_driver(self, driver: Driver) -> Driver:
        """Кладёт готового курьера как есть (id задаёт вызывающий код)."""
        self._drivers[driver.id] = driver
        self._next_id["driver"] = max(self._next_id["driver"], driver.id + 1)
        return driver

    def add_order(self, order: Order) -> Order:
        """Кладёт готовый заказ как есть (id и created_at задаёт вызывающий код)."""
        self._orders[order.id] = order
        self._next_id["order"] = max(self._next_id["order"], order.id + 1)
        return order

    # =========================================================================
    # ОПЕРАЦИИ ДВИЖКА НАЗНАЧЕНИЯ
    # =========================================================================

    async def get_eligible_drivers(self) -> list[Driver]:
        return [
            driver
            for _, driver in sorted(self._drivers.items())
            if driver.is_dispatch_eligible
        ]

    async def commit_assignment(
        self,
        order_id: int,
        driver_id: int,
        distance: float,
    ) -> tuple[Assignment, Order, Driver]:
        # Все проверки выполняются до первой записи
        async with self._lock:
            if order_id in self._assignment_by_order:
                raise AssignmentExistsError(order_id)
            order = self._orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            driver = self._drivers.get(driver_id)
            if driver is None:
                raise DriverNotFoundError(driver_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidTransitionError(order.status.value, OrderStatus.ASSIGNED.value)
            if not driver.is_dispatch_eligible:
                raise DriverUnavailableError(driver_id)

            # Запись только после того, как построены все три новые версии
            assignment = Assignment(
                id=self._next_id["assignment"],
                order_id=order_id,
                driver_id=driver_id,
                distance=distance,
            )
            order = order.model_copy(update={"status": OrderStatus.ASSIGNED})
            driver = driver.model_copy(update={"is_available": False, "updated_at": _utc_now()})

            self._allocate_id("assignment")
            self._assignments[assignment.id] = assignment
            self._assignment_by_order[order_id] = assignment.id
            self._orders[order_id] = order
            self._drivers[driver_id] = driver
            return assignment, order, driver

    async def find_assignment_by_order(self, order_id: int) -> Optional[Assignment]:
        assignment_id = self._assignment_by_order.get(order_id)
        return self._assignments.get(assignment_id) if assignment_id is not None else None

    async def set_order_status(self, order_id: int, status: OrderStatus) -> Order:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            updated = order.model_copy(update={"status": status})
            self._orders[order_id] = updated
            return updated

    async def set_driver_availability(self, driver_id: int, available: bool) -> Driver:
        return await self._update_driver(driver_id, is_available=available)

    async def mark_assignment_declined(self, assignment_id: int) -> Assignment:
        async with self._lock:
            assignment = self._assignments.get(assignment_id)
            if assignment is None:
                raise AssignmentNotFoundError(assignment_id, field="id")
            updated = assignment.model_copy(update={"declined_at": _utc_now()})
            self._assignments[assignment_id] = updated
            return updated

    async def has_active_assignment(self, driver_id: int, exclude_order_id: int | None = None) -> bool:
        return any(
            item.driver_id == driver_id
            and item.order_id != exclude_order_id
            and not item.is_declined
            and self._orders[item.order_id].status in ACTIVE_ORDER_STATUSES
            for item in self._assignments.values()
        )

    async def record_notification_outcome(self, assignment_id: int, sent: bool) -> Assignment:
        async with self._lock:
            assignment = self._assignments.get(assignment_id)
            if assignment is None:
                raise AssignmentNotFoundError(assignment_id, field="id")
            updated = assignment.model_copy(update={"notification": outcome_from_flag(sent)})
            self._assignments[assignment_id] = updated
            return updated

    async def get_pending_orders(self) -> list[Order]:
        pending = [order for order in self._orders.values() if order.status == OrderStatus.PENDING]
        return sorted(pending, key=lambda order: (order.created_at, order.id))

    # =========================================================================
    # ЗАКАЗЫ
    # =========================================================================

    async def get_order(self, order_id: int) -> Optional[Order]:
        return self._orders.get(order_id)

    async def create_order(self, dto: OrderCreateDTO) -> Order:
        async with self._lock:
            if any(order.order_number == dto.order_number for order in self._orders.values()):
                raise DuplicateEntityError(
                    f"Номер заказа {dto.order_number} уже существует",
                    {"order_number": dto.order_number},
                )
            order = Order(id=self._allocate_id("order"), **dto.model_dump())
            self._orders[order.id] = order
            return order

    async def list_orders(self) -> list[Order]:
        return sorted(self._orders.values(), key=lambda order: (order.created_at, order.id), reverse=True)

    # =========================================================================
    # КУРЬЕРЫ
    # =========================================================================

    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        return self._drivers.get(driver_id)

    async def get_driver_by_telegram_id(self, telegram_id: str) -> Optional[Driver]:
        handle = telegram_id.lstrip("@")
        for driver in self._drivers.values():
            if driver.telegram_id == handle:
                return driver
        return None

    async def create_driver(self, dto: DriverCreateDTO) -> Driver:
        async with self._lock:
            self._ensure_telegram_id_free(dto.telegram_id)
            driver = Driver(id=self._allocate_id("driver"), **dto.model_dump())
            self._drivers[driver.id] = driver
            return driver

    async def list_drivers(self, approval_status: ApprovalStatus | None = None) -> list[Driver]:
        return [
            driver
            for _, driver in sorted(self._drivers.items())
            if approval_status is None or driver.approval_status == approval_status
        ]

    async def set_driver_online(self, driver_id: int, online: bool) -> Driver:
        return await self._update_driver(driver_id, is_online=online)

    async def set_driver_location(self, driver_id: int, latitude: float, longitude: float) -> Driver:
        return await self._update_driver(driver_id, latitude=latitude, longitude=longitude)

    async def set_driver_telegram_id(self, driver_id: int, telegram_id: str) -> Driver:
        handle = telegram_id.lstrip("@")
        async with self._lock:
            self._ensure_telegram_id_free(handle, exclude_id=driver_id)
            return self._apply_driver_update(driver_id, telegram_id=handle)

    async def set_driver_approval(
        self,
        driver_id: int,
        status: ApprovalStatus,
        approved_by: str,
    ) -> Driver:
        return await self._update_driver(
            driver_id,
            approval_status=status,
            approved_at=_utc_now() if status == ApprovalStatus.APPROVED else None,
            approved_by=approved_by,
        )

    def _ensure_telegram_id_free(self, telegram_id: str, exclude_id: int | None = None) -> None:
        for driver in self._drivers.values():
            if driver.telegram_id == telegram_id and driver.id != exclude_id:
                raise DuplicateEntityError(
                    f"Курьер с telegram_id={telegram_id} уже зарегистрирован",
                    {"telegram_id": telegram_id},
                )

    async def _update_driver(self, driver_id: int, **fields: object) -> Driver:
        async with self._lock:
            return self._apply_driver_update(driver_id, **fields)

    def _apply_driver_update(self, driver_id: int, **fields: object) -> Driver:
        """Меняет поля курьера; вызывается под _lock."""
        driver = self._drivers.get(driver_id)
        if driver is None:
            raise DriverNotFoundError(driver_id)
        updated = driver.model_copy(update={**fields, "updated_at": _utc_now()})
        self._drivers[driver_id] = updated
        return updated

    # =========================================================================
    # ОТЧЁТЫ
    # =========================================================================

    async def get_recent_assignments(self, limit: int = 10) -> list[AssignmentDetails]:
        return self._details(self._assignments.values(), limit)

    async def get_driver_assignments(self, driver_id: int, limit: int = 20) -> list[AssignmentDetails]:
        own = [item for item in self._assignments.values() if item.driver_id == driver_id]
        return self._details(own, limit)

    def _details(self, assignments, limit: int) -> list[AssignmentDetails]:
        recent = sorted(
            assignments,
            key=lambda item: (item.assigned_at, item.id),
            reverse=True,
        )[:limit]
        return [
            AssignmentDetails(
                **assignment.model_dump(),
                order=self._orders[assignment.order_id],
                driver=self._drivers[assignment.driver_id],
            )
            for assignment in recent
        ]

    async def get_stats(self) -> DispatchStats:
        assignments = list(self._assignments.values())
        waits = [
            (item.assigned_at - self._orders[item.order_id].created_at).total_seconds()
            for item in assignments
        ]
        attempted = [item for item in assignments if item.notification != NotificationOutcome.NOT_ATTEMPTED]
        sent = [item for item in attempted if item.notification == NotificationOutcome.SENT]

        return DispatchStats(
            active_orders=sum(1 for order in self._orders.values() if order.status == OrderStatus.PENDING),
            available_drivers=len(await self.get_eligible_drivers()),
            total_assignments=len(assignments),
            avg_assignment_seconds=round(sum(waits) / len(waits), 1) if waits else None,
            notification_success_rate=round(len(sent) * 100 / len(attempted), 1) if attempted else None,
        )
