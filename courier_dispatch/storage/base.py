# courier_dispatch/storage/base.py
"""
Контракт хранилища движка назначения.

Движок работает только через этот интерфейс. Реализации:
- PostgresDispatchStorage — PostgreSQL через asyncpg
- InMemoryDispatchStorage — память процесса (тесты, демо без БД)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from courier_dispatch.common.constants import ApprovalStatus, NotificationOutcome, OrderStatus
from courier_dispatch.core.assignments.models import Assignment, AssignmentDetails, DispatchStats
from courier_dispatch.core.drivers.models import Driver, DriverCreateDTO
from courier_dispatch.core.orders.models import Order, OrderCreateDTO


def outcome_from_flag(sent: bool) -> NotificationOutcome:
    """Булев результат уведомления в NotificationOutcome."""
    return NotificationOutcome.SENT if sent else NotificationOutcome.FAILED


class DispatchStorage(ABC):
    """Хранилище заказов, курьеров и назначений."""

    # =========================================================================
    # ОПЕРАЦИИ ДВИЖКА НАЗНАЧЕНИЯ
    # =========================================================================

    @abstractmethod
    async def get_eligible_drivers(self) -> list[Driver]:
        """Курьеры в сети, свободные и одобренные; порядок стабилен (по id)."""

    @abstractmethod
    async def commit_assignment(
        self,
        order_id: int,
        driver_id: int,
        distance: float,
    ) -> tuple[Assignment, Order, Driver]:
        """
        Атомарно фиксирует решение о назначении: создаёт назначение,
        переводит заказ pending -> assigned и помечает курьера занятым.
        При любой ошибке ничего не меняется.

        Returns:
            Назначение, обновлённый заказ и обновлённый курьер

        Raises:
            AssignmentExistsError: назначение для заказа уже существует
            OrderNotFoundError, DriverNotFoundError
            InvalidTransitionError: заказ уже не pending
            DriverUnavailableError: курьер уже занят, не в сети или не одобрен
        """

    @abstractmethod
    async def find_assignment_by_order(self, order_id: int) -> Optional[Assignment]:
        """Назначение заказа или None."""

    @abstractmethod
    async def set_order_status(self, order_id: int, status: OrderStatus) -> Order:
        """
        Записывает статус заказа без проверки перехода.

        Raises:
            OrderNotFoundError: заказа нет
        """

    @abstractmethod
    async def set_driver_availability(self, driver_id: int, available: bool) -> Driver:
        """
        Raises:
            DriverNotFoundError: курьера нет
        """

    @abstractmethod
    async def mark_assignment_declined(self, assignment_id: int) -> Assignment:
        """
        Отмечает отказ курьера от назначения.

        Raises:
            AssignmentNotFoundError: назначения нет
        """

    @abstractmethod
    async def has_active_assignment(self, driver_id: int, exclude_order_id: int | None = None) -> bool:
        """
        Есть ли у курьера незавершённый заказ, от которого он не отказался.

        Args:
            driver_id: ID курьера
            exclude_order_id: Заказ, который не учитывается
        """

    @abstractmethod
    async def record_notification_outcome(self, assignment_id: int, sent: bool) -> Assignment:
        """
        Raises:
            AssignmentNotFoundError: назначения нет
        """

    @abstractmethod
    async def get_pending_orders(self) -> list[Order]:
        """Заказы в статусе pending, старые первыми."""

    # =========================================================================
    # ЗАКАЗЫ
    # =========================================================================

    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[Order]:
        ...

    @abstractmethod
    async def create_order(self, dto: OrderCreateDTO) -> Order:
        ...

    @abstractmethod
    async def list_orders(self) -> list[Order]:
        """Все заказы, новые первыми."""

    # =========================================================================
    # КУРЬЕРЫ
    # =========================================================================

    @abstractmethod
    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        ...

    @abstractmethod
    async def get_driver_by_telegram_id(self, telegram_id: str) -> Optional[Driver]:
        ...

    @abstractmethod
    async def create_driver(self, dto: DriverCreateDTO) -> Driver:
        ...

    @abstractmethod
    async def list_drivers(self, approval_status: ApprovalStatus | None = None) -> list[Driver]:
        """Все курьеры (или только с указанным статусом проверки), по id."""

    @abstractmethod
    async def set_driver_online(self, driver_id: int, online: bool) -> Driver:
        ...

    @abstractmethod
    async def set_driver_location(self, driver_id: int, latitude: float, longitude: float) -> Driver:
        ...

    @abstractmethod
    async def set_driver_telegram_id(self, driver_id: int, telegram_id: str) -> Driver:
        ...

    @abstractmethod
    async def set_driver_approval(
        self,
        driver_id: int,
        status: ApprovalStatus,
        approved_by: str,
    ) -> Driver:
        ...

    # =========================================================================
    # ОТЧЁТЫ
    # =========================================================================

    @abstractmethod
    async def get_recent_assignments(self, limit: int = 10) -> list[AssignmentDetails]:
        ...

    @abstractmethod
    async def get_stats(self) -> DispatchStats:
        ...

    @abstractmethod
    async def get_driver_assignments(self, driver_id: int, limit: int = 20) -> list[AssignmentDetails]:
        """Последние назначения курьера, новые первыми."""

    async def close(self) -> None:
        """Освобождает ресурсы хранилища."""
