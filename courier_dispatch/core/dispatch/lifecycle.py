# courier_dispatch/core/dispatch/lifecycle.py
"""
Жизненный цикл заказа и изменения состояния курьеров.

Все внешние сигналы (HTTP API, кнопки бота, команды присутствия) меняют
заказы и курьеров только через LifecycleMutator, чтобы переходы статусов
проверялись в одном месте.
"""

from __future__ import annotations

from typing import Optional

from courier_dispatch.common.constants import (
    TERMINAL_ORDER_STATUSES,
    ApprovalStatus,
    OrderStatus,
    TypeMsg,
)
from courier_dispatch.common.exceptions import (
    AssignmentNotFoundError,
    DriverMismatchError,
    DriverNotFoundError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from courier_dispatch.common.logger import log_info, log_warning
from courier_dispatch.core.assignments.models import Assignment
from courier_dispatch.core.dispatch.events import EventPublisher, emit
from courier_dispatch.core.drivers.models import Driver, DriverCreateDTO
from courier_dispatch.core.notifications.service import NotificationChannel
from courier_dispatch.core.orders.models import Order, OrderCreateDTO
from courier_dispatch.infra.event_bus import EventTypes
from courier_dispatch.storage.base import DispatchStorage


class OrderStateMachine:
    """Допустимые переходы статусов заказа."""

    ALLOWED_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
        OrderStatus.PENDING: [OrderStatus.ASSIGNED, OrderStatus.CANCELLED],
        OrderStatus.ASSIGNED: [OrderStatus.PICKED_UP, OrderStatus.CANCELLED],
        OrderStatus.PICKED_UP: [OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED],
        OrderStatus.IN_TRANSIT: [OrderStatus.DELIVERED, OrderStatus.CANCELLED],
        OrderStatus.DELIVERED: [],
        OrderStatus.CANCELLED: [],
    }

    # Переход, который выполняет только координатор назначений
    ENGINE_ONLY: frozenset[tuple[OrderStatus, OrderStatus]] = frozenset(
        {(OrderStatus.PENDING, OrderStatus.ASSIGNED)}
    )

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            current = OrderStatus(current_status)
            new = OrderStatus(new_status)
        except ValueError:
            return False
        return new in OrderStateMachine.ALLOWED_TRANSITIONS.get(current, [])

    @classmethod
    def can_request(cls, current_status: str, new_status: str) -> bool:
        """Разрешён ли переход по внешнему запросу (не через координатор)."""
        if not cls.can_transition(current_status, new_status):
            return False
        return (OrderStatus(current_status), OrderStatus(new_status)) not in cls.ENGINE_ONLY


class LifecycleMutator:
    """
    Единая точка изменения заказов и курьеров вне координатора назначений.

    Args:
        storage: Хранилище
        event_bus: Шина событий для дашбордов (может быть None)
        notifier: Канал уведомлений для служебных сообщений курьерам
    """

    def __init__(
        self,
        storage: DispatchStorage,
        event_bus: EventPublisher | None = None,
        notifier: NotificationChannel | None = None,
    ) -> None:
        self._storage = storage
        self._event_bus = event_bus
        self._notifier = notifier

    # =========================================================================
    # ЗАКАЗЫ
    # =========================================================================

    async def create_order(self, dto: OrderCreateDTO) -> Order:
        """Создаёт заказ в статусе pending и сообщает о нём дашбордам."""
        order = await self._storage.create_order(dto)
        await log_info(f"Создан заказ {order.order_number} (id={order.id})", type_msg=TypeMsg.INFO)
        await emit(self._event_bus, EventTypes.NEW_ORDER, order)
        return order

    async def transition(self, order_id: int, new_status: OrderStatus) -> Order:
        """
        Переводит заказ в новый статус.

        При входе в delivered или cancelled назначенный курьер снова
        становится доступным.

        Raises:
            OrderNotFoundError: заказа нет
            InvalidTransitionError: переход недопустим, заказ не изменён
        """
        order = await self._storage.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        if not OrderStateMachine.can_request(order.status, new_status):
            await log_warning(
                f"Отклонён переход заказа {order.order_number}: {order.status.value} -> {new_status.value}"
            )
            raise InvalidTransitionError(order.status.value, new_status.value)

        updated = await self._storage.set_order_status(order_id, new_status)
        await log_info(
            f"Заказ {updated.order_number}: {order.status.value} -> {new_status.value}",
            type_msg=TypeMsg.INFO,
        )
        await emit(self._event_bus, EventTypes.ORDER_UPDATED, updated)

        if new_status in TERMINAL_ORDER_STATUSES:
            await self._release_driver(order_id)

        return updated

    async def _release_driver(self, order_id: int) -> Optional[Driver]:
        """
        Освобождает курьера завершённого заказа.

        Курьера, который отказался от заказа или уже везёт другой, не трогаем.
        """
        assignment = await self._storage.find_assignment_by_order(order_id)
        if assignment is None or assignment.is_declined:
            return None
        if await self._storage.has_active_assignment(assignment.driver_id, exclude_order_id=order_id):
            return None

        driver = await self._storage.set_driver_availability(assignment.driver_id, True)
        await log_info(f"Курьер {driver.name} снова свободен", type_msg=TypeMsg.INFO)
        await emit(self._event_bus, EventTypes.DRIVER_UPDATED, driver)
        return driver

    # =========================================================================
    # ОТВЕТЫ КУРЬЕРА НА НАЗНАЧЕНИЕ
    # =========================================================================

    async def _assignment_for_driver(self, order_id: int, telegram_id: str) -> tuple[Driver, Assignment]:
        driver = await self._storage.get_driver_by_telegram_id(telegram_id)
        if driver is None:
            raise DriverNotFoundError(telegram_id)

        assignment = await self._storage.find_assignment_by_order(order_id)
        if assignment is None:
            raise AssignmentNotFoundError(order_id)
        if assignment.driver_id != driver.id:
            raise DriverMismatchError(order_id, telegram_id)
        if assignment.is_declined:
            raise InvalidTransitionError("declined", "declined")
        return driver, assignment

    async def accept_assignment(self, order_id: int, telegram_id: str) -> Order:
        """
        Курьер принял заказ: заказ переходит в picked_up.

        Raises:
            DriverNotFoundError, AssignmentNotFoundError, DriverMismatchError,
            InvalidTransitionError: переход недопустим или курьер уже отказался
        """
        await self._assignment_for_driver(order_id, telegram_id)
        return await self.transition(order_id, OrderStatus.PICKED_UP)

    async def decline_assignment(self, order_id: int, telegram_id: str) -> Driver:
        """
        Курьер отказался от заказа: назначение помечается отказом, статус заказа
        не меняется. Курьер освобождается, если у него нет другого активного заказа.

        Raises:
            DriverNotFoundError, AssignmentNotFoundError, DriverMismatchError,
            InvalidTransitionError: заказ уже не в статусе assigned или отказ уже был
        """
        driver, assignment = await self._assignment_for_driver(order_id, telegram_id)

        order = await self._storage.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status != OrderStatus.ASSIGNED:
            raise InvalidTransitionError(order.status.value, "declined")

        await self._storage.mark_assignment_declined(assignment.id)
        await log_warning(f"Курьер {driver.name} отказался от заказа {order.order_number}")

        if await self._storage.has_active_assignment(driver.id, exclude_order_id=order_id):
            return driver

        freed = await self._storage.set_driver_availability(driver.id, True)
        await emit(self._event_bus, EventTypes.DRIVER_UPDATED, freed)
        return freed

    # =========================================================================
    # КУРЬЕРЫ
    # =========================================================================

    async def register_driver(self, dto: DriverCreateDTO) -> Driver:
        """Регистрирует курьера; до одобрения он не участвует в назначениях."""
        driver = await self._storage.create_driver(dto)
        await log_info(f"Зарегистрирован курьер {driver.name} (id={driver.id})", type_msg=TypeMsg.INFO)
        await emit(self._event_bus, EventTypes.DRIVER_REGISTERED, driver)
        return driver

    async def set_driver_presence(
        self,
        driver_id: int,
        is_online: bool | None = None,
        is_available: bool | None = None,
    ) -> Driver:
        """
        Меняет присутствие курьера (в сети / свободен).

        Raises:
            DriverNotFoundError: курьера нет
        """
        driver = await self._storage.get_driver(driver_id)
        if driver is None:
            raise DriverNotFoundError(driver_id)

        if is_online is not None:
            driver = await self._storage.set_driver_online(driver_id, is_online)
        if is_available is not None:
            driver = await self._storage.set_driver_availability(driver_id, is_available)

        await emit(self._event_bus, EventTypes.DRIVER_UPDATED, driver)
        return driver

    async def update_driver_location(self, driver_id: int, latitude: float, longitude: float) -> Driver:
        driver = await self._storage.set_driver_location(driver_id, latitude, longitude)
        await emit(self._event_bus, EventTypes.DRIVER_UPDATED, driver)
        return driver

    async def update_driver_telegram(self, driver_id: int, telegram_id: str) -> Driver:
        driver = await self._storage.set_driver_telegram_id(driver_id, telegram_id)
        await emit(self._event_bus, EventTypes.DRIVER_UPDATED, driver)
        return driver

    async def set_driver_approval(
        self,
        driver_id: int,
        approved: bool,
        approved_by: str,
        reason: str | None = None,
    ) -> Driver:
        """
        Решение администратора по курьеру. Курьер получает сообщение о решении.

        Raises:
            DriverNotFoundError: курьера нет
        """
        status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
        driver = await self._storage.set_driver_approval(driver_id, status, approved_by)
        await log_info(f"Курьер {driver.name}: статус проверки {status.value}", type_msg=TypeMsg.INFO)

        if self._notifier is not None:
            if approved:
                text = "🎉 Ваша заявка одобрена. Теперь вы можете получать заказы на доставку."
            else:
                text = f"❌ Ваша заявка отклонена. Причина: {reason or 'обратитесь в поддержку.'}"
            await self._notifier.send_status_update(driver, text)

        await emit(self._event_bus, EventTypes.DRIVER_UPDATED, driver)
        return driver
