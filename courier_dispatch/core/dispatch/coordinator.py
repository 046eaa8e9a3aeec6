# courier_dispatch/core/dispatch/coordinator.py
"""
Координатор назначения заказа на курьера.
"""

from __future__ import annotations

from courier_dispatch.common.constants import OrderStatus, TypeMsg
from courier_dispatch.common.exceptions import (
    AssignmentExistsError,
    DriverUnavailableError,
    InvalidTransitionError,
)
from courier_dispatch.common.logger import log_error, log_info, log_warning
from courier_dispatch.core.assignments.models import Assignment, AssignmentDetails
from courier_dispatch.core.dispatch.events import EventPublisher, emit
from courier_dispatch.core.drivers.models import Driver
from courier_dispatch.core.matching.service import DriverMatcher
from courier_dispatch.core.notifications.service import NotificationChannel
from courier_dispatch.core.orders.models import Order
from courier_dispatch.infra.event_bus import EventTypes
from courier_dispatch.storage.base import DispatchStorage


class AssignmentCoordinator:
    """
    Назначает один заказ ближайшему доступному курьеру.

    Порядок шагов:
    1. проверка, что назначения ещё нет
    2. выбор курьера из доступного пула
    3. одна атомарная запись: назначение, заказ -> assigned, курьер -> занят
    4. уведомление курьера (best-effort) и запись результата

    Сбой уведомления не откатывает назначение.
    """

    def __init__(
        self,
        storage: DispatchStorage,
        notifier: NotificationChannel,
        event_bus: EventPublisher | None = None,
        matcher: DriverMatcher | None = None,
    ) -> None:
        self._storage = storage
        self._notifier = notifier
        self._event_bus = event_bus
        self._matcher = matcher or DriverMatcher()
        # Заказы, назначение которых выполняется прямо сейчас
        self._in_flight: set[int] = set()

    async def assign(self, order: Order) -> bool:
        """
        Пытается назначить заказ.

        Никогда не бросает исключений: ошибки хранилища логируются
        и дают False.

        Returns:
            True, если курьер выбран и назначение записано
        """
        if order.id in self._in_flight:
            await log_warning(f"Заказ {order.order_number} уже назначается, повторный вызов пропущен")
            return False

        self._in_flight.add(order.id)
        try:
            return await self._assign(order)
        except AssignmentExistsError:
            await log_warning(f"Заказ {order.order_number} уже назначен")
            return False
        except Exception as e:
            await log_error(
                f"Ошибка назначения заказа {order.order_number}: {e}",
                extra={"order_id": order.id},
                exc_info=True,
            )
            return False
        finally:
            self._in_flight.discard(order.id)

    async def _assign(self, order: Order) -> bool:
        existing = await self._storage.find_assignment_by_order(order.id)
        if existing is not None:
            await log_info(
                f"Заказ {order.order_number} уже назначен курьеру {existing.driver_id}",
                type_msg=TypeMsg.DEBUG,
            )
            return False

        current = await self._storage.get_order(order.id)
        if current is None or current.status != OrderStatus.PENDING:
            await log_info(
                f"Заказ {order.order_number} не ожидает назначения "
                f"(статус: {current.status.value if current else 'удалён'})",
                type_msg=TypeMsg.DEBUG,
            )
            return False

        pool = await self._storage.get_eligible_drivers()
        match = self._matcher.select_driver(current, pool)
        if match is None:
            await log_info(f"Нет доступных курьеров для заказа {current.order_number}", type_msg=TypeMsg.INFO)
            return False

        try:
            assignment, assigned_order, busy_driver = await self._storage.commit_assignment(
                current.id, match.driver.id, match.distance_km
            )
        except DriverUnavailableError:
            await log_warning(
                f"Курьер {match.driver.name} стал недоступен до записи назначения "
                f"заказа {current.order_number}"
            )
            return False
        except InvalidTransitionError:
            await log_warning(f"Заказ {current.order_number} изменился до записи назначения")
            return False

        await log_info(
            f"Заказ {assigned_order.order_number} назначен курьеру {busy_driver.name} "
            f"({match.distance_km} км)",
            type_msg=TypeMsg.INFO,
            extra={"order_id": assigned_order.id, "driver_id": busy_driver.id},
        )

        assignment = await self._notify(busy_driver, assigned_order, assignment)

        await emit(
            self._event_bus,
            EventTypes.NEW_ASSIGNMENT,
            AssignmentDetails(**assignment.model_dump(), order=assigned_order, driver=busy_driver),
        )
        await emit(self._event_bus, EventTypes.ORDER_UPDATED, assigned_order)
        await emit(self._event_bus, EventTypes.DRIVER_UPDATED, busy_driver)
        return True

    async def _notify(self, driver: Driver, order: Order, assignment: Assignment) -> Assignment:
        """Уведомляет курьера и записывает результат; назначение остаётся в силе при любом исходе."""
        try:
            sent = await self._notifier.notify_assignment(driver, order, assignment)
        except Exception as e:
            await log_error(f"Канал уведомлений {self._notifier.name} упал: {e}", exc_info=True)
            sent = False

        if not sent:
            await log_warning(f"Курьер {driver.name} не получил уведомление о заказе {order.order_number}")

        try:
            return await self._storage.record_notification_outcome(assignment.id, bool(sent))
        except Exception as e:
            await log_error(f"Не удалось записать результат уведомления назначения {assignment.id}: {e}")
            return assignment
