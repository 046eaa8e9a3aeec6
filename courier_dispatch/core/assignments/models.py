# courier_dispatch/core/assignments/models.py
"""
Модели назначений заказов на курьеров.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from courier_dispatch.common.constants import ACTIVE_ORDER_STATUSES, NotificationOutcome, OrderStatus
from courier_dispatch.core.drivers.models import Driver
from courier_dispatch.core.orders.models import Order


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Assignment(BaseModel):
    """Назначение: связь заказа с выбранным курьером. Не более одного на заказ."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="ID назначения")
    order_id: int = Field(..., description="ID заказа")
    driver_id: int = Field(..., description="ID курьера")
    distance: float = Field(..., ge=0, description="Расстояние курьер-ресторан, км")
    assigned_at: datetime = Field(default_factory=_utc_now, description="Время назначения")
    notification: NotificationOutcome = Field(
        NotificationOutcome.NOT_ATTEMPTED, description="Результат уведомления курьера"
    )
    declined_at: Optional[datetime] = Field(None, description="Когда курьер отказался от заказа")

    @property
    def telegram_sent(self) -> bool:
        return self.notification == NotificationOutcome.SENT

    @property
    def is_declined(self) -> bool:
        return self.declined_at is not None


class AssignmentDetails(Assignment):
    """Назначение вместе с заказом и курьером (для дашборда)."""

    order: Order
    driver: Driver


class DispatchStats(BaseModel):
    """Сводка для дашборда."""

    active_orders: int = Field(0, description="Заказов в ожидании назначения")
    available_drivers: int = Field(0, description="Курьеров, готовых принять заказ")
    total_assignments: int = Field(0, description="Всего назначений")
    avg_assignment_seconds: Optional[float] = Field(None, description="Среднее время от создания до назначения")
    notification_success_rate: Optional[float] = Field(None, description="Доля доставленных уведомлений, %")


class DriverOrdersSummary(BaseModel):
    """Сводка по последним заказам курьера."""

    completed_orders: int = 0
    active_orders: int = 0
    total_earnings: Decimal = Field(Decimal("0.00"), description="Сумма доставленных заказов")

    @classmethod
    def from_assignments(cls, assignments: list[AssignmentDetails]) -> DriverOrdersSummary:
        delivered = [item for item in assignments if item.order.status == OrderStatus.DELIVERED]
        active = [
            item for item in assignments
            if item.order.status in ACTIVE_ORDER_STATUSES and not item.is_declined
        ]
        earnings = sum((item.order.amount for item in delivered), Decimal("0"))
        return cls(
            completed_orders=len(delivered),
            active_orders=len(active),
            total_earnings=earnings.quantize(Decimal("0.01")),
        )


class DriverOrders(BaseModel):
    """Кабинет курьера: профиль, последние назначения и сводка."""

    driver: Driver
    assignments: list[AssignmentDetails]
    stats: DriverOrdersSummary
