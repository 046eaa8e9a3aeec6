# courier_dispatch/core/orders/models.py
"""
Модели данных заказов.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from courier_dispatch.common.constants import OrderStatus, TERMINAL_ORDER_STATUSES


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Order(BaseModel):
    """Модель заказа доставки."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="ID заказа")
    order_number: str = Field(..., description="Номер заказа")
    restaurant_name: str = Field(..., description="Ресторан")

    # Точка забора (ресторан)
    pickup_latitude: float = Field(..., ge=-90, le=90, description="Широта ресторана")
    pickup_longitude: float = Field(..., ge=-180, le=180, description="Долгота ресторана")

    # Точка доставки
    delivery_address: str = Field(..., description="Адрес доставки")
    delivery_latitude: float = Field(..., ge=-90, le=90, description="Широта доставки")
    delivery_longitude: float = Field(..., ge=-180, le=180, description="Долгота доставки")

    amount: Decimal = Field(..., ge=0, decimal_places=2, description="Сумма заказа")
    status: OrderStatus = Field(OrderStatus.PENDING, description="Статус заказа")
    created_at: datetime = Field(default_factory=_utc_now, description="Время создания")

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        """Доставлен или отменён."""
        return self.status in TERMINAL_ORDER_STATUSES


class OrderCreateDTO(BaseModel):
    """DTO для создания заказа."""

    order_number: str = Field(..., min_length=1)
    restaurant_name: str = Field(..., min_length=1)
    pickup_latitude: float = Field(..., ge=-90, le=90)
    pickup_longitude: float = Field(..., ge=-180, le=180)
    delivery_address: str = Field(..., min_length=1)
    delivery_latitude: float = Field(..., ge=-90, le=90)
    delivery_longitude: float = Field(..., ge=-180, le=180)
    amount: Decimal = Field(..., ge=0, decimal_places=2)


class OrderStatusDTO(BaseModel):
    """DTO запроса на смену статуса."""

    status: OrderStatus
