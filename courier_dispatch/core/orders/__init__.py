# courier_dispatch/core/orders/__init__.py
"""
Домен заказов.
Модели и репозиторий заказов.
"""

from courier_dispatch.core.orders.models import Order, OrderCreateDTO
from courier_dispatch.core.orders.repository import OrderRepository

__all__ = [
    "Order",
    "OrderCreateDTO",
    "OrderRepository",
]
