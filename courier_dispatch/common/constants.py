# courier_dispatch/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class OrderStatus(str, Enum):
    """Статусы заказа доставки."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Терминальные статусы: после них переходы невозможны, курьер освобождается
TERMINAL_ORDER_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

# Заказ назначен и ещё не завершён: курьер занят им
ACTIVE_ORDER_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.ASSIGNED, OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT}
)


class ApprovalStatus(str, Enum):
    """Статусы проверки курьера администратором."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationOutcome(str, Enum):
    """Результат отправки уведомления о назначении."""
    NOT_ATTEMPTED = "not_attempted"
    SENT = "sent"
    FAILED = "failed"


# Контакт демо-курьера: уведомления ему не отправляются
DEMO_TELEGRAM_ID = "DEMO_USER"

# Префиксы callback_data для inline-кнопок уведомления
CALLBACK_ACCEPT_PREFIX = "accept_"
CALLBACK_DECLINE_PREFIX = "decline_"
