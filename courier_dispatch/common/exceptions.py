# courier_dispatch/common/exceptions.py
"""
Иерархия доменных исключений.

Слой хранения поднимает эти ошибки, движок назначения локализует их
в пределах одного заказа, а HTTP-слой переводит в коды ответа.
"""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Базовое исключение движка назначения."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class EntityNotFoundError(DispatchError):
    """Сущность не найдена."""

    status_code = 404


class OrderNotFoundError(EntityNotFoundError):
    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Заказ {order_id} не найден", {"order_id": order_id})


class DriverNotFoundError(EntityNotFoundError):
    def __init__(self, driver_id: int | str) -> None:
        self.driver_id = driver_id
        super().__init__(f"Курьер {driver_id} не найден", {"driver_id": driver_id})


class AssignmentNotFoundError(EntityNotFoundError):
    def __init__(self, key: int, field: str = "order_id") -> None:
        self.key = key
        super().__init__(f"Назначение ({field}={key}) не найдено", {field: key})


class AssignmentExistsError(DispatchError):
    """Для заказа уже существует назначение."""

    status_code = 409

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(
            f"Заказ {order_id} уже назначен", {"order_id": order_id}
        )


class InvalidTransitionError(DispatchError, ValueError):
    """Недопустимый переход статуса заказа."""

    status_code = 409

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            f"Недопустимый переход статуса: {current} -> {requested}",
            {"current": current, "requested": requested},
        )


class DriverMismatchError(DispatchError):
    """Действие выполняет курьер, которому заказ не назначен."""

    status_code = 403

    def __init__(self, order_id: int, telegram_id: str) -> None:
        self.order_id = order_id
        self.telegram_id = telegram_id
        super().__init__(
            f"Заказ {order_id} не назначен курьеру {telegram_id}",
            {"order_id": order_id, "telegram_id": telegram_id},
        )


class DuplicateEntityError(DispatchError):
    """Нарушено условие уникальности (номер заказа, telegram_id курьера)."""

    status_code = 409


class DriverUnavailableError(DispatchError):
    """Курьер перестал быть доступным, пока заказ ему назначали."""

    status_code = 409

    def __init__(self, driver_id: int) -> None:
        self.driver_id = driver_id
        super().__init__(f"Курьер {driver_id} уже занят или не в сети", {"driver_id": driver_id})
