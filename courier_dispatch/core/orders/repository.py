# courier_dispatch/core/orders/repository.py
"""
Репозиторий для работы с заказами в БД.
"""

from __future__ import annotations

from typing import Optional

import asyncpg

from courier_dispatch.common.constants import OrderStatus
from courier_dispatch.common.exceptions import DuplicateEntityError, OrderNotFoundError
from courier_dispatch.common.logger import log_error
from courier_dispatch.core.orders.models import Order, OrderCreateDTO
from courier_dispatch.infra.database import DatabaseManager, Executor


_ORDER_COLUMNS = """
    id, order_number, restaurant_name, pickup_latitude, pickup_longitude,
    delivery_address, delivery_latitude, delivery_longitude, amount, status, created_at
"""


class OrderRepository:
    """Репозиторий заказов."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        row = await self._db.fetchrow(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = $1",
            order_id,
        )
        return self._row_to_order(row) if row else None

    async def get_all(self) -> list[Order]:
        """Все заказы, новые первыми."""
        rows = await self._db.fetch(
            f"SELECT {_ORDER_COLUMNS} FROM orders ORDER BY created_at DESC, id DESC"
        )
        return [self._row_to_order(row) for row in rows]

    async def get_pending(self) -> list[Order]:
        """Заказы в статусе pending, старые первыми."""
        rows = await self._db.fetch(
            f"""
            SELECT {_ORDER_COLUMNS}
            FROM orders
            WHERE status = $1
            ORDER BY created_at ASC, id ASC
            """,
            OrderStatus.PENDING.value,
        )
        return [self._row_to_order(row) for row in rows]

    async def create(self, dto: OrderCreateDTO) -> Order:
        """
        Создаёт заказ в статусе pending.

        Raises:
            DuplicateEntityError: номер заказа уже занят
        """
        try:
            row = await self._db.fetchrow(
                f"""
                INSERT INTO orders (
                    order_number, restaurant_name, pickup_latitude, pickup_longitude,
                    delivery_address, delivery_latitude, delivery_longitude, amount, status
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {_ORDER_COLUMNS}
                """,
                dto.order_number,
                dto.restaurant_name,
                dto.pickup_latitude,
                dto.pickup_longitude,
                dto.delivery_address,
                dto.delivery_latitude,
                dto.delivery_longitude,
                dto.amount,
                OrderStatus.PENDING.value,
            )
        except asyncpg.UniqueViolationError:
            await log_error(f"Номер заказа {dto.order_number} уже существует")
            raise DuplicateEntityError(
                f"Номер заказа {dto.order_number} уже существует",
                {"order_number": dto.order_number},
            ) from None
        return self._row_to_order(row)

    async def update_status(self, order_id: int, status: OrderStatus) -> Order:
        """
        Записывает статус заказа. Проверка допустимости перехода выполняется выше.

        Raises:
            OrderNotFoundError: заказа нет
        """
        row = await self._db.fetchrow(
            f"""
            UPDATE orders SET status = $2
            WHERE id = $1
            RETURNING {_ORDER_COLUMNS}
            """,
            order_id,
            status.value,
        )
        if row is None:
            raise OrderNotFoundError(order_id)
        return self._row_to_order(row)

    async def mark_assigned(self, order_id: int, conn: Executor | None = None) -> Optional[Order]:
        """
        Переводит заказ pending -> assigned.

        Returns:
            Обновлённый заказ или None, если заказ не найден или уже не pending
        """
        row = await (conn or self._db).fetchrow(
            f"""
            UPDATE orders SET status = $2
            WHERE id = $1 AND status = $3
            RETURNING {_ORDER_COLUMNS}
            """,
            order_id,
            OrderStatus.ASSIGNED.value,
            OrderStatus.PENDING.value,
        )
        return self._row_to_order(row) if row else None

    @staticmethod
    def _row_to_order(row: asyncpg.Record) -> Order:
        """Преобразует строку БД в модель Order."""
        return Order(
            id=row["id"],
            order_number=row["order_number"],
            restaurant_name=row["restaurant_name"],
            pickup_latitude=float(row["pickup_latitude"]),
            pickup_longitude=float(row["pickup_longitude"]),
            delivery_address=row["delivery_address"],
            delivery_latitude=float(row["delivery_latitude"]),
            delivery_longitude=float(row["delivery_longitude"]),
            amount=row["amount"],
            status=OrderStatus(row["status"]),
            created_at=row["created_at"],
        )
