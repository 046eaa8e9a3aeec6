# courier_dispatch/core/assignments/repository.py
"""
Репозиторий назначений.
"""

from __future__ import annotations

from typing import Optional

import asyncpg

from courier_dispatch.common.constants import ACTIVE_ORDER_STATUSES, ApprovalStatus, NotificationOutcome, OrderStatus
from courier_dispatch.common.exceptions import AssignmentExistsError, AssignmentNotFoundError
from courier_dispatch.core.assignments.models import Assignment, AssignmentDetails, DispatchStats
from courier_dispatch.core.drivers.models import Driver
from courier_dispatch.core.orders.models import Order
from courier_dispatch.infra.database import DatabaseManager, Executor


_ASSIGNMENT_COLUMNS = "id, order_id, driver_id, distance, assigned_at, notification, declined_at"


class AssignmentRepository:
    """Репозиторий назначений."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def create(
        self,
        order_id: int,
        driver_id: int,
        distance: float,
        conn: Executor | None = None,
    ) -> Assignment:
        """
        Создаёт назначение.

        Args:
            conn: Соединение открытой транзакции (по умолчанию пул)

        Raises:
            AssignmentExistsError: для заказа уже есть назначение (UNIQUE order_id)
        """
        try:
            row = await (conn or self._db).fetchrow(
                f"""
                INSERT INTO assignments (order_id, driver_id, distance)
                VALUES ($1, $2, $3)
                RETURNING {_ASSIGNMENT_COLUMNS}
                """,
                order_id,
                driver_id,
                distance,
            )
        except asyncpg.UniqueViolationError:
            raise AssignmentExistsError(order_id) from None
        return self._row_to_assignment(row)

    async def get_by_order(self, order_id: int) -> Optional[Assignment]:
        row = await self._db.fetchrow(
            f"SELECT {_ASSIGNMENT_COLUMNS} FROM assignments WHERE order_id = $1",
            order_id,
        )
        return self._row_to_assignment(row) if row else None

    async def mark_declined(self, assignment_id: int) -> Assignment:
        """
        Raises:
            AssignmentNotFoundError: назначения нет
        """
        row = await self._db.fetchrow(
            f"""
            UPDATE assignments SET declined_at = COALESCE(declined_at, NOW())
            WHERE id = $1
            RETURNING {_ASSIGNMENT_COLUMNS}
            """,
            assignment_id,
        )
        if row is None:
            raise AssignmentNotFoundError(assignment_id, field="id")
        return self._row_to_assignment(row)

    async def has_active_for_driver(self, driver_id: int, exclude_order_id: int | None = None) -> bool:
        """Есть ли у курьера незавершённый заказ без отказа (кроме exclude_order_id)."""
        return await self._db.fetchval(
            """
            SELECT EXISTS (
                SELECT 1
                FROM assignments a
                JOIN orders o ON o.id = a.order_id
                WHERE a.driver_id = $1
                  AND a.declined_at IS NULL
                  AND o.status = ANY($2::text[])
                  AND ($3::int IS NULL OR a.order_id <> $3)
            )
            """,
            driver_id,
            [status.value for status in ACTIVE_ORDER_STATUSES],
            exclude_order_id,
        )

    async def set_notification(self, assignment_id: int, outcome: NotificationOutcome) -> Assignment:
        """
        Записывает результат уведомления курьера.

        Raises:
            AssignmentNotFoundError: назначения нет
        """
        row = await self._db.fetchrow(
            f"""
            UPDATE assignments SET notification = $2
            WHERE id = $1
            RETURNING {_ASSIGNMENT_COLUMNS}
            """,
            assignment_id,
            outcome.value,
        )
        if row is None:
            raise AssignmentNotFoundError(assignment_id, field="id")
        return self._row_to_assignment(row)

    async def get_recent(self, limit: int = 10, driver_id: int | None = None) -> list[AssignmentDetails]:
        """
        Последние назначения вместе с заказом и курьером, новые первыми.

        Args:
            limit: Максимум записей
            driver_id: Только назначения этого курьера
        """
        rows = await self._db.fetch(
            """
            SELECT a.id, a.order_id, a.driver_id, a.distance, a.assigned_at, a.notification, a.declined_at,
                   o.order_number, o.restaurant_name, o.pickup_latitude, o.pickup_longitude,
                   o.delivery_address, o.delivery_latitude, o.delivery_longitude,
                   o.amount, o.status, o.created_at AS order_created_at,
                   d.name, d.telegram_id, d.phone, d.email, d.latitude, d.longitude,
                   d.is_available, d.is_online, d.approval_status, d.approved_at, d.approved_by,
                   d.created_at AS driver_created_at, d.updated_at AS driver_updated_at
            FROM assignments a
            JOIN orders o ON o.id = a.order_id
            JOIN drivers d ON d.id = a.driver_id
            WHERE $2::int IS NULL OR a.driver_id = $2
            ORDER BY a.assigned_at DESC, a.id DESC
            LIMIT $1
            """,
            limit,
            driver_id,
        )
        return [self._row_to_details(row) for row in rows]

    async def get_stats(self) -> DispatchStats:
        """Сводные показатели для дашборда."""
        row = await self._db.fetchrow(
            """
            SELECT
                (SELECT COUNT(*) FROM orders WHERE status = $1) AS active_orders,
                (SELECT COUNT(*) FROM drivers
                  WHERE is_online AND is_available AND approval_status = $2) AS available_drivers,
                COUNT(a.id) AS total_assignments,
                AVG(EXTRACT(EPOCH FROM (a.assigned_at - o.created_at))) AS avg_seconds,
                COUNT(a.id) FILTER (WHERE a.notification = $3) AS sent,
                COUNT(a.id) FILTER (WHERE a.notification <> $4) AS attempted
            FROM assignments a
            JOIN orders o ON o.id = a.order_id
            """,
            OrderStatus.PENDING.value,
            ApprovalStatus.APPROVED.value,
            NotificationOutcome.SENT.value,
            NotificationOutcome.NOT_ATTEMPTED.value,
        )
        attempted = int(row["attempted"] or 0)
        avg_seconds = row["avg_seconds"]
        return DispatchStats(
            active_orders=int(row["active_orders"] or 0),
            available_drivers=int(row["available_drivers"] or 0),
            total_assignments=int(row["total_assignments"] or 0),
            avg_assignment_seconds=round(float(avg_seconds), 1) if avg_seconds is not None else None,
            notification_success_rate=round(int(row["sent"]) * 100 / attempted, 1) if attempted else None,
        )

    @staticmethod
    def _row_to_assignment(row: asyncpg.Record) -> Assignment:
        return Assignment(
            id=row["id"],
            order_id=row["order_id"],
            driver_id=row["driver_id"],
            distance=float(row["distance"]),
            assigned_at=row["assigned_at"],
            notification=NotificationOutcome(row["notification"]),
            declined_at=row["declined_at"],
        )

    @classmethod
    def _row_to_details(cls, row: asyncpg.Record) -> AssignmentDetails:
        base = cls._row_to_assignment(row)
        order = Order(
            id=row["order_id"],
            order_number=row["order_number"],
            restaurant_name=row["restaurant_name"],
            pickup_latitude=float(row["pickup_latitude"]),
            pickup_longitude=float(row["pickup_longitude"]),
            delivery_address=row["delivery_address"],
            delivery_latitude=float(row["delivery_latitude"]),
            delivery_longitude=float(row["delivery_longitude"]),
            amount=row["amount"],
            status=OrderStatus(row["status"]),
            created_at=row["order_created_at"],
        )
        driver = Driver(
            id=row["driver_id"],
            name=row["name"],
            telegram_id=row["telegram_id"],
            phone=row["phone"],
            email=row["email"],
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            is_available=row["is_available"],
            is_online=row["is_online"],
            approval_status=ApprovalStatus(row["approval_status"]),
            approved_at=row["approved_at"],
            approved_by=row["approved_by"],
            created_at=row["driver_created_at"],
            updated_at=row["driver_updated_at"],
        )
        return AssignmentDetails(**base.model_dump(), order=order, driver=driver)
