# courier_dispatch/core/drivers/repository.py
"""
Репозиторий для работы с курьерами в БД.
"""

from __future__ import annotations

from typing import Any, Optional

import asyncpg

from courier_dispatch.common.constants import ApprovalStatus
from courier_dispatch.common.exceptions import DriverNotFoundError, DuplicateEntityError
from courier_dispatch.common.logger import log_error
from courier_dispatch.core.drivers.models import Driver, DriverCreateDTO
from courier_dispatch.infra.database import DatabaseManager, Executor


_DRIVER_COLUMNS = """
    id, name, telegram_id, phone, email, latitude, longitude,
    is_available, is_online, approval_status, approved_at, approved_by,
    created_at, updated_at
"""

# Колонки, которые разрешено менять через update_fields
_MUTABLE_COLUMNS = frozenset({
    "is_available", "is_online", "latitude", "longitude",
    "approval_status", "approved_at", "approved_by", "telegram_id",
})


class DriverRepository:
    """Репозиторий курьеров."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def get_by_id(self, driver_id: int) -> Optional[Driver]:
        row = await self._db.fetchrow(
            f"SELECT {_DRIVER_COLUMNS} FROM drivers WHERE id = $1",
            driver_id,
        )
        return self._row_to_driver(row) if row else None

    async def get_by_telegram_id(self, telegram_id: str) -> Optional[Driver]:
        """
        Ищет курьера по Telegram chat id или username (без @).

        Args:
            telegram_id: Идентификатор, пришедший из бота
        """
        row = await self._db.fetchrow(
            f"SELECT {_DRIVER_COLUMNS} FROM drivers WHERE telegram_id = $1",
            telegram_id.lstrip("@"),
        )
        return self._row_to_driver(row) if row else None

    async def get_all(self) -> list[Driver]:
        rows = await self._db.fetch(f"SELECT {_DRIVER_COLUMNS} FROM drivers ORDER BY id")
        return [self._row_to_driver(row) for row in rows]

    async def get_by_approval(self, status: ApprovalStatus) -> list[Driver]:
        rows = await self._db.fetch(
            f"SELECT {_DRIVER_COLUMNS} FROM drivers WHERE approval_status = $1 ORDER BY id",
            status.value,
        )
        return [self._row_to_driver(row) for row in rows]

    async def get_eligible(self) -> list[Driver]:
        """
        Курьеры, которым можно назначить заказ: в сети, свободны, одобрены.
        Порядок стабилен (по id), на нём основан выбор при равных расстояниях.
        """
        rows = await self._db.fetch(
            f"""
            SELECT {_DRIVER_COLUMNS}
            FROM drivers
            WHERE is_online = TRUE
              AND is_available = TRUE
              AND approval_status = $1
            ORDER BY id
            """,
            ApprovalStatus.APPROVED.value,
        )
        return [self._row_to_driver(row) for row in rows]

    async def create(self, dto: DriverCreateDTO) -> Driver:
        """
        Регистрирует курьера (статус проверки pending, не в сети).

        Raises:
            DuplicateEntityError: курьер с таким telegram_id уже существует
        """
        try:
            row = await self._db.fetchrow(
                f"""
                INSERT INTO drivers (name, telegram_id, phone, email, latitude, longitude)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING {_DRIVER_COLUMNS}
                """,
                dto.name,
                dto.telegram_id,
                dto.phone,
                dto.email,
                dto.latitude,
                dto.longitude,
            )
        except asyncpg.UniqueViolationError:
            await log_error(f"Курьер с telegram_id={dto.telegram_id} уже зарегистрирован")
            raise DuplicateEntityError(
                f"Курьер с telegram_id={dto.telegram_id} уже зарегистрирован",
                {"telegram_id": dto.telegram_id},
            ) from None
        return self._row_to_driver(row)

    async def update_fields(self, driver_id: int, **fields: Any) -> Driver:
        """
        Обновляет перечисленные колонки курьера и updated_at.

        Raises:
            DriverNotFoundError: курьера нет
        """
        unknown = set(fields) - _MUTABLE_COLUMNS
        if unknown or not fields:
            raise ValueError(f"Недопустимые поля для обновления: {sorted(unknown) or 'пусто'}")

        set_clauses: list[str] = []
        values: list[Any] = []
        for index, (column, value) in enumerate(fields.items(), start=2):
            set_clauses.append(f"{column} = ${index}")
            values.append(value.value if isinstance(value, ApprovalStatus) else value)

        try:
            row = await self._db.fetchrow(
                f"""
                UPDATE drivers
                SET {", ".join(set_clauses)}, updated_at = NOW()
                WHERE id = $1
                RETURNING {_DRIVER_COLUMNS}
                """,
                driver_id,
                *values,
            )
        except asyncpg.UniqueViolationError:
            raise DuplicateEntityError(
                f"Курьер с telegram_id={fields.get('telegram_id')} уже зарегистрирован",
                {"telegram_id": fields.get("telegram_id")},
            ) from None
        if row is None:
            raise DriverNotFoundError(driver_id)
        return self._row_to_driver(row)

    async def reserve(self, driver_id: int, conn: Executor | None = None) -> Optional[Driver]:
        """
        Помечает курьера занятым, только если он всё ещё доступен для назначения.

        Returns:
            Обновлённый курьер или None, если курьера нет или он уже недоступен
        """
        row = await (conn or self._db).fetchrow(
            f"""
            UPDATE drivers SET is_available = FALSE, updated_at = NOW()
            WHERE id = $1
              AND is_available = TRUE
              AND is_online = TRUE
              AND approval_status = $2
            RETURNING {_DRIVER_COLUMNS}
            """,
            driver_id,
            ApprovalStatus.APPROVED.value,
        )
        return self._row_to_driver(row) if row else None

    @staticmethod
    def _row_to_driver(row: asyncpg.Record) -> Driver:
        """Преобразует строку БД в модель Driver."""
        return Driver(
            id=row["id"],
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
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
