# courier_dispatch/infra/database.py
"""
Пул соединений PostgreSQL для хранилища движка назначения.

Репозитории читают через fetch/fetchrow/fetchval (с повтором при обрыве
соединения), а атомарные операции, такие как фиксация назначения, получают
соединение открытой транзакции из transaction().
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import wraps
from typing import Any, AsyncGenerator, Awaitable, Callable, TypeVar, Union

import asyncpg
from asyncpg import Connection, Pool, Record

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_error, log_info, log_warning

T = TypeVar("T")

# Ошибки, после которых запрос имеет смысл повторить на другом соединении пула
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    ConnectionRefusedError,
    OSError,
)

# Ключ advisory lock, под которым процессы по очереди применяют схему
SCHEMA_LOCK_KEY = 424242


def retry_on_connection_error(
    max_attempts: int = 3,
    delay: float = 1.0,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Повторяет корутину при обрыве соединения; пауза растёт линейно (delay * попытка).
    Ошибки SQL (нарушение ограничений и т.п.) пробрасываются сразу.
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except _TRANSIENT_ERRORS as e:
                    if attempt >= max_attempts:
                        await log_error(f"PostgreSQL недоступен после {max_attempts} попыток: {e}")
                        raise
                    await log_warning(f"Обрыв соединения с PostgreSQL ({attempt}/{max_attempts}): {e}")
                    await asyncio.sleep(delay * attempt)
                    attempt += 1

        return wrapper

    return decorator


class DatabaseManager:
    """
    Единственный на процесс пул соединений asyncpg.
    До connect() любые запросы завершаются RuntimeError.
    """

    _instance: DatabaseManager | None = None

    def __new__(cls) -> DatabaseManager:
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._pool = None
            cls._instance = instance
        return cls._instance

    @property
    def pool(self) -> Pool:
        if self._pool is None:
            raise RuntimeError("PostgreSQL не подключён: сначала вызовите connect()")
        return self._pool

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @retry_on_connection_error(max_attempts=3, delay=1.0)
    async def connect(
        self,
        dsn: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: int = 60,
    ) -> None:
        """Создаёт пул; повторный вызов при открытом пуле ничего не делает."""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
        )

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        await log_info("Пул PostgreSQL закрыт", type_msg=TypeMsg.INFO)

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Connection, None]:
        """
        Соединение с открытой транзакцией.
        Выход по исключению откатывает всё, что было записано через это соединение.

        Example:
            async with db.transaction() as conn:
                await conn.fetchrow("UPDATE orders ...")
        """
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                yield connection

    # =========================================================================
    # ЗАПРОСЫ ВНЕ ТРАНЗАКЦИИ
    # =========================================================================

    @retry_on_connection_error()
    async def fetch(self, query: str, *args: Any) -> list[Record]:
        async with self.pool.acquire() as conn:
            return await conn.fetch(query, *args)

    @retry_on_connection_error()
    async def fetchrow(self, query: str, *args: Any) -> Record | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    @retry_on_connection_error()
    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True, если пул открыт и база отвечает на SELECT 1."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire() as conn:
                return await conn.fetchval("SELECT 1") == 1
        except Exception as e:
            await log_warning(f"PostgreSQL не отвечает: {e}")
            return False


# Пул или соединение транзакции: у обоих есть fetchrow/fetchval
Executor = Union[Connection, DatabaseManager]


def get_db() -> DatabaseManager:
    return DatabaseManager()


async def init_db() -> DatabaseManager:
    """Подключается к PostgreSQL по настройкам и применяет migrations/init.sql."""
    from courier_dispatch.config import settings

    section = settings.database
    db = get_db()
    await db.connect(
        dsn=section.dsn,
        min_size=section.DB_MIN_POOL_SIZE,
        max_size=section.DB_MAX_POOL_SIZE,
        command_timeout=section.DB_COMMAND_TIMEOUT,
    )
    await log_info(
        f"PostgreSQL подключён: {section.DB_HOST}:{section.DB_PORT}/{section.DB_NAME}",
        type_msg=TypeMsg.INFO,
    )
    await _apply_schema(db)
    return db


async def _apply_schema(db: DatabaseManager) -> None:
    from courier_dispatch.config.loader import get_project_root

    schema_path = get_project_root() / "migrations" / "init.sql"
    if not schema_path.exists():
        await log_error(f"Файл схемы БД не найден: {schema_path}")
        return

    schema_sql = schema_path.read_text(encoding="utf-8")
    try:
        # api, bot и worker могут стартовать одновременно
        async with db.transaction() as conn:
            await conn.execute("SELECT pg_advisory_xact_lock($1)", SCHEMA_LOCK_KEY)
            await conn.execute(schema_sql)
    except asyncpg.exceptions.DuplicateObjectError as e:
        await log_warning(f"Схема уже применена другим процессом: {e}")
        return

    await log_info("Схема БД применена", type_msg=TypeMsg.INFO)


async def close_db() -> None:
    await get_db().disconnect()
