# create_db.py
"""
Создаёт базу данных из настроек, если её ещё нет.
Схема применяется при старте приложения (migrations/init.sql).
"""

import asyncio

import asyncpg

from courier_dispatch.config import settings


async def create_db() -> None:
    db_name = settings.database.DB_NAME
    try:
        # Подключаемся к служебной БД postgres
        sys_conn = await asyncpg.connect(
            user=settings.database.DB_USER,
            password=settings.database.DB_PASSWORD,
            host=settings.database.DB_HOST,
            port=settings.database.DB_PORT,
            database="postgres",
        )
    except (OSError, asyncpg.PostgresError) as e:
        print(f"Не удалось подключиться к PostgreSQL: {e}")
        return

    try:
        exists = await sys_conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name)
        if not exists:
            print(f"Создание базы данных {db_name}...")
            await sys_conn.execute(f'CREATE DATABASE "{db_name}"')
            print("База данных создана.")
        else:
            print(f"База данных {db_name} уже существует.")
    finally:
        await sys_conn.close()


if __name__ == "__main__":
    asyncio.run(create_db())
