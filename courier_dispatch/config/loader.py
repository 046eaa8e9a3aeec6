# courier_dispatch/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Секретные данные и адреса инфраструктуры переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Значения токена, при которых уведомления уходят в заглушку
MOCK_BOT_TOKENS: frozenset[str] = frozenset({"", "mock_token"})


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить через CONFIG_PATH)."""
    override = os.getenv("CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "courier_dispatch"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    COMPONENT_MODE: str = "all"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/dispatch.log"
    LOG_MAX_BYTES: int = 10485760

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только colored и json."""
        if v not in ("colored", "json"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class TelegramSettings(BaseModel):
    """Настройки Telegram API."""
    BOT_TOKEN: str = ""
    PARSE_MODE: str = "Markdown"
    RESPONSE_TIMEOUT_MINUTES: int = 2

    @field_validator("BOT_TOKEN", mode="before")
    @classmethod
    def get_from_env(cls, v: str | None) -> str:
        """Получает токен из переменных окружения, если не задан."""
        if not v:
            return os.getenv("BOT_TOKEN", "")
        return v

    @property
    def is_mock(self) -> bool:
        """True, если живой канал уведомлений недоступен."""
        return self.BOT_TOKEN.strip() in MOCK_BOT_TOKENS


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_ENABLED: bool = True
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "courier_dispatch"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 60

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str | None) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ."""
    RABBITMQ_ENABLED: bool = False
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "dispatch.events"
    RABBITMQ_PREFETCH_COUNT: int = 10

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class ApiSettings(BaseModel):
    """Настройки HTTP API."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 5000
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


class DispatchSettings(BaseModel):
    """Настройки движка назначения."""
    ASSIGNMENT_PACING_SECONDS: float = Field(default=0.1, ge=0)
    DISTANCE_KM_PER_DEGREE: float = Field(default=111.0, gt=0)
    DISTANCE_PRECISION: int = Field(default=2, ge=0)
    MAX_ORDERS_PER_RUN: int = Field(default=0, ge=0)
    PERIODIC_INTERVAL_SECONDS: float = Field(default=30.0, gt=0)
    TRIGGER_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    STATS_INTERVAL_SECONDS: float = Field(default=5.0, gt=0)
    RECENT_ASSIGNMENTS_LIMIT: int = Field(default=10, gt=0)
    DEMO_MODE: bool = False
    DEMO_ORDER_PROBABILITY: float = Field(default=0.3, ge=0, le=1)
    # Процесс, который запускает периодический проход: api (также режим all) или worker
    PERIODIC_OWNER: Literal["api", "worker"] = "api"


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты переопределяются из переменных окружения.
        """
        config_data = load_config_json()

        # Ключи _comment_* служат документацией внутри файла
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "courier_dispatch"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", True),
                ENVIRONMENT=data.get("ENVIRONMENT", "development"),
                COMPONENT_MODE=os.getenv("COMPONENT_MODE", data.get("COMPONENT_MODE", "all")),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", data.get("LOG_LEVEL", "DEBUG")),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/dispatch.log"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
            ),
            telegram=TelegramSettings(
                BOT_TOKEN=os.getenv("BOT_TOKEN", data.get("BOT_TOKEN", "")),
                PARSE_MODE=data.get("PARSE_MODE", "Markdown"),
                RESPONSE_TIMEOUT_MINUTES=data.get("RESPONSE_TIMEOUT_MINUTES", 2),
            ),
            database=DatabaseSettings(
                DB_ENABLED=_env_bool("DB_ENABLED", data.get("DB_ENABLED", True)),
                DB_HOST=os.getenv("DB_HOST", data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", data.get("DB_NAME", "courier_dispatch")),
                DB_USER=os.getenv("DB_USER", data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 2),
                DB_MAX_POOL_SIZE=data.get("DB_MAX_POOL_SIZE", 10),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 60),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_ENABLED=_env_bool("RABBITMQ_ENABLED", data.get("RABBITMQ_ENABLED", False)),
                RABBITMQ_HOST=os.getenv("RABBITMQ_HOST", data.get("RABBITMQ_HOST", "localhost")),
                RABBITMQ_PORT=int(os.getenv("RABBITMQ_PORT", data.get("RABBITMQ_PORT", 5672))),
                RABBITMQ_USER=os.getenv("RABBITMQ_USER", data.get("RABBITMQ_USER", "guest")),
                RABBITMQ_PASSWORD=os.getenv("RABBITMQ_PASSWORD", data.get("RABBITMQ_PASSWORD", "guest")),
                RABBITMQ_VHOST=data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_EXCHANGE=data.get("RABBITMQ_EXCHANGE", "dispatch.events"),
                RABBITMQ_PREFETCH_COUNT=data.get("RABBITMQ_PREFETCH_COUNT", 10),
            ),
            api=ApiSettings(
                API_HOST=os.getenv("API_HOST", data.get("API_HOST", "0.0.0.0")),
                API_PORT=int(os.getenv("API_PORT", data.get("API_PORT", 5000))),
                CORS_ORIGINS=data.get("CORS_ORIGINS", ["*"]),
            ),
            dispatch=DispatchSettings(
                ASSIGNMENT_PACING_SECONDS=data.get("ASSIGNMENT_PACING_SECONDS", 0.1),
                DISTANCE_KM_PER_DEGREE=data.get("DISTANCE_KM_PER_DEGREE", 111.0),
                DISTANCE_PRECISION=data.get("DISTANCE_PRECISION", 2),
                MAX_ORDERS_PER_RUN=data.get("MAX_ORDERS_PER_RUN", 0),
                PERIODIC_INTERVAL_SECONDS=data.get("PERIODIC_INTERVAL_SECONDS", 30.0),
                TRIGGER_DELAY_SECONDS=data.get("TRIGGER_DELAY_SECONDS", 1.0),
                STATS_INTERVAL_SECONDS=data.get("STATS_INTERVAL_SECONDS", 5.0),
                RECENT_ASSIGNMENTS_LIMIT=data.get("RECENT_ASSIGNMENTS_LIMIT", 10),
                DEMO_MODE=_env_bool("DEMO_MODE", data.get("DEMO_MODE", False)),
                DEMO_ORDER_PROBABILITY=data.get("DEMO_ORDER_PROBABILITY", 0.3),
                PERIODIC_OWNER=os.getenv("PERIODIC_OWNER", data.get("PERIODIC_OWNER", "api")),
            ),
        )


def _env_bool(name: str, default: bool) -> bool:
    """Читает булев флаг из окружения ("1", "true", "yes" считаются истиной)."""
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    return raw.strip().lower() in ("1", "true", "yes", "on")


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
