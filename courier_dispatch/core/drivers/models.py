# courier_dispatch/core/drivers/models.py
"""
Модели данных курьеров.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from courier_dispatch.common.constants import ApprovalStatus


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Driver(BaseModel):
    """Модель курьера."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="ID курьера")
    name: str = Field(..., description="Имя курьера")
    telegram_id: str = Field(..., description="Telegram chat id или username")
    phone: str = Field(..., description="Номер телефона")
    email: Optional[str] = Field(None, description="Email")

    # Последняя известная позиция
    latitude: float = Field(..., ge=-90, le=90, description="Широта")
    longitude: float = Field(..., ge=-180, le=180, description="Долгота")

    # Присутствие
    is_available: bool = Field(True, description="Свободен ли курьер")
    is_online: bool = Field(False, description="В сети ли курьер")

    # Модерация
    approval_status: ApprovalStatus = Field(ApprovalStatus.PENDING, description="Статус проверки")
    approved_at: Optional[datetime] = Field(None, description="Время одобрения")
    approved_by: Optional[str] = Field(None, description="Кто одобрил")

    created_at: datetime = Field(default_factory=_utc_now, description="Дата регистрации")
    updated_at: datetime = Field(default_factory=_utc_now, description="Дата обновления")

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    @property
    def is_dispatch_eligible(self) -> bool:
        """Может ли курьер получить новый заказ."""
        return self.is_online and self.is_available and self.is_approved


class DriverCreateDTO(BaseModel):
    """DTO для регистрации курьера."""

    name: str = Field(..., min_length=1)
    telegram_id: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[str] = None
    latitude: float = Field(0.0, ge=-90, le=90)
    longitude: float = Field(0.0, ge=-180, le=180)

    @field_validator("telegram_id")
    @classmethod
    def strip_at(cls, v: str) -> str:
        """Username хранится без ведущего @."""
        return v.strip().lstrip("@")


class DriverPresenceDTO(BaseModel):
    """DTO для изменения присутствия курьера."""

    is_available: Optional[bool] = None
    is_online: Optional[bool] = None


class DriverLocationDTO(BaseModel):
    """DTO для обновления позиции курьера."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DriverApprovalDTO(BaseModel):
    """DTO решения администратора по курьеру."""

    approved: bool
    approved_by: str = Field("admin", min_length=1)
    reason: Optional[str] = Field(None, description="Причина отказа, передаётся курьеру")


class DriverTelegramDTO(BaseModel):
    """DTO привязки Telegram-контакта курьера."""

    telegram_id: str = Field(..., min_length=1)

    @field_validator("telegram_id")
    @classmethod
    def strip_at(cls, v: str) -> str:
        return v.strip().lstrip("@")
