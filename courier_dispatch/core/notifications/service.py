# courier_dispatch/core/notifications/service.py
"""
Каналы уведомления курьеров.

Канал выбирается один раз при сборке приложения:
- TelegramNotificationChannel — живая отправка через Telegram Bot API (aiogram)
- RecordingNotificationChannel — заглушка, запоминает сообщения и сообщает об успехе

Контракт канала: notify_assignment никогда не бросает исключений,
результат возвращается булевым значением.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest

from courier_dispatch.bot.keyboards import get_assignment_keyboard
from courier_dispatch.common.constants import DEMO_TELEGRAM_ID, TypeMsg
from courier_dispatch.common.logger import log_error, log_info, log_warning
from courier_dispatch.config.loader import MOCK_BOT_TOKENS
from courier_dispatch.core.assignments.models import Assignment
from courier_dispatch.core.drivers.models import Driver
from courier_dispatch.core.orders.models import Order


# =============================================================================
# ФОРМАТИРОВАНИЕ
# =============================================================================

_MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")


def escape_markdown(value: Any) -> str:
    """Экранирует спецсимволы Telegram Markdown (legacy) в пользовательских данных."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", str(value))


def resolve_chat_id(telegram_id: str) -> int | str:
    """
    Приводит контакт курьера к chat_id для Bot API.

    Числовой идентификатор используется как есть, username дополняется "@".
    """
    handle = telegram_id.strip()
    if handle.lstrip("-").isdigit():
        return int(handle)
    return handle if handle.startswith("@") else f"@{handle}"


def format_assignment_message(order: Order, assignment: Assignment, timeout_minutes: int = 2) -> str:
    """Текст уведомления о новом назначении."""
    return (
        "🚗 *Новое назначение*\n\n"
        f"📦 *Заказ:* {escape_markdown(order.order_number)}\n"
        f"🏪 *Ресторан:* {escape_markdown(order.restaurant_name)}\n"
        f"🏠 *Доставка:* {escape_markdown(order.delivery_address)}\n"
        f"💰 *Сумма:* ${order.amount:.2f}\n"
        f"📏 *Расстояние:* {assignment.distance:.2f} км\n\n"
        f"⏰ Ответьте в течение {timeout_minutes} мин"
    )


# =============================================================================
# КОНТРАКТ КАНАЛА
# =============================================================================

class NotificationChannel(ABC):
    """Канал доставки уведомлений курьерам."""

    name: str = "base"

    @abstractmethod
    async def notify_assignment(self, driver: Driver, order: Order, assignment: Assignment) -> bool:
        """
        Сообщает курьеру о назначении.

        Returns:
            True, если уведомление доставлено (или намеренно пропущено)
        """

    @abstractmethod
    async def send_status_update(self, driver: Driver, text: str) -> bool:
        """Отправляет курьеру произвольное служебное сообщение."""

    @property
    def is_live(self) -> bool:
        return False

    async def close(self) -> None:
        """Освобождает ресурсы канала."""


@dataclass
class RecordedMessage:
    """Сообщение, перехваченное заглушкой."""
    driver_id: int
    telegram_id: str
    text: str
    order_id: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RecordingNotificationChannel(NotificationChannel):
    """
    Заглушка канала: ничего не отправляет, запоминает сообщения.

    Args:
        deliver: Результат, который возвращают методы (False имитирует сбой доставки)
        max_messages: Сколько последних сообщений хранить
    """

    name = "recording"

    def __init__(self, deliver: bool = True, timeout_minutes: int = 2, max_messages: int = 1000) -> None:
        self.deliver = deliver
        self._timeout_minutes = timeout_minutes
        # Хранятся только последние max_messages сообщений
        self.messages: deque[RecordedMessage] = deque(maxlen=max_messages)

    async def notify_assignment(self, driver: Driver, order: Order, assignment: Assignment) -> bool:
        self.messages.append(RecordedMessage(
            driver_id=driver.id,
            telegram_id=driver.telegram_id,
            text=format_assignment_message(order, assignment, self._timeout_minutes),
            order_id=order.id,
        ))
        await log_info(
            f"[MOCK] Уведомление о назначении: курьер {driver.name}, заказ {order.order_number}",
            type_msg=TypeMsg.DEBUG,
        )
        return self.deliver

    async def send_status_update(self, driver: Driver, text: str) -> bool:
        self.messages.append(RecordedMessage(driver_id=driver.id, telegram_id=driver.telegram_id, text=text))
        await log_info(f"[MOCK] Сообщение курьеру {driver.name}: {text}", type_msg=TypeMsg.DEBUG)
        return self.deliver


class TelegramNotificationChannel(NotificationChannel):
    """Отправка уведомлений через Telegram Bot API."""

    name = "telegram"

    def __init__(self, bot: Bot, timeout_minutes: int = 2, owns_bot: bool = True) -> None:
        """
        Args:
            bot: Экземпляр aiogram Bot (parse_mode задаётся в DefaultBotProperties)
            timeout_minutes: Время на ответ, указываемое в сообщении
            owns_bot: Закрывать ли сессию бота в close()
        """
        self._bot = bot
        self._timeout_minutes = timeout_minutes
        self._owns_bot = owns_bot

    @property
    def is_live(self) -> bool:
        return True

    async def notify_assignment(self, driver: Driver, order: Order, assignment: Assignment) -> bool:
        if driver.telegram_id == DEMO_TELEGRAM_ID:
            await log_info(
                f"[DEMO] Курьер {driver.name}: уведомление по заказу {order.order_number} не отправляется",
                type_msg=TypeMsg.DEBUG,
            )
            return True

        sent = await self._send(
            driver,
            format_assignment_message(order, assignment, self._timeout_minutes),
            reply_markup=get_assignment_keyboard(order.id),
        )
        if sent:
            await log_info(
                f"Уведомление о заказе {order.order_number} отправлено курьеру {driver.name} ({driver.telegram_id})",
                type_msg=TypeMsg.INFO,
            )
        return sent

    async def send_status_update(self, driver: Driver, text: str) -> bool:
        if driver.telegram_id == DEMO_TELEGRAM_ID:
            return True
        return await self._send(driver, text)

    async def _send(self, driver: Driver, text: str, **kwargs: Any) -> bool:
        try:
            await self._bot.send_message(chat_id=resolve_chat_id(driver.telegram_id), text=text, **kwargs)
            return True
        except TelegramBadRequest as e:
            if "chat not found" in str(e).lower():
                await log_warning(
                    f"Чат Telegram {driver.telegram_id} не найден, проверьте контакт курьера {driver.name}",
                    extra={"driver_id": driver.id},
                )
            else:
                await log_error(f"Telegram отклонил сообщение курьеру {driver.name}: {e}", extra={"driver_id": driver.id})
            return False
        except TelegramAPIError as e:
            await log_error(f"Ошибка Telegram API при отправке курьеру {driver.name}: {e}", extra={"driver_id": driver.id})
            return False
        except Exception as e:
            await log_error(
                f"Ошибка отправки сообщения курьеру {driver.name}: {e}",
                extra={"driver_id": driver.id},
                exc_info=True,
            )
            return False

    async def close(self) -> None:
        if self._owns_bot:
            await self._bot.session.close()


# =============================================================================
# ФАБРИКА
# =============================================================================

def create_bot(token: str, parse_mode: str = "Markdown") -> Bot:
    """Создаёт aiogram Bot с режимом разметки по умолчанию."""
    return Bot(token=token, default=DefaultBotProperties(parse_mode=parse_mode))


def create_notification_channel(
    bot_token: str | None = None,
    bot: Bot | None = None,
    timeout_minutes: int | None = None,
) -> NotificationChannel:
    """
    Выбирает канал уведомлений.

    Пустой токен или "mock_token" включает заглушку. Переданный bot
    используется повторно (например, общий с диспетчером бота).
    """
    from courier_dispatch.config import settings

    if bot_token is None:
        bot_token = settings.telegram.BOT_TOKEN
    if timeout_minutes is None:
        timeout_minutes = settings.telegram.RESPONSE_TIMEOUT_MINUTES

    if bot is not None:
        return TelegramNotificationChannel(bot, timeout_minutes=timeout_minutes, owns_bot=False)

    if bot_token.strip() in MOCK_BOT_TOKENS:
        return RecordingNotificationChannel(timeout_minutes=timeout_minutes)

    return TelegramNotificationChannel(
        create_bot(bot_token, settings.telegram.PARSE_MODE),
        timeout_minutes=timeout_minutes,
    )
