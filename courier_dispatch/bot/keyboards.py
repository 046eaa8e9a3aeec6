# courier_dispatch/bot/keyboards.py
"""
Клавиатуры для Telegram бота курьеров.
"""

from __future__ import annotations

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from courier_dispatch.common.constants import CALLBACK_ACCEPT_PREFIX, CALLBACK_DECLINE_PREFIX


def get_assignment_keyboard(order_id: int) -> InlineKeyboardMarkup:
    """Кнопки ответа на назначение: принять / отказаться."""
    builder = InlineKeyboardBuilder()

    builder.row(
        InlineKeyboardButton(
            text="✅ Принять",
            callback_data=f"{CALLBACK_ACCEPT_PREFIX}{order_id}",
        ),
        InlineKeyboardButton(
            text="❌ Отказаться",
            callback_data=f"{CALLBACK_DECLINE_PREFIX}{order_id}",
        ),
    )

    return builder.as_markup()


def parse_order_callback(data: str | None, prefix: str) -> int | None:
    """
    Извлекает id заказа из callback_data вида "<prefix><id>".

    Returns:
        id заказа или None, если данные не подходят
    """
    if not data or not data.startswith(prefix):
        return None
    raw = data[len(prefix):]
    return int(raw) if raw.isdigit() else None
