# courier_dispatch/bot/handlers/driver.py
"""
Хендлеры курьера.
Выход на линию и ответы на назначения.
"""

from __future__ import annotations

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from courier_dispatch.bot.dependencies import find_driver, get_lifecycle
from courier_dispatch.bot.handlers.common import NOT_REGISTERED_TEXT, presence_label
from courier_dispatch.bot.keyboards import parse_order_callback
from courier_dispatch.common.constants import CALLBACK_ACCEPT_PREFIX, CALLBACK_DECLINE_PREFIX, TypeMsg
from courier_dispatch.common.exceptions import (
    DispatchError,
    DriverMismatchError,
    EntityNotFoundError,
    InvalidTransitionError,
)
from courier_dispatch.common.logger import log_error, log_info, log_warning

router = Router(name="driver")


# =============================================================================
# УПРАВЛЕНИЕ СТАТУСОМ
# =============================================================================

async def _update_presence(message: Message, is_online: bool, is_available: bool) -> None:
    try:
        driver = await find_driver(message.chat.id, message.from_user)
        if driver is None:
            await message.answer(NOT_REGISTERED_TEXT)
            return

        driver = await get_lifecycle().set_driver_presence(
            driver.id,
            is_online=is_online,
            is_available=is_available,
        )
        await message.answer(f"✅ Статус обновлён: {presence_label(driver)}")

        await log_info(
            f"Курьер {driver.name}: {presence_label(driver)}",
            type_msg=TypeMsg.INFO,
        )
    except Exception as e:
        await log_error(f"Ошибка обновления статуса курьера {message.chat.id}: {e}", exc_info=True)
        await message.answer("❌ Не удалось обновить статус. Попробуйте ещё раз.")


@router.message(Command("available"))
async def cmd_available(message: Message) -> None:
    """Курьер на линии и свободен."""
    await _update_presence(message, is_online=True, is_available=True)


@router.message(Command("busy"))
async def cmd_busy(message: Message) -> None:
    """Курьер на линии, но занят."""
    await _update_presence(message, is_online=True, is_available=False)


@router.message(Command("offline"))
async def cmd_offline(message: Message) -> None:
    """Уход с линии."""
    await _update_presence(message, is_online=False, is_available=False)


# =============================================================================
# ОТВЕТ НА НАЗНАЧЕНИЕ
# =============================================================================

def _error_text(error: DispatchError) -> str:
    if isinstance(error, InvalidTransitionError):
        return "Заказ уже обработан"
    if isinstance(error, DriverMismatchError):
        return "Этот заказ назначен другому курьеру"
    if isinstance(error, EntityNotFoundError):
        return "Заказ не найден"
    return "Не удалось обработать запрос"


@router.callback_query(F.data.startswith(CALLBACK_ACCEPT_PREFIX))
async def accept_order(callback: CallbackQuery) -> None:
    """Курьер принял заказ."""
    order_id = parse_order_callback(callback.data, CALLBACK_ACCEPT_PREFIX)
    if order_id is None:
        await callback.answer("Некорректные данные кнопки")
        return

    try:
        driver = await find_driver(callback.from_user.id, callback.from_user)
        if driver is None:
            await callback.answer(NOT_REGISTERED_TEXT, show_alert=True)
            return

        order = await get_lifecycle().accept_assignment(order_id, driver.telegram_id)

        await callback.answer("✅ Заказ принят!")
        if callback.message is not None:
            await callback.message.edit_reply_markup(reply_markup=None)
            await callback.message.answer(
                f"✅ Вы приняли заказ {order.order_number}. Направляйтесь в ресторан за заказом."
            )
    except DispatchError as e:
        await log_warning(f"Курьер {callback.from_user.id} не смог принять заказ {order_id}: {e.message}")
        await callback.answer(_error_text(e), show_alert=True)
    except Exception as e:
        await log_error(f"Ошибка в accept_order: {e}", exc_info=True)
        await callback.answer("Ошибка обработки запроса")


@router.callback_query(F.data.startswith(CALLBACK_DECLINE_PREFIX))
async def decline_order(callback: CallbackQuery) -> None:
    """Курьер отказался от заказа и снова свободен."""
    order_id = parse_order_callback(callback.data, CALLBACK_DECLINE_PREFIX)
    if order_id is None:
        await callback.answer("Некорректные данные кнопки")
        return

    try:
        driver = await find_driver(callback.from_user.id, callback.from_user)
        if driver is None:
            await callback.answer(NOT_REGISTERED_TEXT, show_alert=True)
            return

        await get_lifecycle().decline_assignment(order_id, driver.telegram_id)

        await callback.answer("❌ Заказ отклонён")
        if callback.message is not None:
            await callback.message.edit_reply_markup(reply_markup=None)
            await callback.message.answer("❌ Вы отказались от заказа. Вы снова доступны для новых заказов.")
    except DispatchError as e:
        await log_warning(f"Курьер {callback.from_user.id} не смог отказаться от заказа {order_id}: {e.message}")
        await callback.answer(_error_text(e), show_alert=True)
    except Exception as e:
        await log_error(f"Ошибка в decline_order: {e}", exc_info=True)
        await callback.answer("Ошибка обработки запроса")
