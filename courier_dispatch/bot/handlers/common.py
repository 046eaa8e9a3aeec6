# courier_dispatch/bot/handlers/common.py
"""
Общие хендлеры.
Команды /start, /help, /status.
"""

from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from courier_dispatch.bot.dependencies import find_driver
from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_error, log_info
from courier_dispatch.core.drivers.models import Driver
from courier_dispatch.core.notifications.service import escape_markdown

router = Router(name="common")


HELP_TEXT = (
    "🤖 *Команды бота курьера*\n\n"
    "/start - Начало работы\n"
    "/status - Ваш текущий статус\n"
    "/available - Готов принимать заказы\n"
    "/busy - Занят\n"
    "/offline - Уйти с линии\n"
    "/help - Эта справка"
)

NOT_REGISTERED_TEXT = "❌ Вы ещё не зарегистрированы как курьер. Заполните анкету в веб-форме регистрации."


def presence_label(driver: Driver) -> str:
    if not driver.is_online:
        return "⚫ Не в сети"
    return "🟢 Свободен" if driver.is_available else "🔴 Занят"


def format_status(driver: Driver) -> str:
    approval = {
        "approved": "✅ Одобрен",
        "pending": "⏳ На проверке",
        "rejected": "❌ Отклонён",
    }[driver.approval_status.value]
    return (
        "👤 *Статус курьера*\n\n"
        f"Имя: {escape_markdown(driver.name)}\n"
        f"Телефон: {escape_markdown(driver.phone)}\n"
        f"Проверка: {approval}\n"
        f"Статус: {presence_label(driver)}\n\n"
        "Список команд: /help"
    )


@router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    """Обработчик команды /start."""
    try:
        await log_info(
            f"Команда /start от пользователя {message.chat.id}",
            type_msg=TypeMsg.DEBUG,
        )
        driver = await find_driver(message.chat.id, message.from_user)
        if driver is None:
            await message.answer(
                "🚗 Добро пожаловать в сервис доставки!\n\n"
                "Чтобы стать курьером, заполните анкету регистрации. "
                f"Ваш Telegram ID для анкеты: `{message.chat.id}`\n\n"
                "После проверки администратором вы начнёте получать заказы."
            )
            return

        await message.answer(f"👋 С возвращением, {escape_markdown(driver.name)}!\n\n{format_status(driver)}")
    except Exception as e:
        await log_error(f"Ошибка в cmd_start: {e}", exc_info=True)
        await message.answer("❌ Произошла ошибка. Попробуйте позже.")


@router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(HELP_TEXT)


@router.message(Command("status"))
async def cmd_status(message: Message) -> None:
    """Текущий статус курьера."""
    try:
        driver = await find_driver(message.chat.id, message.from_user)
        if driver is None:
            await message.answer(NOT_REGISTERED_TEXT)
            return
        await message.answer(format_status(driver))
    except Exception as e:
        await log_error(f"Ошибка в cmd_status: {e}", exc_info=True)
        await message.answer("❌ Не удалось получить статус. Попробуйте позже.")
