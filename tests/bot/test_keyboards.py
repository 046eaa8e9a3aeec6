# tests/bot/test_keyboards.py
"""
Тесты для клавиатур бота.
"""

from __future__ import annotations

import pytest

from courier_dispatch.bot.keyboards import get_assignment_keyboard, parse_order_callback
from courier_dispatch.common.constants import CALLBACK_ACCEPT_PREFIX, CALLBACK_DECLINE_PREFIX


class TestAssignmentKeyboard:
    """Тесты клавиатуры назначения."""

    def test_two_buttons_in_one_row(self) -> None:
        keyboard = get_assignment_keyboard(15)

        assert len(keyboard.inline_keyboard) == 1
        accept, decline = keyboard.inline_keyboard[0]
        assert accept.callback_data == "accept_15"
        assert decline.callback_data == "decline_15"


class TestParseOrderCallback:
    """Тесты разбора callback_data."""

    @pytest.mark.parametrize(
        ("data", "prefix", "expected"),
        [
            ("accept_15", CALLBACK_ACCEPT_PREFIX, 15),
            ("decline_7", CALLBACK_DECLINE_PREFIX, 7),
            ("decline_7", CALLBACK_ACCEPT_PREFIX, None),
            ("accept_", CALLBACK_ACCEPT_PREFIX, None),
            ("accept_x1", CALLBACK_ACCEPT_PREFIX, None),
            (None, CALLBACK_ACCEPT_PREFIX, None),
        ],
    )
    def test_parse(self, data, prefix, expected) -> None:
        assert parse_order_callback(data, prefix) == expected
