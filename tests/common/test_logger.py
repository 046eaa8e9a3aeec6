# tests/common/test_logger.py
"""
Тесты для модуля логирования.
"""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest

from courier_dispatch.common import logger as logger_module
from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import (
    ColoredFormatter,
    JsonFormatter,
    get_logger,
    log_error,
    log_info,
    log_warning,
)


def _record(message: str = "hello", level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("courier_dispatch", level, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Тесты форматтеров."""

    def test_json_formatter(self) -> None:
        output = JsonFormatter().format(_record(extra_data={"order_id": 1}))

        data = json.loads(output)
        assert data["level"] == "INFO"
        assert data["message"] == "hello"
        assert data["extra"] == {"order_id": 1}

    def test_colored_formatter_includes_caller(self) -> None:
        output = ColoredFormatter().format(_record(extra_data={
            "caller_function": "assign",
            "caller_module": "coordinator",
            "caller_file": "coordinator.py",
            "caller_line": 42,
        }))

        assert "[INFO]" in output
        assert "coordinator.assign()" in output
        assert "hello" in output


class TestGetLogger:
    """Тесты get_logger."""

    def test_cached(self) -> None:
        assert get_logger("courier_dispatch.test") is get_logger("courier_dispatch.test")

    def test_no_propagation(self) -> None:
        assert get_logger("courier_dispatch.test2").propagate is False


class TestLogHelpers:
    """Тесты асинхронных хелперов."""

    @pytest.mark.asyncio
    async def test_log_info_level_and_caller(self) -> None:
        with patch.object(logger_module, "_emit") as emit:
            await log_info("msg", type_msg=TypeMsg.WARNING, extra={"a": 1})

        _, level, message, extra, caller = emit.call_args.args
        assert level == logging.WARNING
        assert message == "msg"
        assert extra == {"a": 1}
        assert caller["caller_function"] == "test_log_info_level_and_caller"

    @pytest.mark.asyncio
    async def test_log_error_exc_info(self) -> None:
        with patch.object(logger_module, "_emit") as emit:
            await log_error("failed", exc_info=True)

        assert emit.call_args.args[1] == logging.ERROR
        assert emit.call_args.kwargs["exc_info"] is True

    @pytest.mark.asyncio
    async def test_log_warning(self) -> None:
        with patch.object(logger_module, "_emit") as emit:
            await log_warning("careful")

        assert emit.call_args.args[1] == logging.WARNING
