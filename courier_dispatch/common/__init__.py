# courier_dispatch/common/__init__.py
"""
Общие утилиты, константы, исключения и логгер.
"""

from courier_dispatch.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from courier_dispatch.common.constants import TypeMsg

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
]
