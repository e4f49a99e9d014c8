# fulfillment/common/__init__.py
"""
Общие утилиты, константы, ошибки и логгер.
"""

from fulfillment.common.logger import get_logger, log_info, log_error, log_warning, log_debug, setup_logging
from fulfillment.common.constants import TypeMsg
from fulfillment.common.timeutils import utc_now

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "setup_logging",
    "TypeMsg",
    "utc_now",
]
