# src/common/__init__.py
"""
Общие утилиты, константы, исключения и логгер.
"""

from src.common.logger import get_logger, log_info, log_error, log_warning
from src.common.constants import TypeMsg, EntityCategory

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "TypeMsg",
    "EntityCategory",
]
