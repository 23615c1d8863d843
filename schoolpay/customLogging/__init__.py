"""
Logging configuration and helpers.

`setup_logging()` must run before the rest of the application is imported.
"""
from .config import setup_logging, get_logging_config, LOGGING
from .logger import get_logger, log_operation, log_exception, log_response

__all__ = [
    "setup_logging",
    "get_logging_config",
    "LOGGING",
    "get_logger",
    "log_operation",
    "log_exception",
    "log_response",
]
