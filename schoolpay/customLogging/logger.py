"""
Logging helpers shared by the bank gateway, the ledger and the HTTP layer.

Context passed as keyword arguments ends up both in the message text and in
the record's `extra`, so it is readable on the console and filterable in the
file handler. Decimal amounts are rendered as plain strings.
"""
import logging
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, Optional

ROOT_LOGGER = "schoolpay"


@lru_cache(maxsize=128)
def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the `schoolpay` namespace; `None` gives the root one."""
    return logging.getLogger(name or ROOT_LOGGER)


def _clean_context(context: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in context.items()}


def _with_context(message: str, context: Dict[str, Any]) -> str:
    if not context:
        return message
    return f"{message}: " + ", ".join(f"{k}={v}" for k, v in context.items())


def log_operation(logger: logging.Logger, operation: str, success: bool = True, **context) -> None:
    """
    Record a finished business operation (ledger write, payment registration).

    Example:
        log_operation(logger, "ledger_deposit", representative_id=7, amount=Decimal("25.00"))
    """
    context = _clean_context(context)
    status = "completed" if success else "failed"
    logger.log(
        logging.INFO if success else logging.ERROR,
        _with_context(f"Operation {operation} {status}", context),
        extra=context,
    )


def log_exception(logger: logging.Logger, message: str, exc: Exception, **context) -> None:
    """Log a caught exception with its traceback and the caller's context."""
    context = _clean_context(context)
    logger.error(
        f"{message}: {exc.__class__.__name__} - {exc}",
        exc_info=True,
        extra={"error_type": exc.__class__.__name__, "error_message": str(exc), **context},
    )


def log_response(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **context
) -> None:
    """Access-log line; 4xx at WARNING and 5xx at ERROR."""
    if status_code >= 500:
        level = logging.ERROR
    elif status_code >= 400:
        level = logging.WARNING
    else:
        level = logging.INFO

    logger.log(
        level,
        f"{method} {path} -> {status_code} ({duration_ms:.2f}ms)",
        extra={"method": method, "path": path, "status_code": status_code, "duration_ms": duration_ms, **context},
    )
