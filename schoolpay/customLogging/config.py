import logging.config
import os

from schoolpay.config.settings import settings


def get_logging_config() -> dict:
    """Build the dictConfig for the application from settings."""
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "filters": ["correlation_id"],
            "formatter": "standard",
        },
    }

    if settings.LOG_FILE_ENABLED:
        log_dir = os.path.dirname(settings.LOG_FILE_PATH)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": settings.LOG_FILE_PATH,
            "maxBytes": settings.LOG_FILE_MAX_BYTES,
            "backupCount": settings.LOG_FILE_BACKUP_COUNT,
            "encoding": "utf8",
            "filters": ["correlation_id"],
            "formatter": "standard",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "correlation_id": {
                "()": "asgi_correlation_id.CorrelationIdFilter",
                "uuid_length": 32,
                "default_value": "-",
            },
        },
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(correlation_id)s] [%(name)s] %(levelname)s: %(message)s",
            },
        },
        "handlers": handlers,
        "loggers": {
            "schoolpay": {
                "level": settings.effective_log_level,
                "handlers": list(handlers),
                "propagate": False,
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": ["console"],
        },
    }


LOGGING = get_logging_config()


def setup_logging() -> None:
    """Apply the logging configuration. Safe to call more than once."""
    logging.config.dictConfig(get_logging_config())
