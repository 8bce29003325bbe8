"""
Logging for PawSitters

structlog drives our own loggers; stdlib records from SQLAlchemy, uvicorn and
friends go through the same ProcessorFormatter, so every line on the root
handlers has one shape. Events are snake_case names with keyword context:

    logger.info("entity_created", entity="Pet", entity_id=pet.id)
"""
import logging
import sys
from pathlib import Path
from typing import Any

import structlog

from pawsitters.exceptions import AppError

# pre-chain shared by structlog events and foreign stdlib records
_SHARED = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]

NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncpg")


def _formatter(json_logs: bool) -> logging.Formatter:
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def setup_logging(level: str = "INFO", log_file: str | None = None, json_logs: bool = False) -> None:
    """
    Configure structlog and the root logger. Safe to call more than once
    (app factory in tests): root handlers are replaced, not stacked.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: also write to this file (parent dirs are created)
        json_logs: one JSON object per line instead of the console format
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = _formatter(json_logs)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # SQL echo is controlled by Settings.sql_echo, not the root level
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.WARNING))


def get_logger(name: str | None = None) -> Any:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("booking_paid", booking_id=booking.id, amount=payment.amount)
    """
    return structlog.get_logger(name)


def log_error(error: Exception, context: dict | None = None, level: str = "ERROR") -> None:
    """Log an exception with its stack trace; AppErrors also carry kind and details"""
    logger = get_logger("pawsitters.errors")
    log_func = getattr(logger, level.lower(), logger.error)

    fields = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }
    if isinstance(error, AppError):
        fields.update(kind=error.kind, details=error.details)
    fields.update(context or {})

    log_func("error_occurred", exc_info=error, **fields)
