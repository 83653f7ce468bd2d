"""Logging configuration for the notification core.

Everything goes through loguru. Standard-library loggers (uvicorn, aiokafka,
APScheduler, httpx, SQLAlchemy, Alembic) are redirected with
``InterceptHandler`` so that one sink receives all records.
"""

import logging
import sys
from collections.abc import Iterable

from loguru import logger

LIBRARY_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "aiokafka", "apscheduler", "httpcore", "httpx", "asyncio")
SQL_LOGGERS = ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.dialects", "sqlalchemy.pool")

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Intercept standard logging messages toward loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames of the logging module itself so the caller is reported
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def redirect_std_logging(names: Iterable[str], level: str | int | None = None) -> None:
    """Send the named standard loggers to loguru only."""
    for name in names:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False
        if level is not None:
            std_logger.setLevel(level)


def setup_logging(log_level: str, json_logs: bool = False) -> None:
    """Configure loguru logging for the entire application.

    Args:
        log_level: Log level to use (from settings, which handles env vars and CLI args)
        json_logs: Emit one JSON object per record instead of colored text
    """
    log_level = log_level.upper()

    logger.remove()
    if json_logs:
        logger.add(sys.stderr, level=log_level, serialize=True)
    else:
        logger.add(sys.stderr, level=log_level, format=TEXT_FORMAT, colorize=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    redirect_std_logging(list(logging.Logger.manager.loggerDict))

    # Standard logging has no TRACE level
    redirect_std_logging(LIBRARY_LOGGERS, "DEBUG" if log_level == "TRACE" else log_level)

    logger.info(f"Log level set to: {log_level}")


def setup_sqlalchemy_logging() -> None:
    """Route SQLAlchemy statement logging to loguru."""
    redirect_std_logging(SQL_LOGGERS)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
