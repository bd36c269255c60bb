from loguru import logger
import logging
import sys
import os
from datetime import datetime

# Standard-library loggers whose records are forwarded to Loguru in server mode
STDLIB_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "httpx")


class InterceptHandler(logging.Handler):
    """Route standard logging records into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def setup_logger(level: str = "INFO", log_dir: str = "logs"):
    """
    Set up Loguru logger with console and file handlers.
    """
    os.makedirs(log_dir, exist_ok=True)

    # Remove default logger handler to avoid duplicate logs
    logger.remove()

    # Console
    logger.add(
        sys.stdout,
        level=level.upper(),
        format="<green>[{time:HH:mm:ss}]</green> <level>{level}</level> | <cyan>{message}</cyan>"
    )

    # File, one per day
    logger.add(
        os.path.join(log_dir, f"rustizarr_{datetime.now().strftime('%Y-%m-%d')}.log"),
        rotation="10 MB",
        retention="10 days",
        level="DEBUG",
        encoding="utf-8",
        enqueue=True,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} - {message}"
    )

    logger.debug("Logging initialized with Loguru")


def intercept_stdlib(level: str = "INFO"):
    """Send uvicorn / fastapi / httpx records through the Loguru sinks."""
    for name in STDLIB_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.setLevel(level.upper())
        std_logger.propagate = False


def get_logger(name=None):
    """
    Get the configured Loguru logger, bound to the calling module when a name is given.
    """
    if name:
        return logger.bind(module=name)
    return logger
