import logging
import os
import traceback
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

# httpx logs every request at INFO; dashboards poll, so keep them at WARNING
NOISY_LOGGERS = ("httpx", "httpcore")


def _level_from_env(default: int) -> int:
    name = os.environ.get("LOG_LEVEL", "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def setup_logging(level: Optional[int] = None, fmt: Optional[str] = None) -> None:
    """Configure root logging once. Subsequent calls are no-ops.

    The level defaults to LOG_LEVEL from the environment, then INFO.
    """
    if logging.getLogger().handlers:
        # Already configured (uvicorn, waitress or pytest got there first)
        return
    logging.basicConfig(level=level if level is not None else _level_from_env(logging.INFO),
                        format=fmt or DEFAULT_FORMAT)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for a registry_console module, configuring logging on first use"""
    setup_logging()
    return logging.getLogger(name) if name else logging.getLogger("registry_console")


def log_exception(logger: logging.Logger, message: str = "An error occurred",
                  exc_info: Optional[BaseException] = None) -> None:
    """Log `message`, then the exception's type, text and traceback.

    Without `exc_info` the exception currently being handled is used.
    """
    logger.error(message)
    if exc_info is None:
        logger.error(traceback.format_exc())
        return
    logger.error(f"{type(exc_info).__name__}: {exc_info}")
    logger.error("".join(traceback.format_exception(type(exc_info), exc_info, exc_info.__traceback__)))
