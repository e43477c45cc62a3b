"""
Application Logging

Every module logs through a child of the "marketfeed" logger:

    from core.logging import get_logger

    logger = get_logger(__name__)   # "marketfeed.services.market_data"
    logger.warning("coingecko rate limited")

Only the "marketfeed" logger is configured here (level from LOG_LEVEL plus a
stdout handler). The root logger and any handlers the host application set
up are left alone.
"""

import logging
import sys

from core.config import settings

ROOT_LOGGER_NAME = "marketfeed"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure and return the application logger.

    Calling it again only changes the level; the handler is added once.

    Example:
        >>> logger = setup_logging("DEBUG")
        >>> logger.info("Application started")
        2024-01-01 12:00:00 [INFO] marketfeed: Application started
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    return logger


logger = setup_logging(settings.log_level)


def get_logger(name: str) -> logging.Logger:
    """Logger nested under the application logger, e.g. get_logger(__name__)."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_api_request(provider: str, url: str, params: dict = None) -> None:
    """Debug-log an outbound provider request."""
    if params:
        logger.debug(f"API Request: {provider} {url} | Params: {params}")
    else:
        logger.debug(f"API Request: {provider} {url}")


def log_api_response(provider: str, endpoint: str, status: int, response_time: float = None) -> None:
    """Debug-log a provider response with status and timing."""
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {provider} {endpoint} | Status: {status}{time_str}")
