"""
Unified Logging Configuration

All client modules log through loggers under the "cbpro" namespace obtained
from get_logger(). Importing the library does not install any handler;
applications and scripts call setup_logging() to get console output.

Usage:
    from core.logging import setup_logging, get_logger

    setup_logging("DEBUG")
    logger = get_logger(__name__)
    logger.info("Fetching products")

Log Levels (from most to least verbose):
    DEBUG    - Request/response details (e.g., "API Request: GET /products")
    INFO     - Connection lifecycle (e.g., "WebSocket: coinbase connected")
    WARNING  - Unexpected but tolerated input (e.g., binary feed frames)
    ERROR    - Failures surfaced to the caller

Configuration:
    The default level comes from the LOG_LEVEL setting in .env file.
    API secrets and passphrases are never logged.
"""

import logging
import sys
from typing import Optional

from core.config import settings


ROOT_LOGGER_NAME = "cbpro"


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure console logging and return the library logger.

    Args:
        log_level: Logging level (defaults to settings.log_level)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured "cbpro" logger

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Client started")
        2024-01-01 12:00:00 [INFO] cbpro: Client started
    """
    log_level = (log_level or settings.log_level).upper()

    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s:")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger.setLevel(getattr(logging, log_level, logging.INFO))
    return logger


# ============================================
# Library Logger
# ============================================

logger = logging.getLogger(ROOT_LOGGER_NAME)
logger.addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Child of the "cbpro" logger

    Example:
        # In exchanges/coinbase_pro/api_client.py:
        logger = get_logger(__name__)  # "cbpro.exchanges.coinbase_pro.api_client"
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """Change the library log level at runtime."""
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(method: str, path: str, signed: bool = False) -> None:
    """
    Log an outgoing REST request.

    Example:
        >>> log_api_request("GET", "/accounts", signed=True)
        [DEBUG] API Request: GET /accounts (signed)
    """
    suffix = " (signed)" if signed else ""
    logger.debug(f"API Request: {method} {path}{suffix}")


def log_api_response(method: str, path: str, status: int, response_time: float = None) -> None:
    """
    Log a REST response with status and timing information.

    Example:
        >>> log_api_response("GET", "/products", 200, 0.342)
        [DEBUG] API Response: GET /products | Status: 200 | Time: 0.342s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {method} {path} | Status: {status}{time_str}")


def log_websocket_event(event: str, details: str = None) -> None:
    """
    Log a WebSocket feed event with consistent formatting.

    Example:
        >>> log_websocket_event("connected", "wss://ws-feed.pro.coinbase.com")
        [INFO] WebSocket: coinbase connected | wss://ws-feed.pro.coinbase.com

        >>> log_websocket_event("error", "Connection reset")
        [ERROR] WebSocket: coinbase error | Connection reset
    """
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: coinbase {event}{details_str}")
