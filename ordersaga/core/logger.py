"""
Centralized logger configuration for ordersaga.

By default, uses Python's standard logging under the 'ordersaga' namespace.

Usage:
    from ordersaga.core.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Message")

    # Route every ordersaga component through a custom logger
    from ordersaga.core.logger import set_logger
    set_logger(structlog.get_logger())
"""

import logging
from typing import Any

_custom_logger: Any = None


def set_logger(logger: Any) -> None:
    """
    Set a custom logger for all ordersaga components.

    Args:
        logger: A logger instance supporting debug/info/warning/error/exception.
                Pass None to go back to standard logging.
    """
    global _custom_logger
    _custom_logger = logger


def get_logger(name: str = "ordersaga") -> Any:
    """
    Get a logger instance.

    Returns the custom logger if one was set via set_logger(), otherwise a
    standard logger with the given name.
    """
    if _custom_logger is not None:
        return _custom_logger

    logger = logging.getLogger(name)

    # Avoid "No handler found" warnings in library use
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def configure_default_logging(
    level: int = logging.INFO,
    json_output: bool = False,
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
) -> None:
    """
    Configure console logging for ordersaga processes (CLI, workers).

    Args:
        level: Logging level (default: INFO)
        json_output: Emit one JSON object per record with order context
        format_string: Log message format for plain-text output
    """
    from ordersaga.monitoring.logging import OrderContextFilter, OrderJsonFormatter

    handler = logging.StreamHandler()
    handler.addFilter(OrderContextFilter())
    if json_output:
        handler.setFormatter(OrderJsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(format_string))

    root = logging.getLogger("ordersaga")
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
