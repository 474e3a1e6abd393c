"""
Logging configuration for the rebalance agent.
"""

import logging
import os
import traceback
from pathlib import Path
from typing import Any

LOGGER_NAME = "rebalance_agent"
LOGS_PATH = os.environ.get("LOGS_PATH", "logs/rebalance_agent.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class DetailedExceptionFormatter(logging.Formatter):
    """Formatter that adds source location and full tracebacks for ERROR and above."""

    def __init__(self) -> None:
        super().__init__()
        self._detailed = logging.Formatter("%(asctime)s - %(levelname)s - [%(module)s:%(lineno)d] %(message)s")
        self._standard = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR:
            record.exc_text = "".join(traceback.format_exception(*record.exc_info)) if record.exc_info else ""
            return self._detailed.format(record)
        return self._standard.format(record)


def setup_logger() -> logging.Logger:
    """
    Set up and configure the rebalance agent logger.

    Returns:
        Configured logger instance with console and file handlers.
    """
    logger = logging.getLogger(LOGGER_NAME)

    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.DEBUG))

    console_handler = logging.StreamHandler()
    Path(LOGS_PATH).parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(LOGS_PATH, mode="a")

    formatter = DetailedExceptionFormatter()
    console_handler.setFormatter(formatter)
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger


def global_exception_handler(exctype: type, value: BaseException, tb: Any) -> None:
    """
    Global exception handler to log uncaught exceptions.

    Args:
        exctype: The type of the exception.
        value: The exception instance.
        tb: A traceback object encapsulating the call stack.
    """
    logger = logging.getLogger(LOGGER_NAME)
    trace_str = "".join(traceback.format_exception(exctype, value, tb))
    logger.critical("Uncaught exception:\n %s", trace_str)
