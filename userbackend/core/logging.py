import logging
import sys
from typing import List, Optional

ROOT_LOGGER_NAME = "userbackend"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name with ANSI escape codes."""

    COLORS = {
        "DEBUG": "\033[36m",  # cyan
        "INFO": "\033[32m",  # green
        "WARNING": "\033[33m",  # yellow
        "ERROR": "\033[31m",  # red
        "CRITICAL": "\033[1;31m",  # bold red
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname)
        if not color:
            return super().format(record)

        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def configure_logging(
    level: str = "INFO",
    fmt: Optional[str] = None,
    colored: bool = True,
    custom_formatter: Optional[logging.Formatter] = None,
    custom_handlers: Optional[List[logging.Handler]] = None,
):
    """
    Configure the root logger.

    Existing root handlers are removed. Custom handlers replace the default
    stderr handler; a custom formatter is applied to every handler that does
    not already carry one.
    """
    fmt = fmt or DEFAULT_FORMAT

    if custom_formatter is not None:
        formatter = custom_formatter
    elif colored:
        formatter = ColoredFormatter(fmt)
    else:
        formatter = logging.Formatter(fmt)

    if custom_handlers:
        handlers = list(custom_handlers)
        for handler in handlers:
            if handler.formatter is None:
                handler.setFormatter(formatter)
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        handlers = [handler]

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    for handler in handlers:
        root_logger.addHandler(handler)

    root_logger.setLevel(level.upper() if isinstance(level, str) else level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger under the userbackend namespace."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
