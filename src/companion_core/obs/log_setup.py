"""Logging configuration for applications embedding the core."""

from __future__ import annotations

import logging
import sys

_LEVEL_COLORS = {
    logging.DEBUG: "\033[90m",
    logging.INFO: "\033[0m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[91m",
    logging.CRITICAL: "\033[91m\033[1m",
}
_RESET = "\033[0m"
_DIM = "\033[2m"


class CompactFormatter(logging.Formatter):
    """`HH:MM:SS [LEVL] logger: message`, optionally colored by level."""

    def __init__(self, *, color: bool = True) -> None:
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]
        name = record.name.removeprefix("companion_core.")
        if self.color:
            color = _LEVEL_COLORS.get(record.levelno, _RESET)
            formatted = f"{_DIM}{timestamp}{_RESET} [{color}{level}{_RESET}] {name}: {record.getMessage()}"
        else:
            formatted = f"{timestamp} [{level}] {name}: {record.getMessage()}"

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)
        return formatted


def setup_logging(level: int = logging.INFO, *, color: bool | None = None) -> None:
    """Install a single stdout handler on the root logger and quiet chatty libraries."""
    handler = logging.StreamHandler(sys.stdout)
    use_color = sys.stdout.isatty() if color is None else color
    handler.setFormatter(CompactFormatter(color=use_color))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
