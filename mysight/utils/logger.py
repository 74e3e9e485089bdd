"""Logging Configuration

Console logging for the upload, search and proxy entry points, colored
with colorlog, plus an optional plain UTF-8 log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "google", "watchdog", "PIL", "deepl")


def _console_handler(fmt: str) -> logging.Handler:
    # stderr keeps stdout free for command output
    handler = colorlog.StreamHandler(sys.stderr)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            f"%(log_color)s{fmt}", datefmt=DATE_FORMAT, log_colors=LEVEL_COLORS
        )
    )
    return handler


def _file_handler(path: Path, fmt: str) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    format_str: str = LOG_FORMAT,
) -> logging.Logger:
    """Configure the root logger.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.

    Args:
        level: Level name. Unknown names fall back to INFO.
        log_file: Also write records to this file when given.
        format_str: Record format shared by console and file.

    Returns:
        The root logger.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handlers = [_console_handler(format_str)]
    if log_file:
        handlers.append(_file_handler(Path(log_file), format_str))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)
    for handler in handlers:
        handler.setLevel(numeric_level)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
