# src/todo_bot/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that are useful in the log file but too chatty below WARNING on the console.
_SLACK_LOGGERS = ("slack_bolt", "slack_sdk")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - todo_bot logs pass at the handler level
    - slack_bolt / slack_sdk only at WARNING+ (every request is logged otherwise)
    - Python warnings (captured as 'py.warnings') and other libraries only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("todo_bot."):
            return True
        if name.startswith(_SLACK_LOGGERS):
            return record.levelno >= logging.WARNING
        return record.levelno >= logging.ERROR


def _level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    # getLevelName() echoes unknown names back as "Level X".
    resolved = logging.getLevelName(str(value).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    *,
    log_dir: str | Path = ".local/todo",
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
) -> Path:
    """
    Install a filtered stderr handler and a full file handler (<log_dir>/todo.log)
    on the root logger, replacing whatever was there. Returns the log file path.

    Call once at startup, before the first log line.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "todo.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(_level(console_level))
    stream.setFormatter(fmt)
    stream.addFilter(_ConsoleNoiseFilter())
    root.addHandler(stream)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(_level(file_level))
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    return log_file
