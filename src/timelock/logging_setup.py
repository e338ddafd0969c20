# src/timelock/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "timelock.log"

# Loggers that run behind the prompt; on the console only their problems matter.
BACKGROUND_LOGGERS = ("timelock.reminders.local_scheduler",)


class ConsoleFilter(logging.Filter):
    """Keep the interactive console readable while reminders fire in the background."""

    def __init__(self, background: tuple[str, ...] = BACKGROUND_LOGGERS) -> None:
        super().__init__()
        self._background = background

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith(self._background):
            return record.levelno >= logging.WARNING
        if name == "timelock" or name.startswith("timelock."):
            return True
        # py.warnings and anything outside the app
        return record.levelno >= logging.ERROR


def resolve_level(level: str | int | None, default: int = logging.INFO) -> int:
    """'debug' / 'INFO' / 20 -> logging level int; unknown names fall back to default."""
    if isinstance(level, int):
        return level
    if not level:
        return default
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(
    *,
    log_dir: str | Path,
    console_level: str | int | None = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console handler on stderr (filtered) plus a full DEBUG log under log_dir.

    Replaces existing root handlers, so calling it twice does not duplicate output.
    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(resolve_level(console_level))
    console.setFormatter(fmt)
    console.addFilter(ConsoleFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    return log_file
