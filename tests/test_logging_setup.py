# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from timelock.logging_setup import ConsoleFilter, resolve_level, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_quiets_background_and_foreign_loggers() -> None:
    f = ConsoleFilter()

    assert f.filter(_record("timelock.tasks.task_service", logging.INFO))
    assert not f.filter(_record("timelock.reminders.local_scheduler", logging.INFO))
    assert f.filter(_record("timelock.reminders.local_scheduler", logging.WARNING))
    assert not f.filter(_record("asyncio", logging.WARNING))
    assert not f.filter(_record("py.warnings", logging.WARNING))
    assert f.filter(_record("asyncio", logging.ERROR))


def test_resolve_level() -> None:
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(" Warning ") == logging.WARNING
    assert resolve_level(logging.ERROR) == logging.ERROR
    assert resolve_level("chatty") == logging.INFO
    assert resolve_level(None, default=logging.WARNING) == logging.WARNING


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    saved_level = root.level
    yield
    for h in list(root.handlers):
        ours = isinstance(h, logging.FileHandler) or any(isinstance(f, ConsoleFilter) for f in h.filters)
        if ours:
            root.removeHandler(h)
            h.close()
    root.setLevel(saved_level)
    logging.captureWarnings(False)


def test_setup_logging_writes_file_and_is_idempotent(tmp_path: Path, restore_root_logging) -> None:
    log_file = setup_logging(log_dir=tmp_path / "logs", console_level="warning")
    setup_logging(log_dir=tmp_path / "logs", console_level="warning")

    root = logging.getLogger()
    assert len(root.handlers) == 2

    logging.getLogger("timelock.test").debug("hello file")
    for h in root.handlers:
        h.flush()

    assert log_file == tmp_path / "logs" / "timelock.log"
    assert "hello file" in log_file.read_text(encoding="utf-8")
