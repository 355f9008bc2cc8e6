from __future__ import annotations

import logging
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from storylab.adapters.observability import configure_runtime_logging, int_env


@pytest.fixture
def _restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    access_level = logging.getLogger("uvicorn.access").level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(access_level)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("", 10), ("abc", 10), ("5", 5), ("0", 1), ("999", 120)],
)
def test_int_env_clamps_and_falls_back(
    monkeypatch: pytest.MonkeyPatch, raw: str, expected: int
) -> None:
    monkeypatch.setenv("STORYLAB_TEST_INT", raw)
    assert int_env("STORYLAB_TEST_INT", 10, minimum=1, maximum=120) == expected


@pytest.mark.usefixtures("_restore_root_logging")
def test_configure_runtime_logging_writes_rotating_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    log_path = tmp_path / "logs" / "storylab.log"
    monkeypatch.setenv("STORYLAB_LOG_PATH", str(log_path))
    monkeypatch.setenv("STORYLAB_LOG_LEVEL", "debug")
    monkeypatch.setenv("STORYLAB_LOG_BACKUP_COUNT", "3")
    monkeypatch.setenv("STORYLAB_ACCESS_LOG_LEVEL", "error")

    configure_runtime_logging(force=True)
    logging.getLogger("storylab.test").info("template.export book_id=%s", "book-1")

    root = logging.getLogger()
    file_handlers = [
        handler for handler in root.handlers if isinstance(handler, RotatingFileHandler)
    ]
    assert root.level == logging.DEBUG
    assert len(file_handlers) == 1
    assert file_handlers[0].backupCount == 3
    assert logging.getLogger("uvicorn.access").level == logging.ERROR
    file_handlers[0].flush()
    assert "template.export book_id=book-1" in log_path.read_text(encoding="utf-8")
