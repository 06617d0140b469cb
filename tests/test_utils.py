"""Tests covering the utilities modules."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from helm.utils import logging as logging_utils


@pytest.fixture
def _restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.mark.usefixtures("_restore_root_logging")
def test_setup_logging_writes_rotating_file(tmp_path: Path) -> None:
    log_dir = tmp_path / "logs"

    log_path = logging_utils.setup_logging(level=logging.INFO, log_dir=log_dir, console=False, force=True)

    logging.getLogger("helm.tests").info("Logging smoke test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path == log_dir / "helm.log"
    assert "Logging smoke test" in log_path.read_text(encoding="utf-8")


@pytest.mark.usefixtures("_restore_root_logging")
def test_setup_logging_uses_env_dir_and_quiets_http_loggers(tmp_path: Path) -> None:
    log_path = logging_utils.setup_logging(level=logging.DEBUG, console=False, force=True)

    assert log_path.parent == tmp_path / "logs"
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("openai").level == logging.WARNING


@pytest.mark.usefixtures("_restore_root_logging")
def test_setup_logging_is_idempotent_without_force(tmp_path: Path) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "one", console=False, force=True)
    second = logging_utils.setup_logging(log_dir=tmp_path / "two", console=False)

    assert second == first
