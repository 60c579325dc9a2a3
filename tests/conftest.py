from __future__ import annotations

import logging
import os
from collections.abc import Iterator

import pytest

from contextir.core.logging import PACKAGE_LOGGER
from contextir.models.extracted import ContextTabInfo


@pytest.fixture(autouse=True)
def clear_contextir_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("CONTEXTIR_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def restore_package_logger() -> Iterator[None]:
    """Undo ``setup_logging`` so caplog keeps seeing propagated records."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def tab_info() -> ContextTabInfo:
    return ContextTabInfo(id="tab-1", title="Tab", url="https://example.com")
