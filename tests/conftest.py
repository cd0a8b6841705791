# tests/conftest.py

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

import pytest

from forge_client.config import reset_settings
from forge_client.tasks import TaskContext


class FailureRecorder:
    """Default failure handler that remembers what it saw and lets tests wait for it."""

    def __init__(self) -> None:
        self.errors: list[BaseException] = []
        self.event = threading.Event()

    def __call__(self, error: BaseException) -> None:
        self.errors.append(error)
        self.event.set()


@pytest.fixture()
def failures() -> FailureRecorder:
    return FailureRecorder()


@pytest.fixture()
def context(failures: FailureRecorder) -> Iterator[TaskContext]:
    """
    Isolated TaskContext per test.

    We intentionally never use the process-wide default context here, so tests do
    not leak threads or failure handlers into each other.
    """
    ctx = TaskContext(max_workers=4, default_failure_handler=failures, thread_name_prefix="test-task")
    yield ctx
    ctx.shutdown(wait=True)


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in (
        "FORGE_BASE_URL",
        "FORGE_API_KEY",
        "FORGE_PAGE_SIZE",
        "FORGE_WORKER_THREADS",
        "FORGE_CONNECT_TIMEOUT_SECONDS",
        "FORGE_READ_TIMEOUT_SECONDS",
        "FORGE_LOG_LEVEL",
        "FORGE_LOG_DIR",
        "FORGE_LOG_TO_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture()
def restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        if h not in handlers:
            h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)
