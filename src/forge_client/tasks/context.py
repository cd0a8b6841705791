# src/forge_client/tasks/context.py

"""
Shared state behind Tasks: the worker pool and the default failure handler.

A TaskContext is plain injected configuration. Tasks remember the context they were
created with and every combinator inherits it, so tests (or embedding applications)
can run a fully isolated context. The module-level default context backs the
process-wide helpers (set_default_failure_handler & co).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import CancelledError, Executor, ThreadPoolExecutor

from ..errors import NoValueError

logger = logging.getLogger(__name__)

FailureHandler = Callable[[BaseException], None]


def log_failure(error: BaseException) -> None:
    """Built-in default failure handler: log and move on."""
    if isinstance(error, (CancelledError, TimeoutError)):
        logger.debug("Task cancelled/timed out: %s", error)
    elif isinstance(error, NoValueError):
        logger.debug("Task completed without a value and no failure callback was given.")
    else:
        logger.error(
            "Task returned failure: [%s] %s",
            error.__class__.__name__,
            error,
            exc_info=(type(error), error, error.__traceback__),
        )


def _ignore_failure(_error: BaseException) -> None:
    return


class TaskContext:
    """
    Worker pool + default failure handler.

    The pool runs worker-delivered Tasks and every on_complete delivery. It is created
    lazily, so a context that only ever sees resolved Tasks never starts a thread.
    """

    def __init__(
        self,
        *,
        max_workers: int | None = None,
        default_failure_handler: FailureHandler | None = None,
        thread_name_prefix: str = "forge-task",
        executor: Executor | None = None,
    ) -> None:
        self._max_workers = max_workers
        self._thread_name_prefix = thread_name_prefix
        self._executor = executor
        self._owns_executor = executor is None
        self._closed = False
        self._lock = threading.Lock()
        self.default_failure_handler: FailureHandler = default_failure_handler or log_failure

    @property
    def executor(self) -> Executor:
        with self._lock:
            if self._closed:
                raise RuntimeError("TaskContext has been shut down")
            if self._executor is None:
                workers = self._max_workers
                if workers is None:
                    from ..config import get_settings

                    workers = get_settings().worker_threads
                self._executor = ThreadPoolExecutor(
                    max_workers=max(1, int(workers)),
                    thread_name_prefix=self._thread_name_prefix,
                )
                logger.debug("Started task pool prefix=%s workers=%s", self._thread_name_prefix, workers)
            return self._executor

    def set_default_failure_handler(self, handler: FailureHandler | None) -> None:
        # Plain attribute swap: last write wins, in-flight Tasks may see either handler.
        self.default_failure_handler = handler if handler is not None else _ignore_failure

    def report_failure(self, error: BaseException) -> None:
        """Hand an unobserved failure to the default handler; the handler must not raise."""
        handler = self.default_failure_handler
        try:
            handler(error)
        except Exception:
            logger.exception("Default failure handler raised while handling %r", error)

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop the owned pool. Later Tasks on this context fail to schedule; repeat calls are no-ops."""
        with self._lock:
            self._closed = True
            executor = self._executor
            if self._owns_executor:
                self._executor = None
        if executor is not None and self._owns_executor:
            executor.shutdown(wait=wait)


_DEFAULT_CONTEXT = TaskContext()


def get_default_context() -> TaskContext:
    return _DEFAULT_CONTEXT


def set_default_failure_handler(handler: FailureHandler | None) -> None:
    """Replace the handler used by on_complete calls that omit on_failure. None silences failures."""
    _DEFAULT_CONTEXT.set_default_failure_handler(handler)


def get_default_failure_handler() -> FailureHandler:
    return _DEFAULT_CONTEXT.default_failure_handler
