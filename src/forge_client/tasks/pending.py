# src/forge_client/tasks/pending.py

from __future__ import annotations

from concurrent.futures import Future, InvalidStateError
from typing import Any, Generic, TypeVar

from .context import TaskContext
from .task import Task

T = TypeVar("T")


class PendingElement(Generic[T]):
    """
    Placeholder for a value that is not known yet.

    `task` can be composed and observed right away; it completes when one of
    fulfill / fulfill_absent / fail is called. Only the first call counts, later
    ones return False. A placeholder nobody settles stays pending forever.
    """

    __slots__ = ("index", "task", "_future")

    def __init__(self, index: int, *, context: TaskContext | None = None) -> None:
        self.index = index
        self._future: Future = Future()
        self.task: Task[T] = Task.of_future(self._future, context=context)

    def fulfill(self, value: T) -> bool:
        return self._settle(value)

    def fulfill_absent(self) -> bool:
        return self._settle(Task.absent())

    def fail(self, error: BaseException) -> bool:
        try:
            self._future.set_exception(error)
        except InvalidStateError:
            return False
        return True

    def done(self) -> bool:
        return self._future.done()

    def _settle(self, result: Any) -> bool:
        try:
            self._future.set_result(result)
        except InvalidStateError:
            return False
        return True

    def __repr__(self) -> str:
        state = "done" if self._future.done() else "pending"
        return f"PendingElement(index={self.index}, {state})"
