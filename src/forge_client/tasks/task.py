# src/forge_client/tasks/task.py

"""
Task algebra.

A Task is a deferred value that completes at most once with one of:
- a value,
- absence (a well-formed "no value", e.g. HTTP 404),
- a failure (an exception carried as data).

Five variants share one contract:
- Resolved: value already known
- Absent:   the shared "no value" sentinel (Task.absent())
- Deferred: a concurrent.futures.Future fed by a worker (or fulfilled by hand)
- Mapped:   map/flat_map of another Task (lazy, memoized)
- Paired:   and_ of two Tasks

Operations are plain functions dispatching on the variant with `match`; the
variant classes only hold data.

Observation points:
- get() blocks the caller and raises TaskFailedError / NoValueError,
- on_complete() never blocks and always delivers through the context's worker pool,
- as_future() / `await task` bridge to concurrent.futures and asyncio.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Generator
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from ..errors import NoValueError, TaskFailedError
from .context import TaskContext, get_default_context

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")
V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class Outcome:
    """Final state of a Task. Exactly one of: error set, absent=True, or a value."""

    value: Any = None
    error: BaseException | None = None
    absent: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.absent


_ABSENT_OUTCOME = Outcome(absent=True)

OutcomeCallback = Callable[[Outcome], None]


class Task(Generic[T]):
    """Base of the variants below. Build Tasks with the factories, not the variant classes."""

    __slots__ = ()

    context: TaskContext | None

    # ---- factories ----

    @staticmethod
    def of(value: T, *, context: TaskContext | None = None) -> Task[T]:
        return Resolved(value, context)

    @staticmethod
    def absent() -> Task[Any]:
        return _ABSENT

    @staticmethod
    def of_work(supplier: Callable[[], Any], *, context: TaskContext | None = None) -> Task[Any]:
        """
        Run supplier on the context's worker pool (submitted right away).

        The supplier may return a Task (e.g. Task.absent()); its outcome is adopted.
        """
        ctx = context or get_default_context()
        return Deferred(ctx.executor.submit(supplier), context)

    @staticmethod
    def of_future(future: Future, *, context: TaskContext | None = None) -> Task[Any]:
        return Deferred(future, context)

    @staticmethod
    def of_failure(error: BaseException, *, context: TaskContext | None = None) -> Task[Any]:
        future: Future = Future()
        future.set_exception(error)
        return Deferred(future, context)

    # ---- combinators ----

    def map(self, fn: Callable[[T], U]) -> Task[U]:
        match self:
            case Absent():
                return _ABSENT
            case _:
                return Mapped(self, fn, False, self.context)

    def flat_map(self, fn: Callable[[T], Task[U]]) -> Task[U]:
        match self:
            case Absent():
                return _ABSENT
            case _:
                return Mapped(self, fn, True, self.context)

    def and_(self, other: Task[U]) -> Task[tuple[T, U]]:
        return Paired(self, other, self.context or other.context)

    def starmap(self, fn: Callable[..., V]) -> Task[V]:
        """Map a paired Task with fn(left, right)."""
        return self.map(lambda pair: fn(*pair))

    # ---- observation ----

    def get(self, timeout: float | None = None) -> T:
        """
        Block until the Task completes.

        Raises TaskFailedError (cause chained) on failure, NoValueError on absence,
        TimeoutError if timeout elapses first.
        """
        return _unwrap(_wait(self, timeout))

    def get_optional(self, timeout: float | None = None) -> T | None:
        """Like get(), but absence yields None."""
        outcome = _wait(self, timeout)
        if outcome.absent:
            return None
        return _unwrap(outcome)

    def is_absent(self) -> bool:
        """True only for the shared absence sentinel; pending Tasks may still turn out absent."""
        return self is _ABSENT

    def on_complete(
        self,
        on_success: Callable[[T], Any] | None = None,
        on_failure: Callable[[BaseException], Any] | None = None,
    ) -> None:
        """
        Deliver the outcome on the worker pool; never inline on the calling thread.

        Absence reaches on_failure as NoValueError. Without on_failure, failures and
        absence go to the context's default failure handler.
        """
        ctx = self.context or get_default_context()

        def schedule(outcome: Outcome) -> None:
            ctx.executor.submit(_dispatch, ctx, outcome, on_success, on_failure)

        _observe(self, schedule)

    def as_future(self) -> Future:
        """Future resolving to the value; failure -> TaskFailedError, absence -> NoValueError."""
        future: Future = Future()

        def settle(outcome: Outcome) -> None:
            if outcome.error is not None:
                future.set_exception(_wrap_failure(outcome.error))
            elif outcome.absent:
                future.set_exception(NoValueError())
            else:
                future.set_result(outcome.value)

        _observe(self, settle)
        return future

    def __await__(self) -> Generator[Any, None, T]:
        return asyncio.wrap_future(self.as_future()).__await__()


@dataclass(eq=False, slots=True)
class Resolved(Task[T]):
    value: T
    context: TaskContext | None = None


@dataclass(eq=False, slots=True)
class Absent(Task[Any]):
    context: TaskContext | None = None


@dataclass(eq=False, slots=True)
class Deferred(Task[T]):
    future: Future
    context: TaskContext | None = None


@dataclass(eq=False, slots=True)
class Mapped(Task[U]):
    source: Task[Any]
    fn: Callable[[Any], Any]
    flat: bool
    context: TaskContext | None = None
    _cell: Future | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)


@dataclass(eq=False, slots=True)
class Paired(Task[tuple[T, U]]):
    left: Task[T]
    right: Task[U]
    context: TaskContext | None = None
    _cell: Future | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)


_ABSENT = Absent()


# --------------------------------------------------------------------------------------
# Resolution
# --------------------------------------------------------------------------------------


def _observe(task: Task[Any], callback: OutcomeCallback) -> None:
    """
    Call callback(outcome) once the task completes.

    Runs inline when the outcome is already known, otherwise on whichever thread
    completes the task. Internal only: user callbacks go through on_complete.
    """
    match task:
        case Resolved(value=value):
            callback(Outcome(value=value))
        case Absent():
            callback(_ABSENT_OUTCOME)
        case Deferred(future=future):
            future.add_done_callback(lambda f: _adopt_future(f, callback))
        case Mapped() | Paired():
            _start(task).add_done_callback(lambda f: callback(f.result()))
        case _:
            raise TypeError(f"Unknown task variant: {type(task).__name__}")


def _adopt_future(future: Future, callback: OutcomeCallback) -> None:
    try:
        result = future.result()
    except BaseException as e:
        callback(Outcome(error=e))
        return
    if isinstance(result, Task):
        _observe(result, callback)
    else:
        callback(Outcome(value=result))


Link = tuple[Mapped, Future]


def _start(task: Mapped[Any] | Paired[Any, Any]) -> Future:
    """
    Start the recipe once; every later observer shares the same memoized cell.

    A Mapped chain is claimed and resolved in a loop, not link by link on the stack,
    so chain length is bounded only by memory. Whatever goes wrong while starting
    ends up in the cell as a failure; a claimed cell is never left pending.
    """
    with task._lock:
        if task._cell is not None:
            return task._cell
        cell: Future = Future()
        task._cell = cell

    match task:
        case Mapped():
            links: list[Link] = [(task, cell)]
            try:
                base = _claim_chain(links)
                _observe(base, lambda outcome: _drive(outcome, links, 0))
            except Exception as e:
                _fail_links(links, 0, e)
        case Paired(left=left, right=right):
            try:
                _join(left, right, cell)
            except Exception as e:
                _settle_cell(cell, Outcome(error=e))
    return cell


def _claim_chain(links: list[Link]) -> Task[Any]:
    """
    Claim the cell of every not-yet-started Mapped below links[0], appending each.

    Leaves links innermost first and returns the Task the chain rests on: a leaf
    or an already started Mapped.
    """
    source = links[0][0].source
    while isinstance(source, Mapped):
        with source._lock:
            if source._cell is not None:
                break
            inner: Future = Future()
            source._cell = inner
        links.append((source, inner))
        source = source.source
    links.reverse()
    return source


def _drive(outcome: Outcome, links: list[Link], i: int) -> None:
    """Push the outcome of links[i]'s source through links[i:], settling each cell."""
    try:
        while i < len(links):
            link, cell = links[i]
            if outcome.ok:
                step = _apply(link, outcome.value)
                if isinstance(step, Task):
                    landed = _land_or_park(step, links, i)
                    if landed is None:
                        return
                    step = landed
                outcome = step
            cell.set_result(outcome)
            i += 1
    except Exception as e:
        _fail_links(links, i, e)


def _land_or_park(step: Task[Any], links: list[Link], i: int) -> Outcome | None:
    """
    Outcome of the Task a flat_map link returned, if it lands while being observed.

    Otherwise links[i:] are parked on it and resumed by whichever thread completes it.
    """
    lock = threading.Lock()
    landed: list[Outcome] = []
    parked = False

    def land(outcome: Outcome) -> None:
        with lock:
            if not parked:
                landed.append(outcome)
                return
        _resume(outcome, links, i)

    _observe(step, land)
    with lock:
        if landed:
            return landed[0]
        parked = True
    return None


def _resume(outcome: Outcome, links: list[Link], i: int) -> None:
    _settle_cell(links[i][1], outcome)
    _drive(outcome, links, i + 1)


def _apply(link: Mapped[Any], value: Any) -> Outcome | Task[Any]:
    """Outcome of one link, or the Task a flat_map link still has to wait for."""
    try:
        result = link.fn(value)
    except Exception as e:
        return Outcome(error=e)
    if not link.flat:
        return Outcome(value=result)
    if not isinstance(result, Task):
        return Outcome(error=TypeError(f"flat_map function returned {type(result).__name__}, not a Task"))
    ready = _peek(result)
    return result if ready is None else ready


def _peek(task: Task[Any]) -> Outcome | None:
    """Outcome of task if it is known right now (starting it if needed), else None."""
    while True:
        match task:
            case Resolved(value=value):
                return Outcome(value=value)
            case Absent():
                return _ABSENT_OUTCOME
            case Deferred(future=future):
                if not future.done():
                    return None
                try:
                    result = future.result()
                except BaseException as e:
                    return Outcome(error=e)
                if not isinstance(result, Task):
                    return Outcome(value=result)
                task = result
            case Mapped() | Paired():
                cell = _start(task)
                return cell.result() if cell.done() else None
            case _:
                raise TypeError(f"Unknown task variant: {type(task).__name__}")


def _settle_cell(cell: Future, outcome: Outcome) -> None:
    # first outcome wins
    with contextlib.suppress(InvalidStateError):
        cell.set_result(outcome)


def _fail_links(links: list[Link], i: int, error: BaseException) -> None:
    failed = Outcome(error=error)
    for _, cell in links[i:]:
        _settle_cell(cell, failed)


def _join(left: Task[Any], right: Task[Any], cell: Future) -> None:
    slots: list[Outcome | None] = [None, None]
    lock = threading.Lock()

    def arrive(i: int, outcome: Outcome) -> None:
        with lock:
            slots[i] = outcome
            first, second = slots
            if first is None or second is None:
                return
        # left failure wins, then right failure, then absence
        if first.error is not None:
            cell.set_result(first)
        elif second.error is not None:
            cell.set_result(second)
        elif first.absent or second.absent:
            cell.set_result(_ABSENT_OUTCOME)
        else:
            cell.set_result(Outcome(value=(first.value, second.value)))

    _observe(left, lambda o: arrive(0, o))
    _observe(right, lambda o: arrive(1, o))


def _wait(task: Task[Any], timeout: float | None) -> Outcome:
    match task:
        case Resolved(value=value):
            return Outcome(value=value)
        case Absent():
            return _ABSENT_OUTCOME
    box: Future = Future()
    _observe(task, box.set_result)
    return box.result(timeout)


def _wrap_failure(error: BaseException) -> TaskFailedError:
    wrapped = TaskFailedError(error)
    wrapped.__cause__ = error
    return wrapped


def _unwrap(outcome: Outcome) -> Any:
    if outcome.error is not None:
        raise _wrap_failure(outcome.error)
    if outcome.absent:
        raise NoValueError()
    return outcome.value


def _dispatch(
    ctx: TaskContext,
    outcome: Outcome,
    on_success: Callable[[Any], Any] | None,
    on_failure: Callable[[BaseException], Any] | None,
) -> None:
    if outcome.ok:
        if on_success is None:
            return
        try:
            on_success(outcome.value)
        except Exception:
            logger.exception("on_success callback raised")
        return

    error = outcome.error if outcome.error is not None else NoValueError()
    if on_failure is None:
        ctx.report_failure(error)
        return
    try:
        on_failure(error)
    except Exception:
        logger.exception("on_failure callback raised while handling %r", error)
