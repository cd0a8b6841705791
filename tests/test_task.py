# tests/test_task.py

from __future__ import annotations

import logging
import threading

import pytest

from forge_client.errors import NoValueError, TaskFailedError
from forge_client.tasks import (
    Mapped,
    PendingElement,
    Task,
    TaskContext,
    get_default_failure_handler,
    set_default_failure_handler,
)

from .fakes import ManualExecutor


def _double(x: int) -> int:
    return x * 2


# ---- map / flat_map laws ----


@pytest.mark.parametrize("value", [0, 7, "ab", (1, 2)])
def test_map_of_value_applies_function(value) -> None:
    assert Task.of(value).map(_double).get() == _double(value)


def test_map_identity_on_worker_task(context: TaskContext) -> None:
    t = Task.of_work(lambda: 41 + 1, context=context)
    assert t.map(lambda x: x).get(timeout=5) == t.get(timeout=5) == 42


def test_flat_map_is_associative(context: TaskContext) -> None:
    def f(x: int) -> Task[int]:
        return Task.of_work(lambda: x + 1, context=context)

    def g(x: int) -> Task[str]:
        return Task.of(f"v{x}")

    t = Task.of_work(lambda: 10, context=context)

    left = t.flat_map(f).flat_map(g)
    right = t.flat_map(lambda x: f(x).flat_map(g))
    assert left.get(timeout=5) == right.get(timeout=5) == "v11"


def test_map_runs_function_once_for_many_observers(context: TaskContext) -> None:
    calls: list[int] = []

    def fn(x: int) -> int:
        calls.append(x)
        return x + 1

    t = Task.of_work(lambda: 1, context=context).map(fn)
    assert t.get(timeout=5) == 2
    assert t.get(timeout=5) == 2
    assert t.as_future().result(timeout=5) == 2
    assert calls == [1]


def test_map_exception_becomes_failure_not_raised() -> None:
    boom = ValueError("bad mapper")

    def fn(_x: int) -> int:
        raise boom

    t = Task.of(1).map(fn)  # must not raise here

    with pytest.raises(TaskFailedError) as exc_info:
        t.get()
    assert exc_info.value.error is boom
    assert exc_info.value.__cause__ is boom


def test_failure_propagates_through_chain_without_calling_functions(context: TaskContext) -> None:
    called: list[str] = []
    t = (
        Task.of_failure(RuntimeError("down"), context=context)
        .map(lambda x: called.append("map"))
        .flat_map(lambda x: called.append("flat_map") or Task.of(x))
    )
    with pytest.raises(TaskFailedError) as exc_info:
        t.get(timeout=5)
    assert isinstance(exc_info.value.error, RuntimeError)
    assert called == []


def test_flat_map_must_return_task() -> None:
    t = Task.of(1).flat_map(lambda x: x + 1)
    with pytest.raises(TaskFailedError) as exc_info:
        t.get()
    assert isinstance(exc_info.value.error, TypeError)


# ---- long chains ----

CHAIN_LENGTH = 5000


def test_long_map_chain_resolves_without_deep_recursion() -> None:
    t = Task.of(0)
    for _ in range(CHAIN_LENGTH):
        t = t.map(lambda x: x + 1)

    assert t.get(timeout=5) == CHAIN_LENGTH
    assert t.get(timeout=5) == CHAIN_LENGTH


def test_long_flat_map_loop_resolves_without_deep_recursion() -> None:
    t = Task.of(0)
    for _ in range(CHAIN_LENGTH):
        t = t.flat_map(lambda x: Task.of(x + 1))

    assert t.get(timeout=5) == CHAIN_LENGTH
    assert t.get(timeout=5) == CHAIN_LENGTH


def test_long_chain_on_worker_task(context: TaskContext) -> None:
    t = Task.of_work(lambda: 0, context=context)
    for i in range(CHAIN_LENGTH):
        t = t.map(lambda x: x + 1) if i % 2 else t.flat_map(lambda x: Task.of_work(lambda: x + 1, context=context))

    assert t.get(timeout=30) == CHAIN_LENGTH


def test_long_chain_resumes_after_pending_flat_map() -> None:
    gate: PendingElement[int] = PendingElement(0)
    t = Task.of(0)
    for i in range(CHAIN_LENGTH):
        if i == CHAIN_LENGTH // 2:
            t = t.flat_map(lambda x: gate.task.map(lambda y: x + y))
        else:
            t = t.map(lambda x: x + 1)

    with pytest.raises(TimeoutError):
        t.get(timeout=0.05)
    gate.fulfill(100)
    assert t.get(timeout=5) == CHAIN_LENGTH - 1 + 100


def test_middle_of_started_chain_shares_its_outcome() -> None:
    calls: list[int] = []
    base = Task.of(0)
    middle = base
    for _ in range(10):
        middle = middle.map(lambda x: calls.append(x) or x + 1)
    top = middle
    for _ in range(10):
        top = top.map(lambda x: x + 1)

    assert top.get() == 20
    assert middle.get() == 10
    assert len(calls) == 10


def test_failure_while_starting_still_settles_the_task() -> None:
    broken = Mapped(object(), lambda x: x, False)
    downstream = broken.map(lambda x: x + 1)

    with pytest.raises(TaskFailedError) as first:
        downstream.get(timeout=1)
    with pytest.raises(TaskFailedError) as second:
        downstream.get(timeout=1)
    assert isinstance(first.value.error, TypeError)
    assert second.value.error is first.value.error
    with pytest.raises(TaskFailedError):
        broken.get(timeout=1)


# ---- absence ----


def test_absent_short_circuits_map_and_flat_map() -> None:
    called: list[int] = []
    absent = Task.absent()

    mapped = absent.map(lambda x: called.append(x)).flat_map(lambda x: Task.of(called.append(x)))

    assert mapped is absent
    assert mapped.is_absent()
    assert called == []
    with pytest.raises(NoValueError):
        mapped.get()
    assert mapped.get_optional() is None


def test_absence_from_worker_propagates(context: TaskContext) -> None:
    called: list[int] = []
    t = Task.of_work(lambda: Task.absent(), context=context).map(lambda x: called.append(x))

    with pytest.raises(NoValueError):
        t.get(timeout=5)
    assert called == []


# ---- and_ ----


def test_and_pairs_values(context: TaskContext) -> None:
    left = Task.of_work(lambda: "a", context=context)
    right = Task.of_work(lambda: 1, context=context)
    assert left.and_(right).get(timeout=5) == ("a", 1)
    assert left.and_(right).starmap(lambda s, n: s * (n + 1)).get(timeout=5) == "aa"


@pytest.mark.parametrize("failing_side", ["left", "right"])
def test_and_surfaces_failing_side(context: TaskContext, failing_side: str) -> None:
    error = LookupError(failing_side)
    ok = Task.of_work(lambda: 1, context=context)
    bad = Task.of_failure(error, context=context)

    pair = bad.and_(ok) if failing_side == "left" else ok.and_(bad)
    with pytest.raises(TaskFailedError) as exc_info:
        pair.get(timeout=5)
    assert exc_info.value.error is error


def test_and_left_failure_wins_when_both_fail(context: TaskContext) -> None:
    left_error = KeyError("left")
    right_error = KeyError("right")
    pair = Task.of_failure(left_error, context=context).and_(Task.of_failure(right_error, context=context))
    with pytest.raises(TaskFailedError) as exc_info:
        pair.get(timeout=5)
    assert exc_info.value.error is left_error


def test_and_failure_beats_absence(context: TaskContext) -> None:
    error = OSError("right")
    pair = Task.absent().and_(Task.of_failure(error, context=context))
    with pytest.raises(TaskFailedError) as exc_info:
        pair.get(timeout=5)
    assert exc_info.value.error is error


def test_and_with_absent_side_is_absent() -> None:
    with pytest.raises(NoValueError):
        Task.of(1).and_(Task.absent()).get()


def test_and_waits_for_both_sides(context: TaskContext) -> None:
    release = threading.Event()
    slow = Task.of_work(lambda: release.wait(5) and "slow", context=context)
    pair = Task.of("fast").and_(slow)

    with pytest.raises(TimeoutError):
        pair.get(timeout=0.05)
    release.set()
    assert pair.get(timeout=5) == ("fast", "slow")


# ---- get ----


def test_get_times_out_on_pending() -> None:
    pending: PendingElement[int] = PendingElement(0)
    with pytest.raises(TimeoutError):
        pending.task.get(timeout=0.05)


def test_resolved_get_needs_no_worker() -> None:
    executor = ManualExecutor()
    ctx = TaskContext(executor=executor)
    assert Task.of(3, context=ctx).map(_double).get() == 6
    assert executor.queue == []


# ---- on_complete ----


def test_on_complete_never_delivers_inline() -> None:
    executor = ManualExecutor()
    ctx = TaskContext(executor=executor)
    delivered: list[int] = []

    Task.of(5, context=ctx).on_complete(delivered.append)

    assert delivered == []
    assert executor.run_all() == 1
    assert delivered == [5]


def test_on_complete_delivers_on_worker_thread(context: TaskContext) -> None:
    done = threading.Event()
    seen: dict[str, object] = {}

    def on_success(value: int) -> None:
        seen["value"] = value
        seen["thread"] = threading.current_thread()
        done.set()

    Task.of(1, context=context).on_complete(on_success)

    assert done.wait(5)
    assert seen["value"] == 1
    assert seen["thread"] is not threading.current_thread()


def test_on_complete_routes_failure_to_callback(context: TaskContext, failures) -> None:
    got: list[BaseException] = []
    done = threading.Event()
    error = RuntimeError("nope")

    Task.of_failure(error, context=context).on_complete(
        lambda v: pytest.fail("success callback must not run"),
        lambda e: (got.append(e), done.set()),
    )

    assert done.wait(5)
    assert got == [error]
    assert failures.errors == []


def test_absence_without_on_failure_reaches_default_handler(context: TaskContext, failures) -> None:
    # Task.absent() itself carries no context; absence arriving through a worker does.
    Task.of_work(lambda: Task.absent(), context=context).on_complete(lambda v: pytest.fail("no value expected"))

    assert failures.event.wait(5)
    assert len(failures.errors) == 1
    assert isinstance(failures.errors[0], NoValueError)


def test_failure_without_on_failure_reaches_default_handler(context: TaskContext, failures) -> None:
    error = ConnectionError("offline")

    def work() -> int:
        raise error

    Task.of_work(work, context=context).on_complete()

    assert failures.event.wait(5)
    assert failures.errors == [error]


def test_raising_callback_is_logged(context: TaskContext, caplog: pytest.LogCaptureFixture) -> None:
    done = threading.Event()

    def on_success(_value: int) -> None:
        done.set()
        raise RuntimeError("callback bug")

    with caplog.at_level(logging.ERROR, logger="forge_client.tasks.task"):
        Task.of(1, context=context).on_complete(on_success)
        assert done.wait(5)
        context.shutdown(wait=True)

    assert any("on_success callback raised" in r.getMessage() for r in caplog.records)


def test_raising_default_handler_is_contained(caplog: pytest.LogCaptureFixture) -> None:
    def bad_handler(_error: BaseException) -> None:
        raise RuntimeError("handler bug")

    ctx = TaskContext(max_workers=1, default_failure_handler=bad_handler)
    try:
        with caplog.at_level(logging.ERROR, logger="forge_client.tasks.context"):
            Task.of_failure(ValueError("x"), context=ctx).on_complete()
            ctx.shutdown(wait=True)
    finally:
        ctx.shutdown(wait=True)

    assert any("Default failure handler raised" in r.getMessage() for r in caplog.records)


def test_shut_down_context_refuses_new_work() -> None:
    ctx = TaskContext(max_workers=1)
    assert Task.of_work(lambda: 1, context=ctx).get(timeout=5) == 1

    ctx.shutdown(wait=True)

    with pytest.raises(RuntimeError, match="shut down"):
        ctx.executor
    with pytest.raises(RuntimeError, match="shut down"):
        Task.of_work(lambda: 2, context=ctx)
    ctx.shutdown(wait=True)


def test_shutdown_before_first_use_still_closes_context() -> None:
    ctx = TaskContext(max_workers=1)
    ctx.shutdown()
    with pytest.raises(RuntimeError):
        Task.of(1, context=ctx).on_complete(lambda _v: None)


def test_process_wide_default_handler_is_swappable() -> None:
    original = get_default_failure_handler()
    try:
        seen: list[BaseException] = []
        set_default_failure_handler(seen.append)
        assert get_default_failure_handler() == seen.append

        set_default_failure_handler(None)
        silent = get_default_failure_handler()
        assert silent is not None
        silent(RuntimeError("ignored"))  # must not raise
    finally:
        set_default_failure_handler(original)


# ---- PendingElement ----


def test_pending_element_settles_once(context: TaskContext) -> None:
    pending: PendingElement[str] = PendingElement(3, context=context)
    mapped = pending.task.map(str.upper)

    assert not pending.done()
    assert pending.fulfill("x")
    assert not pending.fulfill("y")
    assert not pending.fail(RuntimeError("late"))
    assert mapped.get(timeout=5) == "X"


def test_pending_element_absent_and_failed() -> None:
    absent: PendingElement[int] = PendingElement(0)
    failed: PendingElement[int] = PendingElement(1)

    assert absent.fulfill_absent()
    assert failed.fail(ValueError("bad page"))

    with pytest.raises(NoValueError):
        absent.task.get(timeout=5)
    with pytest.raises(TaskFailedError):
        failed.task.get(timeout=5)


# ---- asyncio bridge ----


@pytest.mark.asyncio
async def test_task_is_awaitable(context: TaskContext) -> None:
    value = await Task.of_work(lambda: 20, context=context).map(lambda x: x + 1)
    assert value == 21


@pytest.mark.asyncio
async def test_awaiting_absent_raises() -> None:
    with pytest.raises(NoValueError):
        await Task.absent()
