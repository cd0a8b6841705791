# src/forge_client/paging/fetcher.py

"""
Paginated fetcher.

Turns a paged remote resource (requester(index, page_size) -> Task[Page[T]]) into a
single forward-only sequence. Two flavors:

- EagerPageIterator: next() blocks until the element's page is there and returns it.
- PipelinedPageIterator: next() returns a Task right away; pages are requested as soon
  as the previous page's elements have all been handed out (requested, not delivered),
  so network latency overlaps with the caller's work on earlier elements.

Both flavors fetch the first page on construction. Common rules:
- the most recent page's total_count is authoritative (it may grow or shrink),
- a page resolving to absence truncates the sequence at that page's start,
- pages may be short anywhere; with no total_count a short page marks the end.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Generic, TypeVar

from ..errors import NoMoreElementsError, NoValueError
from ..tasks import PendingElement, Task, TaskContext
from .page import Page, Requester

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ABSENT = object()


def _total_after(page: Page[Any], page_size: int) -> int | None:
    """Sequence length implied by page; None means unknown (keep fetching)."""
    if page.total_count is not None:
        return max(0, page.total_count)
    if page.returned_count < page_size:
        return page.end_index
    return None


def _resolve_page_size(page_size: int | None) -> int:
    if page_size is None:
        from ..config import get_settings

        page_size = get_settings().page_size
    page_size = int(page_size)
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    return page_size


class EagerPageIterator(Generic[T]):
    """Blocking flavor. Owned by the calling thread; not meant to be shared."""

    def __init__(self, requester: Requester, page_size: int, first_page: Page[T] | None) -> None:
        self._requester = requester
        self._page_size = page_size

        self._cursor = 0
        self._total: int | None = 0
        self._buffer: tuple[T, ...] = ()
        self._buffer_pos = 0

        if first_page is not None:
            self._accept(first_page)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def known_total(self) -> int | None:
        return self._total

    def has_next(self) -> bool:
        if self._total is not None:
            return self._cursor < self._total
        if self._buffer_pos < len(self._buffer):
            return True
        # Unknown length and nothing buffered: the only way to know is to ask.
        return self._fetch_next()

    def next(self) -> T:
        if not self.has_next():
            raise NoMoreElementsError()
        if self._buffer_pos >= len(self._buffer):
            # The refreshed total may have shrunk below the cursor.
            if not self._fetch_next() or not self._within_total():
                raise NoMoreElementsError()

        item = self._buffer[self._buffer_pos]
        self._buffer_pos += 1
        self._cursor += 1
        return item

    def __iter__(self) -> EagerPageIterator[T]:
        return self

    def __next__(self) -> T:
        try:
            return self.next()
        except NoMoreElementsError:
            raise StopIteration from None

    def _within_total(self) -> bool:
        return self._total is None or self._cursor < self._total

    def _fetch_next(self) -> bool:
        """Block on the page starting at the cursor. False when the sequence ends there."""
        logger.debug("Fetching page index=%s size=%s", self._cursor, self._page_size)
        page = self._requester(self._cursor, self._page_size).get_optional()
        if page is None or page.end_index <= self._cursor:
            logger.debug("Page index=%s came back empty; truncating", self._cursor)
            self._truncate(self._cursor)
            return False
        self._accept(page)
        return self._buffer_pos < len(self._buffer)

    def _accept(self, page: Page[T]) -> None:
        self._buffer = page.items
        self._buffer_pos = max(0, self._cursor - page.start_index)
        self._total = _total_after(page, self._page_size)
        if not page.items:
            self._truncate(page.start_index)

    def _truncate(self, at: int) -> None:
        self._total = at if self._total is None else min(self._total, at)
        self._buffer = ()
        self._buffer_pos = 0


class PipelinedPageIterator(Generic[T]):
    """
    Non-blocking flavor: next() hands out Tasks.

    Every mutation of cursor, buffered pages and placeholders happens under one lock,
    whether it comes from next() on the caller's thread or from a page arriving on the
    worker pool. Placeholders are settled outside the lock, after being removed from the
    pending map, so each one has exactly one writer.

    Abandoning the iterator early leaves the remaining placeholders pending forever.
    """

    def __init__(
        self,
        requester: Requester,
        page_size: int,
        first_page: Page[T] | None,
        *,
        context: TaskContext | None = None,
    ) -> None:
        self._requester = requester
        self._page_size = page_size
        self._context = context
        self._lock = threading.Lock()

        self._cursor = 0
        self._total: int | None = 0
        self._pages: dict[int, tuple[T, ...]] = {}
        self._failed: dict[int, BaseException] = {}
        self._pending: dict[int, PendingElement[T]] = {}
        self._requested_until = 0
        # Set once a page comes back absent or empty; later pages never reopen the sequence past it.
        self._truncated_at: int | None = None

        if first_page is not None:
            self._requested_until = page_size
            settlements, gaps = self._store(first_page)
            _settle(settlements)
            self._issue_all(gaps)

    @property
    def cursor(self) -> int:
        with self._lock:
            return self._cursor

    @property
    def known_total(self) -> int | None:
        with self._lock:
            return self._total

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def has_next(self) -> bool:
        with self._lock:
            return self._has_next_locked()

    def next(self) -> Task[T]:
        with self._lock:
            if not self._has_next_locked():
                raise NoMoreElementsError()
            index = self._cursor
            self._cursor += 1
            task = self._task_for(index)
            starts = self._plan_requests(index)
            self._prune()
        self._issue_all(starts)
        return task

    def __iter__(self) -> PipelinedPageIterator[T]:
        return self

    def __next__(self) -> Task[T]:
        try:
            return self.next()
        except NoMoreElementsError:
            raise StopIteration from None

    # ---- bookkeeping (call with the lock held) ----

    def _has_next_locked(self) -> bool:
        return self._total is None or self._cursor < self._total

    def _task_for(self, index: int) -> Task[T]:
        for start, items in self._pages.items():
            if start <= index < start + len(items):
                return Task.of(items[index - start], context=self._context)

        for start, error in self._failed.items():
            if start <= index < start + self._page_size:
                return Task.of_failure(error, context=self._context)

        pending: PendingElement[T] = PendingElement(index, context=self._context)
        self._pending[index] = pending
        return pending.task

    def _plan_requests(self, index: int) -> list[int]:
        starts: list[int] = []
        # The page holding index was never asked for (e.g. the total grew after prefetch stopped).
        while index >= self._requested_until:
            starts.append(self._requested_until)
            self._requested_until += self._page_size

        # Last requested element handed out: ask for the following page now.
        if index == self._requested_until - 1 and self._may_have_more(self._requested_until):
            starts.append(self._requested_until)
            self._requested_until += self._page_size
        return starts

    def _may_have_more(self, at: int) -> bool:
        return self._total is None or at < self._total

    def _prune(self) -> None:
        for start in [s for s, items in self._pages.items() if s + len(items) <= self._cursor]:
            del self._pages[start]

    def _store(self, page: Page[T]) -> tuple[list[tuple[PendingElement[T], Any]], list[int]]:
        """Record an arrived page; return placeholder settlements and gap requests to issue."""
        settlements: list[tuple[PendingElement[T], Any]] = []
        start = page.start_index

        if not page.items:
            return self._truncate(start), []

        bound = self._truncated_at
        if bound is not None and start >= bound:
            logger.debug("Ignoring page index=%s past truncation at %s", start, bound)
            return settlements, []

        total = _total_after(page, self._page_size)
        if bound is not None:
            total = bound if total is None else min(total, bound)
        self._total = total
        self._pages[start] = page.items

        for offset, item in enumerate(page.items):
            if total is not None and start + offset >= total:
                break
            pending = self._pending.pop(start + offset, None)
            if pending is not None:
                settlements.append((pending, item))

        if self._total is not None:
            settlements.extend(self._drop_pending_from(self._total))

        # A short page that is not the last one leaves a hole before the next requested page.
        gaps: list[int] = []
        end = page.end_index
        if page.returned_count < self._page_size and self._total is not None and end < self._total:
            gaps.append(end)

        self._prune()
        return settlements, gaps

    def _truncate(self, at: int) -> list[tuple[PendingElement[T], Any]]:
        self._truncated_at = at if self._truncated_at is None else min(self._truncated_at, at)
        self._total = at if self._total is None else min(self._total, at)
        return self._drop_pending_from(self._total)

    def _drop_pending_from(self, at: int) -> list[tuple[PendingElement[T], Any]]:
        return [(self._pending.pop(i), _ABSENT) for i in sorted(i for i in self._pending if i >= at)]

    # ---- page requests ----

    def _issue_all(self, starts: list[int]) -> None:
        for start in starts:
            self._issue(start)

    def _issue(self, start: int) -> None:
        logger.debug("Requesting page index=%s size=%s", start, self._page_size)
        try:
            task = self._requester(start, self._page_size)
        except Exception as e:
            task = Task.of_failure(e, context=self._context)

        task.on_complete(
            lambda page: self._on_page(page),
            lambda error: self._on_page_failed(start, error),
        )

    def _on_page(self, page: Page[T]) -> None:
        with self._lock:
            settlements, gaps = self._store(page)
        _settle(settlements)
        self._issue_all(gaps)

    def _on_page_failed(self, start: int, error: BaseException) -> None:
        if isinstance(error, NoValueError):
            logger.debug("Page index=%s is absent; truncating sequence", start)
            with self._lock:
                settlements = self._truncate(start)
            _settle(settlements)
            return

        logger.warning("Page request index=%s failed: [%s] %s", start, error.__class__.__name__, error)
        with self._lock:
            self._failed[start] = error
            end = start + self._page_size
            failing = [self._pending.pop(i) for i in sorted(i for i in self._pending if start <= i < end)]
        for pending in failing:
            pending.fail(error)


def _settle(settlements: list[tuple[PendingElement[Any], Any]]) -> None:
    for pending, value in settlements:
        if value is _ABSENT:
            pending.fulfill_absent()
        else:
            pending.fulfill(value)


class PaginatedFetcher:
    """Entry points. Each call starts a fresh, single-pass sequence."""

    @staticmethod
    def create(
        requester: Requester,
        page_size: int | None = None,
        *,
        pipelined: bool = False,
        context: TaskContext | None = None,
    ) -> EagerPageIterator[Any] | PipelinedPageIterator[Any]:
        size = _resolve_page_size(page_size)
        first_page = _fetch_first_page(requester, size)
        if pipelined:
            return PipelinedPageIterator(requester, size, first_page, context=context)
        return EagerPageIterator(requester, size, first_page)

    @staticmethod
    def eager(requester: Requester, page_size: int | None = None) -> EagerPageIterator[Any]:
        size = _resolve_page_size(page_size)
        return EagerPageIterator(requester, size, _fetch_first_page(requester, size))

    @staticmethod
    def pipelined(
        requester: Requester,
        page_size: int | None = None,
        *,
        context: TaskContext | None = None,
    ) -> PipelinedPageIterator[Any]:
        size = _resolve_page_size(page_size)
        return PipelinedPageIterator(requester, size, _fetch_first_page(requester, size), context=context)


def _fetch_first_page(requester: Requester, page_size: int) -> Page[Any] | None:
    page = requester(0, page_size).get_optional()
    if page is None:
        logger.debug("First page is absent; sequence is empty")
    else:
        logger.debug(
            "First page: returned=%s total=%s size=%s",
            page.returned_count,
            page.total_count,
            page_size,
        )
    return page
