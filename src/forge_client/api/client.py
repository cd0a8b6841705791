# src/forge_client/api/client.py

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from ..errors import ApiStatusError, DecodeError, TransportError
from ..paging import EagerPageIterator, Page, PaginatedFetcher, PipelinedPageIterator
from ..ports import RawResponse, Transport
from ..tasks import Task, TaskContext
from .request import Request

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOT_FOUND = 404
UNAUTHORIZED = 401
FORBIDDEN = 403


class ApiClient:
    """
    Turns Request descriptions into Tasks.

    Status handling:
    - 404, or a success with an empty body -> absence
    - 2xx -> request.decode(body); a raising decoder -> DecodeError failure
    - anything else -> ApiStatusError failure
    """

    def __init__(
        self,
        transport: Transport,
        *,
        context: TaskContext | None = None,
        page_size: int | None = None,
    ) -> None:
        self._transport = transport
        self._context = context
        self._page_size = page_size

    @property
    def context(self) -> TaskContext | None:
        return self._context

    def execute(self, request: Request[T]) -> Task[T]:
        return self._perform(request).flat_map(lambda response: self._decode(request, response))

    def paginated(
        self,
        request_for_page: Callable[[int, int], Request[Page[T]]],
        *,
        page_size: int | None = None,
        pipelined: bool = False,
    ) -> EagerPageIterator[T] | PipelinedPageIterator[T]:
        """Expose a paged endpoint as one sequence; blocks until the first page is in."""

        def requester(index: int, size: int) -> Task[Page[T]]:
            return self.execute(request_for_page(index, size))

        return PaginatedFetcher.create(
            requester,
            page_size or self._page_size,
            pipelined=pipelined,
            context=self._context,
        )

    def is_authorized(self, check: Request[Any]) -> bool:
        """Send check and report whether the key was accepted (anything but 401/403)."""
        try:
            status, _ = self._perform(check).get()
        except Exception:
            logger.exception("Could not check if the API key is valid.")
            return False
        return status not in (UNAUTHORIZED, FORBIDDEN)

    def _perform(self, request: Request[Any]) -> Task[RawResponse]:
        try:
            return self._transport.perform(request.endpoint, request.method, request.body)
        except Exception as e:
            error = TransportError(f"{request.method} {request.endpoint} could not be sent: {e}")
            error.__cause__ = e
            return Task.of_failure(error, context=self._context)

    def _decode(self, request: Request[T], response: RawResponse) -> Task[T]:
        status, raw = response

        if status == NOT_FOUND:
            logger.debug("%s %s -> 404, treating as absent", request.method, request.endpoint)
            return Task.absent()

        if not 200 <= status < 300:
            logger.info("%s %s -> unexpected status %s", request.method, request.endpoint, status)
            return Task.of_failure(ApiStatusError(status, raw), context=self._context)

        if not raw:
            return Task.absent()

        try:
            value = request.decode(raw)
        except Exception as e:
            error = DecodeError(f"Could not decode response of {request.method} {request.endpoint}: {e}")
            error.__cause__ = e
            return Task.of_failure(error, context=self._context)

        return Task.of(value, context=self._context)
