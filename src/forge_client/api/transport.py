# src/forge_client/api/transport.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import TransportError
from ..ports import Method, RawResponse
from ..tasks import Task, TaskContext

logger = logging.getLogger(__name__)


def _make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(
        connect=connect_s,
        read=read_s,
        write=10.0,
        pool=connect_s,
    )


class HttpxTransport:
    """
    Default Transport on top of a synchronous httpx.Client.

    Each perform() runs on the context's worker pool and yields (status, body).
    Connection/read errors become TransportError failures; status codes are left
    for the caller to interpret.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        connect_timeout: float = 5.0,
        read_timeout: float = 25.0,
        context: TaskContext | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._context = context
        self._headers: dict[str, str] = {"Accept": "application/json"}
        if api_key:
            self._headers["x-api-key"] = api_key

        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=_make_timeout(connect_timeout, read_timeout))

    @classmethod
    def from_settings(cls, settings: Any = None, *, context: TaskContext | None = None) -> HttpxTransport:
        """
        Build a transport from Settings.

        IMPORTANT: no secrets are read at import time; the API key is checked here.
        """
        if settings is None:
            from ..config import get_settings

            settings = get_settings()

        api_key = getattr(settings, "api_key", None)
        if not api_key or not str(api_key).strip():
            raise RuntimeError("API key is not set. Set FORGE_API_KEY in your .env.")

        return cls(
            str(settings.base_url),
            str(api_key).strip(),
            connect_timeout=float(settings.connect_timeout),
            read_timeout=float(settings.read_timeout),
            context=context,
        )

    def perform(self, endpoint: str, method: Method, body: bytes | None = None) -> Task[RawResponse]:
        return Task.of_work(lambda: self._send(endpoint, Method(method), body), context=self._context)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _send(self, endpoint: str, method: Method, body: bytes | None) -> RawResponse:
        url = f"{self._base_url}{endpoint}"
        headers = dict(self._headers)
        if body is not None and method in (Method.POST, Method.PUT):
            headers["Content-Type"] = "application/json"

        try:
            response = self._client.request(method.value, url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.info("HTTP %s %s failed (%s)", method.value, endpoint, e.__class__.__name__)
            raise TransportError(f"{method.value} {endpoint} failed: {e}") from e

        logger.debug("HTTP %s %s -> %s", method.value, endpoint, response.status_code)
        return response.status_code, (response.content or None)
