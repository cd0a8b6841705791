# src/forge_client/ports.py

from __future__ import annotations

"""
Ports (interfaces) between the core and the HTTP/JSON layer.

The core depends on Protocols instead of concrete implementations.
This keeps the transport swappable (httpx, a test double, a recorded fixture)
and makes testing easier.
"""

from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

if TYPE_CHECKING:
    from .tasks import Task

T = TypeVar("T")

RawResponse = tuple[int, bytes | None]
# (status_code, raw body or None when the server sent nothing)

Decoder = Callable[[bytes], Any]
# decode(raw_body) -> T; may raise on malformed input.


class Method(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"


class Transport(Protocol):
    """Performs one HTTP exchange and reports (status, body) as a Task."""

    def perform(self, endpoint: str, method: Method, body: bytes | None = None) -> Task[RawResponse]: ...
