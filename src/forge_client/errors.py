# src/forge_client/errors.py

"""
Exception taxonomy.

Two families:
- composition misuse (observing an absent Task, reading past the end of a paginated sequence),
- transport/decode failures surfaced by the HTTP layer and carried as Task failures.

Absence itself is not an exception; it only becomes NoValueError at an explicit observation point.
"""

from __future__ import annotations


class ForgeClientError(Exception):
    """Base class for every error raised by forge_client."""


class NoValueError(ForgeClientError):
    """Raised when a Task completed with absence rather than a value."""

    def __init__(self, message: str = "Task completed without a value.") -> None:
        super().__init__(message)


class NoMoreElementsError(ForgeClientError):
    """Raised by next() once a paginated sequence is exhausted."""

    def __init__(self, message: str = "No more elements left.") -> None:
        super().__init__(message)


class TaskFailedError(ForgeClientError):
    """Wraps the failure of a Task when it is surfaced through get()."""

    def __init__(self, error: BaseException) -> None:
        super().__init__(f"Task failed: [{error.__class__.__name__}] {error}")
        self.error = error


class TransportError(ForgeClientError):
    """The request never produced an HTTP response (connect/read failure, etc.)."""


class ApiStatusError(ForgeClientError):
    """The API answered with a status code the client does not treat as success or absence."""

    def __init__(self, status_code: int, body: bytes | None = None) -> None:
        super().__init__(f"Unexpected status code {status_code}.")
        self.status_code = status_code
        self.body = body


class DecodeError(ForgeClientError):
    """The response body could not be decoded into the requested type."""
