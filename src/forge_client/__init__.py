"""
forge_client: Task composition and lazy pagination for a key-authenticated JSON/HTTP API.
"""

from .api import ApiClient, HttpxTransport, Request
from .errors import (
    ApiStatusError,
    DecodeError,
    ForgeClientError,
    NoMoreElementsError,
    NoValueError,
    TaskFailedError,
    TransportError,
)
from .paging import EagerPageIterator, Page, PaginatedFetcher, PipelinedPageIterator
from .ports import Method
from .tasks import (
    PendingElement,
    Task,
    TaskContext,
    get_default_context,
    get_default_failure_handler,
    set_default_failure_handler,
)

__version__ = "0.1.0"

__all__ = [
    "ApiClient",
    "ApiStatusError",
    "DecodeError",
    "EagerPageIterator",
    "ForgeClientError",
    "HttpxTransport",
    "Method",
    "NoMoreElementsError",
    "NoValueError",
    "Page",
    "PaginatedFetcher",
    "PendingElement",
    "PipelinedPageIterator",
    "Request",
    "Task",
    "TaskContext",
    "TaskFailedError",
    "TransportError",
    "get_default_context",
    "get_default_failure_handler",
    "set_default_failure_handler",
]
