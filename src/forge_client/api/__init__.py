from .client import ApiClient
from .request import Request, data_decoder, json_decoder, with_query
from .transport import HttpxTransport

__all__ = [
    "ApiClient",
    "HttpxTransport",
    "Request",
    "data_decoder",
    "json_decoder",
    "with_query",
]
