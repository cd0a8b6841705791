from .fetcher import EagerPageIterator, PaginatedFetcher, PipelinedPageIterator
from .page import Page, Requester, page_decoder

__all__ = [
    "EagerPageIterator",
    "Page",
    "PaginatedFetcher",
    "PipelinedPageIterator",
    "Requester",
    "page_decoder",
]
