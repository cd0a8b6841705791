# src/forge_client/paging/page.py

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ..tasks import Task

T = TypeVar("T")

Requester = Callable[[int, int], Task["Page[T]"]]
"""(index, page_size) -> Task[Page[T]]"""


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    """
    One fetched page of a remote collection.

    total_count, when present, is authoritative for the sequence length and may
    differ from one page to the next.
    """

    items: tuple[T, ...]
    start_index: int
    page_size: int
    total_count: int | None = None

    def __post_init__(self) -> None:
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")
        if self.start_index < 0:
            raise ValueError(f"start_index must be >= 0, got {self.start_index}")
        if len(self.items) > self.page_size:
            raise ValueError(f"page holds {len(self.items)} items but page_size is {self.page_size}")

    @property
    def returned_count(self) -> int:
        return len(self.items)

    @property
    def end_index(self) -> int:
        return self.start_index + len(self.items)

    @classmethod
    def of(cls, items, start_index: int, page_size: int, total_count: int | None = None) -> Page[T]:
        return cls(tuple(items), start_index, page_size, total_count)

    @classmethod
    def from_envelope(
        cls,
        obj: Mapping[str, Any],
        item_decoder: Callable[[Any], T] | None = None,
    ) -> Page[T]:
        """
        Read the API's paginated envelope:

            {"data": [...], "pagination": {"index": 0, "pageSize": 50,
                                           "resultCount": 50, "totalCount": 125}}
        """
        if not isinstance(obj, Mapping):
            raise ValueError(f"paginated envelope must be an object, got {type(obj).__name__}")

        data = obj.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise ValueError("paginated envelope 'data' must be a list")

        meta = obj.get("pagination") or {}
        if not isinstance(meta, Mapping):
            raise ValueError("paginated envelope 'pagination' must be an object")

        items = [item_decoder(x) for x in data] if item_decoder is not None else list(data)

        start_index = int(meta.get("index") or 0)
        page_size = max(int(meta.get("pageSize") or 0), len(items), 1)
        raw_total = meta.get("totalCount")
        total_count = None if raw_total is None else int(raw_total)

        return cls(tuple(items), start_index, page_size, total_count)


def page_decoder(item_decoder: Callable[[Any], T] | None = None) -> Callable[[bytes], Page[T]]:
    """Build a decode(raw_body) function for requests returning a paginated envelope."""

    def decode(raw: bytes) -> Page[T]:
        return Page.from_envelope(json.loads(raw), item_decoder)

    return decode
