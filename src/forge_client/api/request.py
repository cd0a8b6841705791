# src/forge_client/api/request.py

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar
from urllib.parse import urlencode

from ..ports import Decoder, Method

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Request(Generic[T]):
    """Description of one API call: where to send it and how to decode the answer."""

    endpoint: str
    decode: Decoder
    method: Method = Method.GET
    body: bytes | None = None

    @classmethod
    def get(cls, endpoint: str, decode: Decoder) -> Request[Any]:
        return cls(endpoint, decode)

    @classmethod
    def post(cls, endpoint: str, payload: Any, decode: Decoder) -> Request[Any]:
        return cls(endpoint, decode, Method.POST, _json_body(payload))

    @classmethod
    def put(cls, endpoint: str, payload: Any, decode: Decoder) -> Request[Any]:
        return cls(endpoint, decode, Method.PUT, _json_body(payload))


def _json_body(payload: Any) -> bytes:
    if isinstance(payload, bytes):
        return payload
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def with_query(endpoint: str, **params: Any) -> str:
    """Append query arguments, skipping None values; booleans are sent as true/false."""
    clean: dict[str, str] = {}
    for k, v in params.items():
        if v is None:
            continue
        clean[k] = ("true" if v else "false") if isinstance(v, bool) else str(v)
    if not clean:
        return endpoint
    sep = "&" if "?" in endpoint else "?"
    return f"{endpoint}{sep}{urlencode(clean)}"


def json_decoder(fn: Callable[[Any], T] | None = None) -> Callable[[bytes], T]:
    """decode(raw) = fn(json.loads(raw))."""

    def decode(raw: bytes) -> T:
        obj = json.loads(raw)
        return fn(obj) if fn is not None else obj

    return decode


def data_decoder(fn: Callable[[Any], T] | None = None) -> Callable[[bytes], T]:
    """Decode the API's {"data": ...} envelope and hand the payload to fn."""

    def decode(raw: bytes) -> T:
        obj = json.loads(raw)
        if not isinstance(obj, dict) or "data" not in obj:
            raise ValueError("response is missing the 'data' field")
        data = obj["data"]
        return fn(data) if fn is not None else data

    return decode
