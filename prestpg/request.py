"""The parts of an HTTP request that query building reads."""

from __future__ import annotations

import json as _json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlsplit


@dataclass
class Request:
    """An HTTP request: method, path, decoded query parameters and body."""

    method: str = "GET"
    path: str = "/"
    query: dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def from_url(
        cls, url: str, method: str = "GET", body: bytes | str | None = None
    ) -> "Request":
        """Build a request from a URL, keeping blank query values."""
        parts = urlsplit(url)
        query: dict[str, list[str]] = {}
        for key, value in parse_qsl(parts.query, keep_blank_values=True):
            query.setdefault(key, []).append(value)
        if body is None:
            data = b""
        elif isinstance(body, str):
            data = body.encode("utf-8")
        else:
            data = bytes(body)
        return cls(method=method, path=parts.path or "/", query=query, body=data)

    def get(self, key: str) -> str:
        """Return the first value of a query parameter, or ``""``."""
        values = self.query.get(key)
        return values[0] if values else ""

    def get_all(self, key: str) -> list[str]:
        """Return every value of a query parameter."""
        return list(self.query.get(key, ()))

    def has(self, key: str) -> bool:
        """Tell whether a query parameter is present, even if blank."""
        return key in self.query

    def json(self) -> Any:
        """Decode the body as JSON; raises ValueError on a bad or empty body."""
        return _json.loads(self.body)