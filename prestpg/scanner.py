"""Scanning of JSON query results into Python containers and objects."""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_IMMUTABLE = (type(None), bool, int, float, complex, str, bytes, tuple, frozenset, range)


class ScanError(Exception):
    """A result could not be scanned into the given target."""


class NotATargetError(ScanError):
    """The target cannot be filled in place."""

    def __init__(self, message: str = "item to input data is not a writable container") -> None:
        super().__init__(message)


class UnsupportedTypeError(ScanError):
    """The target has a type that results cannot be scanned into."""

    def __init__(self, message: str = "item to input data has an unsupported type") -> None:
        super().__init__(message)


class RowCountError(ScanError):
    """More than one row was returned where one was expected."""

    def __init__(self, count: int) -> None:
        super().__init__("rows returned is not 1")
        self.count = count


def validate_type(target: Any) -> str:
    """Return the kind of target ("list", "dict" or "object") or raise."""
    if isinstance(target, list):
        return "list"
    if isinstance(target, dict):
        return "dict"
    if isinstance(target, _IMMUTABLE):
        raise NotATargetError()
    if hasattr(target, "__dict__") and not isinstance(target, type) and not callable(target):
        return "object"
    raise UnsupportedTypeError()


def _fill(target: Any, record: dict) -> None:
    if isinstance(target, dict):
        target.update(record)
        return
    if dataclasses.is_dataclass(target):
        names = {f.name.lower(): f.name for f in dataclasses.fields(target)}
        for key, value in record.items():
            name = key if key in names.values() else names.get(key.lower())
            if name is not None:
                setattr(target, name, value)
        return
    for key, value in record.items():
        setattr(target, key, value)


@dataclass
class PrestScanner:
    """Result of a database operation: JSON bytes and an optional error."""

    data: bytes | None = None
    error: Exception | None = None
    is_query: bool = False

    def scan(self, target: Any) -> int:
        """Fill ``target`` from the JSON result and return the row count."""
        logger.debug("database return: %s", (self.data or b"").decode("utf-8", "replace"))
        kind = validate_type(target)
        if self.is_query:
            return self._scan_query(kind, target)
        return self._scan_not_query(kind, target)

    def _decode(self) -> Any:
        try:
            return json.loads(self.data or b"")
        except ValueError as exc:
            raise ScanError(str(exc)) from exc

    def _scan_query(self, kind: str, target: Any) -> int:
        decoded = self._decode()
        if kind == "list":
            if decoded is None:
                return len(target)
            if not isinstance(decoded, list):
                raise ScanError("cannot decode a non-array result into a list")
            target[:] = decoded
            return len(target)
        if not isinstance(decoded, list) or not all(isinstance(row, dict) for row in decoded):
            raise ScanError("query result is not an array of objects")
        if not decoded:
            return 0
        if len(decoded) != 1:
            raise RowCountError(len(decoded))
        _fill(target, decoded[0])
        return 1

    def _scan_not_query(self, kind: str, target: Any) -> int:
        if kind == "list":
            raise UnsupportedTypeError()
        decoded = self._decode()
        if decoded is None:
            return 1
        if not isinstance(decoded, dict):
            raise ScanError("result is not a JSON object")
        _fill(target, decoded)
        return 1