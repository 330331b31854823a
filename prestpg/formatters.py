"""Conversion of Python values into PostgreSQL array literals."""

from __future__ import annotations

from typing import Any

_NOT_TEXTUAL = (float, complex, bytes, bytearray, dict, set, frozenset)


def _is_stringer(value: Any) -> bool:
    """Tell whether a value defines its own text form."""
    if isinstance(value, _NOT_TEXTUAL):
        return False
    return type(value).__str__ is not object.__str__


def format_array(value: Any) -> str:
    """Format a value as a PostgreSQL array literal or array element.

    Sequences become ``{a,b,c}``; strings are double quoted with backslashes
    and quotes escaped; integers are written as they are; objects with their
    own ``__str__`` are formatted as strings.  Anything else gives ``""``.
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        body = ""
        for item in value:
            if body:
                body += ","
            body += format_array(item)
        return "{" + body + "}"
    if _is_stringer(value):
        return format_array(str(value))
    return ""