"""Identifier validation, query operators and group functions."""

from __future__ import annotations

import unicodedata

_MAX_IDENTIFIER_BYTES = 63
_ALLOWED_PUNCTUATION = frozenset('()_.-*[]"')

_OPERATORS = {
    "eq": "=",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "in": "IN",
    "nin": "NOT IN",
    "any": "ANY",
    "some": "SOME",
    "all": "ALL",
    "notnull": "IS NOT NULL",
    "null": "IS NULL",
    "true": "IS TRUE",
    "nottrue": "IS NOT TRUE",
    "false": "IS FALSE",
    "notfalse": "IS NOT FALSE",
    "like": "LIKE",
    "ilike": "ILIKE",
}

_GROUP_FUNCTIONS = frozenset(
    {"SUM", "AVG", "MAX", "MIN", "MEDIAN", "STDDEV", "VARIANCE"}
)


class QueryError(ValueError):
    """A request cannot be turned into SQL."""


class BodyEmptyError(QueryError):
    """The request body holds no data."""

    def __init__(self, message: str = "body is empty") -> None:
        super().__init__(message)


def _is_letter(ch: str) -> bool:
    return unicodedata.category(ch).startswith("L")


def _is_digit(ch: str) -> bool:
    return unicodedata.category(ch) == "Nd"


def _is_invalid(identifier: str) -> bool:
    if not identifier:
        return True
    if len(identifier.encode("utf-8", "surrogatepass")) > _MAX_IDENTIFIER_BYTES:
        return True
    if _is_digit(identifier[0]):
        return True
    if any(
        not (_is_letter(ch) or _is_digit(ch) or ch in _ALLOWED_PUNCTUATION)
        for ch in identifier
    ):
        return True
    return identifier.count('"') % 2 != 0


def is_invalid_identifier(*identifiers: str) -> bool:
    """Tell whether any of the given identifiers is unsafe to put in SQL."""
    return any(_is_invalid(identifier) for identifier in identifiers)


def get_query_operator(op: str) -> str:
    """Map a request operator such as ``$gte`` to its SQL form."""
    key = op.replace("$", "").replace(" ", "")
    try:
        return _OPERATORS[key]
    except KeyError:
        raise QueryError("Invalid operator") from None


def normalize_group_function(param_value: str) -> str:
    """Turn ``func:field[:alias]`` into an SQL aggregate expression."""
    values = param_value.split(":")
    func = values[0].upper()
    if func not in _GROUP_FUNCTIONS:
        raise QueryError(f"this function {func} is not a valid group function")
    if len(values) < 2:
        raise QueryError(f"group function {func} needs a field")
    field = values[1]
    if field != "*":
        field = f'"{field}"'
    sql = f"{func}({field})"
    if len(values) == 3:
        sql = f'{sql} AS "{values[2]}"'
    return sql