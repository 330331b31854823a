"""Table and field permissions taken from the access configuration."""

from __future__ import annotations

from .clauses import GROUP_PATTERN, columns_by_request
from .identifiers import QueryError
from .request import Request
from .settings import AccessConfig


def table_permissions(access: AccessConfig, table: str, op: str) -> bool:
    """Tell whether ``op`` is allowed on ``table``."""
    if not access.restrict or table in access.ignore_table:
        return True
    return any(t.name == table and op in t.permissions for t in access.tables)


def fields_by_permission(access: AccessConfig, table: str, op: str) -> list[str]:
    """Return the fields allowed for ``op`` on ``table``; ``["*"]`` if none are set."""
    fields: list[str] = []
    for entry in access.tables:
        if entry.name == table and op in entry.permissions:
            fields = list(entry.fields)
    return fields or ["*"]


def contains_asterisk(fields: list[str]) -> bool:
    """Tell whether ``*`` is among the fields."""
    return "*" in fields


def check_field(column: str, fields: list[str]) -> str:
    """Return ``column`` if it, or the field inside an aggregate, is allowed."""
    match = GROUP_PATTERN.search(column)
    inner = match.group(1) if match else None
    for field in fields:
        if inner == field or column == field:
            return column
    return ""


def intersection(fields: list[str], other: list[str]) -> list[str]:
    """Return the columns of ``fields`` allowed by ``other``, in order."""
    return [column for column in (check_field(f, other) for f in fields) if column]


def fields_permissions(
    request: Request, access: AccessConfig, table: str, op: str
) -> list[str]:
    """Return the columns a request may use for ``op`` on ``table``."""
    try:
        columns = columns_by_request(request)
    except QueryError as exc:
        raise QueryError(f"error on parse columns from request: {exc}") from exc

    if not access.restrict or op == "delete":
        return columns or ["*"]

    allowed = fields_by_permission(access, table, op)
    if contains_asterisk(allowed):
        return columns or ["*"]
    if not columns:
        return allowed
    return intersection(columns, allowed)