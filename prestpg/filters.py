"""Building of WHERE, SET, INSERT, JOIN, ORDER BY and paging SQL from requests."""

from __future__ import annotations

import json
import re
from typing import Any

from .formatters import format_array
from .identifiers import (
    BodyEmptyError,
    QueryError,
    get_query_operator,
    is_invalid_identifier,
)
from .request import Request

PAGE_NUMBER_PARAM = "_page"
PAGE_SIZE_PARAM = "_page_size"
DEFAULT_PAGE_SIZE = 10

_REMOVE_OPERATOR = re.compile(r"\$[a-z]+.")
_INTEGER = re.compile(r"[+-]?[0-9]+")
_UNARY_OPERATORS = frozenset(
    {"IS NULL", "IS NOT NULL", "IS TRUE", "IS NOT TRUE", "IS FALSE", "IS NOT FALSE"}
)
_ARRAY_OPERATORS = frozenset({"ANY", "SOME", "ALL"})
_LIST_OPERATORS = frozenset({"IN", "NOT IN"})


def _quote_path(name: str) -> str:
    return '"' + '"."'.join(name.split(".")) + '"'


def _bind_value(value: Any) -> Any:
    return format_array(value) if isinstance(value, list) else value


def _decode_body(request: Request) -> Any:
    try:
        return request.json()
    except ValueError as exc:
        raise QueryError(f"invalid request body: {exc}") from exc


def _json_object_body(request: Request) -> dict[str, Any]:
    body = _decode_body(request)
    if body is None:
        raise BodyEmptyError()
    if not isinstance(body, dict):
        raise QueryError("request body must be a JSON object")
    if not body:
        raise BodyEmptyError()
    return body


def _placeholders(initial: int, last: int) -> str:
    return "(" + ",".join(f"${i}" for i in range(initial, last + 1)) + ")"


def _parse_int(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise QueryError(f"invalid integer: {text!r}")
    return int(text)


def where_by_request(
    request: Request, initial_placeholder_id: int
) -> tuple[str, list[Any]]:
    """Build a WHERE condition and its values from the query parameters."""
    where_keys: list[str] = []
    where_values: list[Any] = []
    op = ""
    value = ""
    pid = initial_placeholder_id

    for key, raw_values in request.query.items():
        if key.startswith("_"):
            continue
        for position, raw in enumerate(raw_values):
            if raw:
                found = _REMOVE_OPERATOR.search(raw)
                operator_name = found.group(0).replace(".", "") if found else ""
                value = _REMOVE_OPERATOR.sub("", raw)
                op = get_query_operator(operator_name or "$eq")

            parts = key.split(":")
            if len(parts) > 1:
                kind = parts[1]
                if kind == "jsonb":
                    json_field = parts[0].split("->>")
                    if len(json_field) < 2 or is_invalid_identifier(
                        json_field[0], json_field[1]
                    ):
                        raise QueryError(f"invalid identifier: {json_field}")
                    where_keys.append(
                        f"{_quote_path(json_field[0])}->>'{json_field[1]}' {op} ${pid}"
                    )
                    where_values.append(value)
                elif kind == "tsquery":
                    ts_field = parts[0].split("$")
                    if len(ts_field) == 2:
                        where_keys.append(
                            f"{ts_field[0]} @@ to_tsquery('{ts_field[1]}', '{value}')"
                        )
                    else:
                        where_keys.append(f"{ts_field[0]} @@ to_tsquery('{value}')")
                elif is_invalid_identifier(parts[0]):
                    raise QueryError(f"invalid identifier: {parts[0]}")
                pid += 1
                continue

            if is_invalid_identifier(key):
                raise QueryError(f"invalid identifier: {key}")
            column = _quote_path(key) if position == 0 or '"' not in key else key

            if op in _LIST_OPERATORS:
                items = value.split(",")
                params = ",".join(f"${pid + i}" for i in range(len(items)))
                where_values.extend(items)
                pid += len(items)
                where_keys.append(f"{column} {op} ({params})")
            elif op in _ARRAY_OPERATORS:
                where_keys.append(f"{column} = {op} (${pid})")
                where_values.append(format_array(value.split(",")))
                pid += 1
            elif op in _UNARY_OPERATORS:
                where_keys.append(f"{column} {op}")
            else:
                where_keys.append(f"{column} {op} ${pid}")
                where_values.append(value)
                pid += 1

    return " AND ".join(where_keys), where_values


def returning_by_request(request: Request) -> str:
    """Return the column list of a RETURNING clause from ``_returning``."""
    return ", ".join(request.get_all("_returning"))


def set_by_request(
    request: Request, initial_placeholder_id: int
) -> tuple[str, list[Any]]:
    """Build the assignments of an UPDATE ... SET from the JSON body."""
    body = _json_object_body(request)
    fields: list[str] = []
    values: list[Any] = []
    pid = initial_placeholder_id
    for name, value in body.items():
        if is_invalid_identifier(name):
            raise QueryError("Set: Invalid identifier")
        fields.append(f"{_quote_path(name)}=${pid}")
        values.append(_bind_value(value))
        pid += 1
    return ", ".join(fields), values


def parse_insert_request(request: Request) -> tuple[str, str, list[Any]]:
    """Return column names, placeholders and values of a single-row insert."""
    body = _json_object_body(request)
    fields: list[str] = []
    values: list[Any] = []
    for name, value in body.items():
        if is_invalid_identifier(name):
            raise QueryError("Insert: Invalid identifier")
        fields.append(f'"{name}"')
        values.append(_bind_value(value))
    return ", ".join(fields), _placeholders(1, len(values)), values


def parse_batch_insert_request(request: Request) -> tuple[str, str, list[Any]]:
    """Return column names, placeholder groups and values of a batch insert.

    Columns are taken from the first record, sorted by name.
    """
    records = _decode_body(request)
    if records is None:
        raise BodyEmptyError()
    if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
        raise QueryError("request body must be a JSON array of objects")
    if not records:
        raise BodyEmptyError()

    quoted_columns = sorted(json.dumps(name, ensure_ascii=False) for name in records[0])
    columns = [json.loads(quoted) for quoted in quoted_columns]

    values: list[Any] = []
    groups: list[str] = []
    for record in records:
        first = len(values) + 1
        values.extend(_bind_value(record.get(column)) for column in columns)
        groups.append(_placeholders(first, len(values)))
    return ",".join(quoted_columns), ",".join(groups), values


def join_by_request(request: Request) -> list[str]:
    """Build a JOIN clause from ``_join=kind:table:left.col:op:right.col``."""
    join = request.get("_join")
    if not join:
        return []
    args = join.split(":")
    if len(args) != 5:
        raise QueryError("Invalid number of arguments in join statement")
    kind, table, left, operator, right = args
    if is_invalid_identifier(table, left, right):
        raise QueryError("Invalid identifier")
    op = get_query_operator(operator)
    table_parts = table.split(".")
    if len(table_parts) == 2:
        table = f'{table_parts[0]}"."{table_parts[1]}'
    left_parts = left.split(".")
    right_parts = right.split(".")
    if len(left_parts) != 2 or len(right_parts) != 2:
        raise QueryError("invalid join clause")
    return [
        f' {kind.upper()} JOIN "{table}" ON "{left_parts[0]}"."{left_parts[1]}" '
        f'{op} "{right_parts[0]}"."{right_parts[1]}" '
    ]


def order_by_request(request: Request) -> str:
    """Build an ORDER BY clause from ``_order``; a leading ``-`` sorts descending."""
    order = request.get("_order")
    if not order:
        return ""
    columns: list[str] = []
    for field in order.split(","):
        if is_invalid_identifier(field):
            raise QueryError("Invalid identifier")
        column = _quote_path(field)
        if column.startswith('"-'):
            column = '"' + column[2:] + " DESC"
        columns.append(column)
    return " ORDER BY  " + " , ".join(columns)


def count_by_request(request: Request) -> str:
    """Build ``SELECT COUNT(...) FROM`` from ``_count``."""
    count = request.get("_count")
    if not count:
        return ""
    fields: list[str] = []
    for field in count.split(","):
        if field == "*":
            fields.append(field)
            continue
        if is_invalid_identifier(field):
            raise QueryError("Invalid identifier")
        fields.append(_quote_path(field))
    return f"SELECT COUNT({','.join(fields)}) FROM"


def paginate_if_possible(request: Request) -> str:
    """Build LIMIT/OFFSET from ``_page`` and ``_page_size`` when paging is asked."""
    if not request.has(PAGE_NUMBER_PARAM):
        return ""
    page = _parse_int(request.get_all(PAGE_NUMBER_PARAM)[0])
    size = DEFAULT_PAGE_SIZE
    if request.has(PAGE_SIZE_PARAM):
        size = _parse_int(request.get_all(PAGE_SIZE_PARAM)[0])
    return f"LIMIT {size} OFFSET({page} - 1) * {size}"