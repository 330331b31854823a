"""SELECT, DISTINCT, GROUP BY and catalogue clauses built from requests."""

from __future__ import annotations

import re

from . import statements
from .identifiers import QueryError, get_query_operator, is_invalid_identifier, normalize_group_function
from .request import Request

GROUP_PATTERN = re.compile(r'"(.+?)"')
_HAVING_MARKER = "->>having"
_DISTINCT_PARAM = "_distinct"
_DISTINCT_SELECT = "SELECT DISTINCT"


def _quote_path(name: str) -> str:
    return '"' + '"."'.join(name.split(".")) + '"'


def _quote_fields(fields: str) -> str:
    return ",".join(_quote_path(field) for field in fields.split(","))


def database_clause(request: Request) -> tuple[str, bool]:
    """Return the database listing SELECT and whether it is a count."""
    if request.get("_count"):
        return statements.DATABASES_SELECT % statements.FIELD_COUNT_DATABASE_NAME, True
    return statements.DATABASES_SELECT % statements.FIELD_DATABASE_NAME, False


def schema_clause(request: Request) -> tuple[str, bool]:
    """Return the schema listing SELECT and whether it is a count."""
    if request.get("_count"):
        return statements.SCHEMAS_SELECT % statements.FIELD_COUNT_SCHEMA_NAME, True
    return statements.SCHEMAS_SELECT % statements.FIELD_SCHEMA_NAME, False


def select_fields(fields: list[str]) -> str:
    """Build ``SELECT <fields> FROM`` with each field quoted."""
    if not fields:
        raise QueryError("you must select at least one field")
    columns: list[str] = []
    for field in fields:
        if field == "*":
            columns.append("*")
            continue
        if is_invalid_identifier(field):
            raise QueryError(f"invalid identifier {field}")
        if GROUP_PATTERN.search(field):
            columns.append(field)
        else:
            columns.append(_quote_path(field))
    return f"SELECT {','.join(columns)} FROM"


def distinct_clause(request: Request) -> str:
    """Return ``SELECT DISTINCT`` when ``_distinct=true``, else an empty string."""
    requested = request.get(_DISTINCT_PARAM)
    if requested != "true":
        return ""
    return _DISTINCT_SELECT


def group_by_clause(request: Request) -> str:
    """Build GROUP BY, with an optional HAVING, from ``_groupby``.

    A malformed HAVING part is dropped and only the GROUP BY is kept.
    """
    group_query = request.get("_groupby")
    if not group_query:
        return ""
    if _HAVING_MARKER not in group_query:
        return statements.GROUP_BY % _quote_fields(group_query)

    params = group_query.split(":")
    group_fields = _quote_fields(group_query.split(_HAVING_MARKER)[0])
    group_by = statements.GROUP_BY % group_fields
    if len(params) != 5:
        return group_by
    try:
        group_func = normalize_group_function(f"{params[1]}:{params[2]}")
        operator = get_query_operator(params[3])
    except QueryError:
        return group_by
    having = statements.HAVING % (group_func, operator, params[4])
    return f"{group_by} {having}"


def columns_by_request(request: Request) -> list[str]:
    """Return the columns asked for in ``_select``.

    With ``_groupby`` present, ``func:field`` columns become aggregates.
    """
    columns = [
        column
        for selected in request.get_all("_select")
        for column in selected.split(",")
    ]
    if request.get("_groupby"):
        columns = [
            normalize_group_function(column) if ":" in column else column
            for column in columns
        ]
    return columns


def select_sql(select_str: str, database: str, schema: str, table: str) -> str:
    """Append the fully qualified table to a SELECT prefix."""
    return f'{select_str} "{database}"."{schema}"."{table}"'


def insert_sql(database: str, schema: str, table: str, names: str, placeholders: str) -> str:
    """Build an INSERT statement."""
    return statements.INSERT_QUERY % (database, schema, table, names, placeholders)


def delete_sql(database: str, schema: str, table: str) -> str:
    """Build a DELETE statement."""
    return statements.DELETE_QUERY % (database, schema, table)


def update_sql(database: str, schema: str, table: str, set_syntax: str) -> str:
    """Build an UPDATE statement."""
    return statements.UPDATE_QUERY % (database, schema, table, set_syntax)


def _extend_where(base: str, request_where: str) -> str:
    return f"{base} AND {request_where}" if request_where else base


def database_where(request_where: str) -> str:
    """WHERE clause of the database listing, extended by the request's."""
    return _extend_where(statements.DATABASES_WHERE, request_where)


def database_order_by(order: str, has_count: bool) -> str:
    """ORDER BY of the database listing; none for counts."""
    if order:
        return order
    if has_count:
        return ""
    return statements.DATABASES_ORDER_BY % statements.FIELD_DATABASE_NAME


def schema_order_by(order: str, has_count: bool) -> str:
    """ORDER BY of the schema listing; none for counts."""
    if order:
        return order
    if has_count:
        return ""
    return statements.SCHEMAS_ORDER_BY % statements.FIELD_SCHEMA_NAME


def table_clause() -> str:
    """SELECT of the table listing."""
    return statements.TABLES_SELECT


def table_where(request_where: str) -> str:
    """WHERE clause of the table listing, extended by the request's."""
    return _extend_where(statements.TABLES_WHERE, request_where)


def table_order_by(order: str) -> str:
    """ORDER BY of the table listing."""
    return order or statements.TABLES_ORDER_BY


def schema_tables_clause() -> str:
    """SELECT of the tables-in-schema listing."""
    return statements.SCHEMA_TABLES_SELECT


def schema_tables_where(request_where: str) -> str:
    """WHERE clause of the tables-in-schema listing, extended by the request's."""
    return _extend_where(statements.SCHEMA_TABLES_WHERE, request_where)


def schema_tables_order_by(order: str) -> str:
    """ORDER BY of the tables-in-schema listing."""
    return order or statements.SCHEMA_TABLES_ORDER_BY