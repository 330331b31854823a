"""Running generated SQL against PostgreSQL and collecting JSON results.

The adapter works with any DB-API 2.0 connection.  A ``connect`` callable
receives a libpq keyword/value connection string and returns a connection
whose cursors accept the ``$n`` placeholders used in the generated SQL.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from .scanner import PrestScanner
from .settings import Settings, connection_uri

logger = logging.getLogger(__name__)

_INSERT_TABLE_QUOTED = re.compile(
    r'INTO\s+([\w|\.|"|-]*\.)*"([\w|-]+)"\s*\(', re.IGNORECASE | re.ASCII
)
_INSERT_TABLE = re.compile(
    r"INTO\s+([\w|\.|-]*\.)*([\w|-]+)\s*\(", re.IGNORECASE | re.ASCII
)

_SCRIPT_SUFFIXES = {
    "GET": ".read.sql",
    "POST": ".write.sql",
    "PATCH": ".update.sql",
    "PUT": ".update.sql",
    "DELETE": ".delete.sql",
}
_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

_SHOW_TABLE_SQL = """SELECT table_schema, table_name, ordinal_position as position, column_name,data_type,
			  	CASE WHEN character_maximum_length is not null
					THEN character_maximum_length
					ELSE numeric_precision end as max_length,
			  	is_nullable,
			  	is_generated,
			  	is_updatable,
			  	column_default as default_value
			 FROM information_schema.columns
			 WHERE table_name=$1 AND table_schema=$2
			 ORDER BY table_schema, table_name, ordinal_position"""


class DatabaseError(Exception):
    """A statement could not be prepared or run, or its result read."""


def _compact_json(value: Any) -> bytes:
    return json.dumps(
        value, separators=(",", ":"), sort_keys=True, ensure_ascii=False, default=str
    ).encode("utf-8")


def _to_json_bytes(value: Any) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    return _compact_json(value)


def _column_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", "replace")
    return value


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _unquote(key: str) -> str:
    if not key.startswith('"'):
        return key
    try:
        value = json.loads(key)
    except ValueError as exc:
        raise DatabaseError(f"invalid quoted column {key}: {exc}") from exc
    if not isinstance(value, str):
        raise DatabaseError(f"invalid quoted column {key}")
    return value


class _Transaction:
    """A dedicated connection used as one transaction."""

    def __init__(self, connection: Any) -> None:
        self.connection = connection

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()

    def close(self) -> None:
        close = getattr(self.connection, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "_Transaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        finally:
            self.close()


@dataclass(eq=False)
class _Statement:
    """SQL bound to the connection it runs on."""

    connection: Any
    sql: str

    def run(self, params: Sequence[Any]) -> Any:
        cursor = self.connection.cursor()
        cursor.execute(self.sql, tuple(params))
        return cursor

    def run_many(self, rows: Sequence[Sequence[Any]]) -> Any:
        cursor = self.connection.cursor()
        cursor.executemany(self.sql, [tuple(row) for row in rows])
        return cursor


class StatementCache:
    """Statements by SQL text; only used outside transactions and when enabled."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._statements: dict[str, _Statement] = {}
        self._lock = threading.Lock()

    def prepare(
        self, connection: Any, sql: str, transaction: Optional[_Transaction] = None
    ) -> _Statement:
        """Return a statement for ``sql``, reusing a cached one when allowed."""
        use_cache = self.enabled and transaction is None
        if use_cache:
            with self._lock:
                cached = self._statements.get(sql)
            if cached is not None:
                return cached
        target = transaction.connection if transaction is not None else connection
        if target is None:
            raise DatabaseError("no connection to prepare the statement on")
        statement = _Statement(target, sql)
        if use_cache:
            with self._lock:
                self._statements[sql] = statement
        return statement

    def clear(self) -> None:
        """Forget every cached statement."""
        with self._lock:
            self._statements.clear()

    def __contains__(self, sql: object) -> bool:
        with self._lock:
            return sql in self._statements

    def __len__(self) -> int:
        with self._lock:
            return len(self._statements)


class ConnectionPool:
    """Open connections keyed by their connection string."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._connections: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Any:
        """Return the connection of database ``name``, or None."""
        uri = connection_uri(self.settings, name)
        with self._lock:
            return self._connections.get(uri)

    def add(self, name: str, connection: Any) -> None:
        """Keep ``connection`` as the one of database ``name``."""
        uri = connection_uri(self.settings, name)
        with self._lock:
            self._connections[uri] = connection


class PostgresAdapter:
    """Runs SQL built from requests and returns results as JSON scanners."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connect: Optional[Callable[[str], Any]] = None,
        pool: Optional[ConnectionPool] = None,
        cache: Optional[StatementCache] = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self._connect = connect
        self.pool = pool if pool is not None else ConnectionPool(self.settings)
        self.statements = (
            cache if cache is not None else StatementCache(self.settings.enable_cache)
        )
        self.database = self.settings.pg_database

    def _open(self) -> Any:
        if self._connect is None:
            raise DatabaseError("no database driver configured")
        uri = connection_uri(self.settings, self.database)
        try:
            return self._connect(uri)
        except DatabaseError:
            raise
        except Exception as exc:
            raise DatabaseError(f"could not connect: {exc}") from exc

    def connection(self) -> Any:
        """Return the pooled connection of the current database, opening it if needed."""
        pooled = self.pool.get(self.database)
        if pooled is not None:
            return pooled
        connection = self._open()
        self.pool.add(self.database, connection)
        return connection

    def get_transaction(self) -> _Transaction:
        """Open a dedicated connection as a transaction (usable with ``with``)."""
        return _Transaction(self._open())

    @staticmethod
    def _rollback(connection: Any) -> None:
        try:
            connection.rollback()
        except Exception as exc:  # the original error matters more
            logger.error("rollback failed: %s", exc)

    @contextmanager
    def _cursor(
        self,
        sql: str,
        params: Sequence[Any],
        transaction: Optional[_Transaction] = None,
        *,
        many: bool = False,
        error_prefix: str = "",
    ) -> Iterator[Any]:
        connection = self.connection() if transaction is None else None
        try:
            statement = self.statements.prepare(connection, sql, transaction)
            cursor = statement.run_many(params) if many else statement.run(params)
            yield cursor
            if connection is not None:
                connection.commit()
        except Exception as exc:
            if connection is not None:
                self._rollback(connection)
            if isinstance(exc, DatabaseError):
                raise
            raise DatabaseError(f"{error_prefix}{exc}") from exc

    def query(self, sql: str, *args: Any) -> PrestScanner:
        """Run a SELECT and return its rows as a JSON array."""
        wrapped = f"SELECT json_agg(s) FROM ({sql}) s"
        logger.debug("generated SQL: %s parameters: %s", wrapped, args)
        with self._cursor(wrapped, args) as cursor:
            row = cursor.fetchone()
        data = _to_json_bytes(row[0]) if row else None
        return PrestScanner(data=data or b"[]", is_query=True)

    def query_count(self, sql: str, *args: Any) -> PrestScanner:
        """Run a COUNT query and return ``{"count": n}``."""
        logger.debug("generated SQL: %s parameters: %s", sql, args)
        with self._cursor(sql, args) as cursor:
            row = cursor.fetchone()
        if not row:
            raise DatabaseError("no rows in result set")
        try:
            count = int(row[0])
        except (TypeError, ValueError) as exc:
            raise DatabaseError(f"invalid count: {row[0]!r}") from exc
        return PrestScanner(data=_compact_json({"count": count}))

    @staticmethod
    def _returning_insert(sql: str) -> str:
        match = _INSERT_TABLE_QUOTED.search(sql) or _INSERT_TABLE.search(sql)
        if match is None:
            raise DatabaseError("unable to find table name")
        return f'{sql} RETURNING row_to_json("{match.group(2)}")'

    def insert(
        self, sql: str, *args: Any, transaction: Optional[_Transaction] = None
    ) -> PrestScanner:
        """Run an INSERT and return the inserted row as a JSON object."""
        full = self._returning_insert(sql)
        logger.debug("%s parameters: %s", full, args)
        with self._cursor(full, args, transaction) as cursor:
            row = cursor.fetchone()
        if not row:
            raise DatabaseError("no rows in result set")
        return PrestScanner(data=_to_json_bytes(row[0]) or b"")

    def _modify(
        self, sql: str, args: Sequence[Any], transaction: Optional[_Transaction]
    ) -> PrestScanner:
        logger.debug("generated SQL: %s parameters: %s", sql, args)
        with self._cursor(sql, args, transaction) as cursor:
            if "RETURNING" in sql:
                columns = [column[0] for column in cursor.description or ()]
                rows = [
                    {name: _column_value(value) for name, value in zip(columns, row)}
                    for row in cursor.fetchall()
                ]
                return PrestScanner(data=_compact_json(rows or None))
            affected = cursor.rowcount
        return PrestScanner(data=_compact_json({"rows_affected": affected}))

    def delete(
        self, sql: str, *args: Any, transaction: Optional[_Transaction] = None
    ) -> PrestScanner:
        """Run a DELETE; return returned rows or ``{"rows_affected": n}``."""
        return self._modify(sql, args, transaction)

    def update(
        self, sql: str, *args: Any, transaction: Optional[_Transaction] = None
    ) -> PrestScanner:
        """Run an UPDATE; return returned rows or ``{"rows_affected": n}``."""
        return self._modify(sql, args, transaction)

    def batch_insert_values(self, sql: str, *args: Any) -> PrestScanner:
        """Run a multi-row INSERT and return the inserted rows as a JSON array."""
        full = self._returning_insert(sql)
        logger.debug("%s parameters: %s", full, args)
        with self._cursor(full, args) as cursor:
            rows = cursor.fetchall()
        items = [_to_json_bytes(row[0]) or b"null" for row in rows]
        return PrestScanner(data=b"[" + b",".join(items) + b"]", is_query=True)

    def batch_insert_copy(
        self, dbname: str, schema: str, table: str, keys: Sequence[str], *args: Any
    ) -> PrestScanner:
        """Insert ``args`` row by row, ``len(keys)`` values per row, in one transaction.

        Values that do not fill a whole row are left out.
        """
        columns = [_unquote(key) for key in keys]
        if not columns:
            raise DatabaseError("no columns to insert into")
        width = len(columns)
        names = ", ".join(_quote_identifier(column) for column in columns)
        placeholders = ", ".join(f"${i}" for i in range(1, width + 1))
        sql = (
            f"INSERT INTO {_quote_identifier(schema)}.{_quote_identifier(table)} "
            f"({names}) VALUES ({placeholders})"
        )
        rows = [
            tuple(args[start:start + width])
            for start in range(0, len(args) - width + 1, width)
        ]
        logger.debug("generated SQL: %s rows: %d database: %s", sql, len(rows), dbname)
        with self.get_transaction() as transaction:
            with self._cursor(sql, rows, transaction, many=True):
                pass
        return PrestScanner()

    def write_sql(self, sql: str, values: Sequence[Any]) -> PrestScanner:
        """Run an INSERT, UPDATE or DELETE script and return ``{"rows_affected": n}``."""
        with self._cursor(sql, list(values), error_prefix="could not perform sql: ") as cursor:
            affected = cursor.rowcount
        return PrestScanner(data=_compact_json({"rows_affected": affected}))

    def execute_scripts(self, method: str, sql: str, values: Sequence[Any]) -> PrestScanner:
        """Run a user script: GET as a query, other verbs as writes."""
        if method == "GET":
            return self.query(sql, *values)
        if method in _WRITE_METHODS:
            return self.write_sql(sql, values)
        raise DatabaseError(f"invalid method {method}")

    def get_script(self, verb: str, folder: str, script_name: str) -> str:
        """Return the path of the SQL template for ``verb`` in ``folder``."""
        suffix = _SCRIPT_SUFFIXES.get(verb)
        if suffix is None:
            raise DatabaseError(f"invalid http method {verb}")
        script = os.path.join(self.settings.queries_path, folder, script_name + suffix)
        if not os.path.exists(script):
            raise DatabaseError(f"could not load {script}")
        return script

    def show_table(self, schema: str, table: str) -> PrestScanner:
        """Return the column structure of ``schema.table``."""
        return self.query(_SHOW_TABLE_SQL, table, schema)