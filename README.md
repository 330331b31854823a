# prestpg

`prestpg` turns REST-style HTTP requests into PostgreSQL statements and
runs them, returning the results as JSON. A query string such as

    /mydb/public/users?name=$eq.alice&age=$gte.30&_order=-age&_page=2

becomes a `WHERE` clause with numbered `$n` placeholders, an `ORDER BY` and
a `LIMIT ... OFFSET` clause. Identifiers are checked before they reach the
SQL, and filter values travel as parameters.

## Installing

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

## Requests

`prestpg.request.Request` holds what the builders read from an HTTP
request: its method, path, decoded query parameters and body.

```python
from prestpg.request import Request

request = Request.from_url("/mydb/public/users?name=$eq.alice&_order=-age", "GET", b"")
request.get("name")        # "$eq.alice"
request.get_all("_order")  # ["-age"]
request.has("_page")       # False
```

`Request.json()` decodes the body as JSON.

## Building clauses

`prestpg.filters` reads filter, ordering, paging and body parameters:

```python
from prestpg.filters import where_by_request, order_by_request, paginate_if_possible

where, values = where_by_request(request, 1)   # ('"name" = $1', ['alice'])
order = order_by_request(request)              # ' ORDER BY  "age" DESC'
page = paginate_if_possible(request)           # '' (no _page given)
```

Operators (`prestpg.identifiers.get_query_operator`): `$eq`, `$ne`, `$gt`,
`$gte`, `$lt`, `$lte`, `$in`, `$nin`, `$any`, `$some`, `$all`, `$null`,
`$notnull`, `$true`, `$nottrue`, `$false`, `$notfalse`, `$like` and
`$ilike`. A value without an operator means `$eq`. JSONB fields are filtered
with `data->>key:jsonb=$eq.value`, full-text search with
`field:tsquery=words` (or `field$config:tsquery=words`).

Other builders in `prestpg.filters`:

- `set_by_request` and `parse_insert_request` read a JSON object body;
  `parse_batch_insert_request` reads a JSON array of objects and takes the
  columns, sorted, from the first record.
- `join_by_request` reads `_join=inner:other:other.id:$eq:this.other_id`.
- `count_by_request` reads `_count=field,...` or `_count=*`.
- `returning_by_request` joins one or more `_returning` parameters.
- `paginate_if_possible` reads `_page` and `_page_size` (default 10).

`prestpg.clauses` produces `SELECT`, `SELECT DISTINCT`, `GROUP BY ... HAVING`,
`INSERT`, `UPDATE` and `DELETE` statements and the catalogue queries for
databases, schemas and tables (fragments live in `prestpg.statements`):

```python
from prestpg.clauses import select_fields, select_sql

select = select_fields(["c.name", "age"])      # 'SELECT "c"."name","age" FROM'
sql = select_sql(select, "mydb", "public", "users")
# 'SELECT "c"."name","age" FROM "mydb"."public"."users"'
```

Group functions are written `sum:salary` or `avg:age:alias`
(`prestpg.identifiers.normalize_group_function`), and a having condition as
`_groupby=dept->>having:sum:salary:$gt:500`. A malformed having part is
dropped and only the `GROUP BY` is kept.

Invalid identifiers, operators or bodies raise
`prestpg.identifiers.QueryError`; an empty body raises
`prestpg.identifiers.BodyEmptyError`.

## Permissions

`prestpg.settings.AccessConfig` and `prestpg.settings.TableAccess` describe
which operations each table allows and which fields each operation may use.
`prestpg.permissions.table_permissions` and
`prestpg.permissions.fields_permissions` apply them to a table and a request.

## Running queries

`prestpg.database.PostgresAdapter` runs SQL against the database described
by `prestpg.settings.Settings`. It is given a `connect` callable that takes
the libpq keyword/value string from `prestpg.settings.connection_uri` and
returns a DB-API 2.0 connection whose cursors accept the `$n` placeholders.
Connections are kept in a `ConnectionPool` keyed by that string.

- `query` wraps a `SELECT` in `json_agg` and returns a JSON array (`[]` when
  there are no rows); `query_count` returns `{"count": n}`.
- `insert` and `batch_insert_values` append `RETURNING row_to_json(...)` and
  return the inserted rows; `batch_insert_copy` inserts rows of
  `len(keys)` values in one transaction.
- `update` and `delete` return the returned rows when the SQL has
  `RETURNING`, otherwise `{"rows_affected": n}`.
- `get_transaction` opens a dedicated connection usable with `with`; it
  commits on success and rolls back on error. `insert`, `update` and `delete`
  accept it as `transaction=`.
- `get_script` finds `<queries_path>/<folder>/<name>.<read|write|update|delete>.sql`
  for an HTTP verb; `execute_scripts` runs SQL as a query for `GET` and as a
  write for `POST`, `PUT`, `PATCH` and `DELETE`.

With `Settings.enable_cache`, statements outside transactions are kept in a
`StatementCache` by their SQL text. Failures raise
`prestpg.database.DatabaseError`.

Every result is a `prestpg.scanner.PrestScanner` holding the JSON bytes.
`scan` fills a list, a dict or an object (dataclass fields are matched by
name, ignoring case) and returns the row count; it raises `NotATargetError`,
`UnsupportedTypeError` or `RowCountError`.

Arrays in parameters are written in PostgreSQL's literal form by
`prestpg.formatters.format_array`:

```python
from prestpg.formatters import format_array

format_array(["value 1", "value 2"])  # '{"value 1","value 2"}'
format_array([10, 20, 30])            # '{10,20,30}'
```

## What it does not do

- It ships no database driver; you pass the `connect` callable.
- It has no HTTP server, router or command-line program: it builds and runs
  SQL for requests you hand it.
- It does not read settings from files or the environment; build `Settings`
  in code.
- It does not render SQL template files: `get_script` only locates them and
  `execute_scripts` runs SQL you have already prepared.