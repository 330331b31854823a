import json

import pytest

from prestpg.filters import (
    count_by_request,
    join_by_request,
    order_by_request,
    paginate_if_possible,
    parse_batch_insert_request,
    parse_insert_request,
    returning_by_request,
    set_by_request,
    where_by_request,
)
from prestpg.identifiers import BodyEmptyError, QueryError
from prestpg.request import Request


def _get(url):
    return Request.from_url(url)


def _body(method, data):
    return Request.from_url("/", method=method, body=json.dumps(data))


@pytest.mark.parametrize(
    "url, expected_sql, expected_values",
    [
        (
            "/databases?dbname=$eq.prest&test=$eq.cool",
            ['"dbname" = $', '"test" = $', " AND "],
            ["prest", "cool"],
        ),
        (
            "/databases?dbname=$eq.prest&c.test=$eq.cool",
            ['"dbname" = $', '"c".', '"test" = $', " AND "],
            ["prest", "cool"],
        ),
        (
            "/prest-test/public/test5?name=$eq.prest tester",
            ['"name" = $'],
            ["prest tester"],
        ),
        (
            "/prest-test/public/test_jsonb_bug?name=$eq.goku&data->>description:jsonb=$eq.testing",
            ['"name" = $', "\"data\"->>'description' = $", " AND "],
            ["goku", "testing"],
        ),
        (
            "/prest-test/public/test5?name=$eq.prest.txt tester",
            ['"name" = $'],
            ["prest.txt tester"],
        ),
        (
            "/prest-test/public/test5?name=$like.%25val%25&phonenumber=123456",
            ['"name" LIKE $', '"phonenumber" = $', " AND "],
            ["%val%", "123456"],
        ),
        (
            "/prest-test/public/test5?name=$ilike.%25vAl%25&phonenumber=123456",
            ['"name" ILIKE $', '"phonenumber" = $', " AND "],
            ["%vAl%", "123456"],
        ),
        (
            "/prest-test/public/table?created_at='$gte.1997-11-03'&created_at='$lte.1997-12-05'",
            ['"created_at" >= $', " AND ", '"created_at" <= $'],
            ["'1997-11-03'", "'1997-12-05'"],
        ),
        (
            "/prest-test/public/test5?name:tsquery=prest",
            ["name @@ to_tsquery('prest')"],
            [],
        ),
    ],
)
def test_where_by_request(url, expected_sql, expected_values):
    where, values = where_by_request(_get(url), 1)
    for fragment in expected_sql:
        assert fragment in where
    assert sorted(values) == sorted(expected_values)


def test_where_by_request_exact():
    where, values = where_by_request(_get("/db?dbname=$eq.prest&test=$eq.cool"), 1)
    assert where == '"dbname" = $1 AND "test" = $2'
    assert values == ["prest", "cool"]


def test_where_by_request_placeholder_start():
    where, values = where_by_request(_get("/db?name=$gt.5"), 4)
    assert where == '"name" > $4'
    assert values == ["5"]


def test_where_by_request_in():
    where, values = where_by_request(_get("/t?id=$in.1,2,3"), 1)
    assert where == '"id" IN ($1,$2,$3)'
    assert values == ["1", "2", "3"]


def test_where_by_request_any():
    where, values = where_by_request(_get("/t?id=$any.1,2"), 1)
    assert where == '"id" = ANY ($1)'
    assert values == ['{"1","2"}']


def test_where_by_request_null():
    where, values = where_by_request(_get("/t?id=$null.x"), 1)
    assert where == '"id" IS NULL'
    assert values == []


def test_where_by_request_tsquery_language():
    where, _ = where_by_request(_get("/t?name$english:tsquery=prest"), 1)
    assert where == "name @@ to_tsquery('english', 'prest')"


def test_where_by_request_ignores_underscore_keys():
    where, values = where_by_request(_get("/t?_page=1&_select=a"), 1)
    assert where == ""
    assert values == []


@pytest.mark.parametrize(
    "url",
    [
        "/prest-test/public/test_jsonb_bug?name=$eq.test&data->>description:bla",
        "/prest-test/public/test_jsonb_bug?name=$eq.test&data->>0description:jsonb=$eq.bla",
        "/prest-test/public/test?0name=$eq.prest",
        "/prest-test/public/test?name=$bogus.prest",
    ],
)
def test_where_by_request_invalid(url):
    with pytest.raises(QueryError):
        where_by_request(_get(url), 1)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("/prest-test/public/test_group_by_table", ""),
        ("/prest-test/public/test_group_by_table?_returning=*", "*"),
        ("/prest-test/public/test_group_by_table?_returning=age", "age"),
        (
            "/prest-test/public/test_group_by_table?_returning=age&_returning=salary",
            "age, salary",
        ),
    ],
)
def test_returning_by_request(url, expected):
    assert returning_by_request(_get(url)) == expected


@pytest.mark.parametrize(
    "body, expected_sql, expected_values",
    [
        ({"test": "prest", "dbname": "prest"}, ['"dbname"=$', '"test"=$', ", "], ["prest", "prest"]),
        ({"name": "prest"}, ['"name"=$'], ["prest"]),
        ({"c.name": "prest"}, ['"c".', '"name"=$'], ["prest"]),
    ],
)
def test_set_by_request(body, expected_sql, expected_values):
    syntax, values = set_by_request(_body("PUT", body), 1)
    for fragment in expected_sql:
        assert fragment in syntax
    assert values == expected_values


def test_set_by_request_exact_and_array():
    syntax, values = set_by_request(_body("PUT", {"name": "prest", "tags": ["a", "b"]}), 3)
    assert syntax == '"name"=$3, "tags"=$4'
    assert values == ["prest", '{"a","b"}']


@pytest.mark.parametrize("body", [None, {}])
def test_set_by_request_empty(body):
    with pytest.raises(BodyEmptyError):
        set_by_request(_body("PUT", body), 1)


def test_set_by_request_invalid_identifier():
    with pytest.raises(QueryError, match="Set: Invalid identifier"):
        set_by_request(_body("PUT", {"0name": "x"}), 1)


def test_set_by_request_bad_json():
    with pytest.raises(QueryError):
        set_by_request(Request.from_url("/", method="PUT", body="{not json"), 1)


@pytest.mark.parametrize(
    "body, expected_cols, expected_values",
    [
        ({"test": "prest", "dbname": "prest"}, ["dbname", "test"], ["prest", "prest"]),
        ({"name": "prest"}, ["name"], ["prest"]),
    ],
)
def test_parse_insert_request(body, expected_cols, expected_values):
    cols, placeholders, values = parse_insert_request(_body("POST", body))
    for col in expected_cols:
        assert col in cols
    assert values == expected_values
    assert placeholders == "(" + ",".join(f"${i + 1}" for i in range(len(values))) + ")"


def test_parse_insert_request_exact():
    cols, placeholders, values = parse_insert_request(
        _body("POST", {"name": "prest", "ids": [1, 2]})
    )
    assert cols == '"name", "ids"'
    assert placeholders == "($1,$2)"
    assert values == ["prest", "{1,2}"]


def test_parse_insert_request_empty():
    with pytest.raises(BodyEmptyError):
        parse_insert_request(_body("POST", None))


def test_parse_insert_request_invalid_identifier():
    with pytest.raises(QueryError, match="Insert: Invalid identifier"):
        parse_insert_request(_body("POST", {"na;me": "x"}))


def test_parse_batch_insert_request():
    cols, placeholders, values = parse_batch_insert_request(
        _body("POST", [{"name": "prest", "pumpkin": "prest"}])
    )
    assert cols == '"name","pumpkin"'
    assert placeholders == "($1,$2)"
    assert values == ["prest", "prest"]


def test_parse_batch_insert_request_many_records():
    cols, placeholders, values = parse_batch_insert_request(
        _body("POST", [{"b": 1, "a": "x"}, {"a": "y"}])
    )
    assert cols == '"a","b"'
    assert placeholders == "($1,$2),($3,$4)"
    assert values == ["x", 1, "y", None]


@pytest.mark.parametrize("body", [None, []])
def test_parse_batch_insert_request_empty(body):
    with pytest.raises(BodyEmptyError):
        parse_batch_insert_request(_body("POST", body))


def test_parse_batch_insert_request_not_array():
    with pytest.raises(QueryError):
        parse_batch_insert_request(_body("POST", {"name": "x"}))


@pytest.mark.parametrize(
    "url, expected",
    [
        (
            "/prest-test/public/test?_join=inner:test2:test2.name:$eq:test.name",
            ["INNER JOIN", '"test2" ON ', '"test2"."name" = "test"."name"'],
        ),
        (
            "/prest-test/public/test?_join=inner:public.test2:test2.name:$eq:test.name",
            ["INNER JOIN", '"public"."test2" ON ', '"test2"."name" = "test"."name"'],
        ),
    ],
)
def test_join_by_request(url, expected):
    joined = " ".join(join_by_request(_get(url)))
    for fragment in expected:
        assert fragment in joined


def test_join_by_request_empty():
    assert join_by_request(_get("/prest-test/public/test?_join")) == []


@pytest.mark.parametrize(
    "url",
    [
        "/prest-test/public/test?_join=inner:test2:test2.name:$eq",
        "/prest-test/public/test?_join=inner:test2:test2.name:notexist:test.name",
        "/prest-test/public/test?_join=inner:0test2:test2.name:notexist:test.name",
        "/prest-test/public/test?_join=inner:test2:name:$eq:test.name",
    ],
)
def test_join_by_request_invalid(url):
    with pytest.raises(QueryError):
        join_by_request(_get(url))


def test_join_with_where():
    request = _get(
        "/prest-test/public/test?_join=inner:test2:test2.name:$eq:test.name"
        "&name=$eq.test&data->>description:jsonb=$eq.bla"
    )
    joined = " ".join(join_by_request(request))
    assert ' INNER JOIN "test2" ON "test2"."name" = "test"."name"' in joined
    where, values = where_by_request(request, 1)
    for fragment in ['"name" = $', "\"data\"->>'description' = $", " AND "]:
        assert fragment in where
    assert sorted(values) == ["bla", "test"]


def test_order_by_request():
    order = order_by_request(_get("/prest-test/public/test?_order=name,-number"))
    for fragment in ["ORDER BY", '"name"', '"number" DESC']:
        assert fragment in order
    assert '"-' not in order


def test_order_by_request_alias():
    order = order_by_request(_get("/prest-test/public/test?_order=c.name,-c.number"))
    for fragment in ["ORDER BY", '"c"."name"', '"c"."number" DESC']:
        assert fragment in order


def test_order_by_request_empty():
    assert order_by_request(_get("/prest-test/public/test?_order=")) == ""


def test_order_by_request_invalid():
    with pytest.raises(QueryError):
        order_by_request(_get("/prest-test/public/test?_order=0name"))


@pytest.mark.parametrize(
    "url, expected",
    [
        ("/prest-test/public/test5?_count=celphone", 'SELECT COUNT("celphone") FROM'),
        ("/prest-test/public/test5?_count=*", "SELECT COUNT(*) FROM"),
        ("/prest-test/public/test5?_count=", ""),
    ],
)
def test_count_by_request(url, expected):
    assert count_by_request(_get(url)) == expected


def test_count_by_request_invalid():
    with pytest.raises(QueryError):
        count_by_request(_get("/prest-test/public/test5?_count=celphone,0name"))


@pytest.mark.parametrize(
    "url, expected",
    [
        (
            "/databases?dbname=prest-test&test=cool&_page=1&_page_size=20",
            "LIMIT 20 OFFSET(1 - 1) * 20",
        ),
        ("/databases?dbname=prest-test&test=cool", ""),
        ("/databases?_page=3", "LIMIT 10 OFFSET(3 - 1) * 10"),
    ],
)
def test_paginate_if_possible(url, expected):
    assert paginate_if_possible(_get(url)) == expected


@pytest.mark.parametrize(
    "url",
    [
        "/databases?dbname=prest-test&test=cool&_page=X&_page_size=20",
        "/databases?dbname=prest-test&test=cool&_page=1&_page_size=K",
        "/databases?_page=",
    ],
)
def test_paginate_if_possible_invalid(url):
    with pytest.raises(QueryError):
        paginate_if_possible(_get(url))