"""Unit tests for query-string parsing of list requests."""

import pytest
from starlette.datastructures import QueryParams

from natours.core.dependencies import parse_list_query
from natours.core.exceptions import ValidationError
from natours.schemas.common import envelope, project


def test_parse_filters_with_operators():
    query = parse_list_query(QueryParams("price[lt]=1500&difficulty=easy&duration[gte]=5"))

    assert [(f.field, f.op, f.value) for f in query.filters] == [
        ("price", "lt", "1500"),
        ("difficulty", "eq", "easy"),
        ("duration", "gte", "5"),
    ]


def test_reserved_params_are_not_filters():
    query = parse_list_query(QueryParams("sort=-price,name&fields=name,price&page=2&limit=10"))

    assert query.filters == []
    assert query.sort == ["-price", "name"]
    assert query.fields == ["name", "price"]
    assert query.page == 2
    assert query.limit == 10
    assert query.offset == 10


def test_defaults():
    query = parse_list_query(QueryParams(""))

    assert query.page == 1
    assert query.limit == 100
    assert query.sort == []
    assert query.fields is None


def test_malformed_filter_keys_are_ignored():
    query = parse_list_query(QueryParams("price[ne]=3&bad-key=1"))

    assert query.filters == []


@pytest.mark.parametrize("params", ["page=0", "limit=0", "limit=abc"])
def test_invalid_pagination(params):
    with pytest.raises(ValidationError):
        parse_list_query(QueryParams(params))


def test_project_keeps_id():
    item = {"id": 1, "name": "The Forest Hiker", "price": 397, "summary": "..."}

    assert project(item, ["name"]) == {"id": 1, "name": "The Forest Hiker"}
    assert project(item, None) == item


def test_envelope():
    assert envelope("tours", [], results=0) == {"status": "success", "results": 0, "data": {"tours": []}}
    assert envelope("tour", {"id": 1}) == {"status": "success", "data": {"tour": {"id": 1}}}
