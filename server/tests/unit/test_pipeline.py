"""Unit tests for aggregation pipeline compilation and the secrecy guard."""

import pytest
from sqlalchemy import func

from natours.models.tour import Tour, TourStartDate
from natours.repositories.pipeline import Group, Limit, Match, Sort, Stage, Unwind, compile_pipeline
from natours.repositories.tour_repository import guard_secret_tours


def _sql(stages) -> str:
    return str(compile_pipeline(stages)).lower()


def test_guard_prepends_filter_before_leading_match():
    stages = [Match(Tour.price > 100), Sort("price")]

    guarded, applied = guard_secret_tours(stages)

    assert applied is True
    assert len(guarded) == 3
    assert isinstance(guarded[0], Match)
    assert "secret_tour is not" in str(guarded[0].criteria[0]).lower()
    assert guarded[1:] == stages


@pytest.mark.parametrize("first", [
    Group(Tour.difficulty, n=func.count(Tour.id)),
    Unwind(),
    Sort("price"),
    Limit(3),
])
def test_guard_leaves_other_pipelines_alone(first):
    stages = [first, Match(Tour.price > 100)] if not isinstance(first, Group) else [first]

    guarded, applied = guard_secret_tours(stages)

    assert applied is False
    assert guarded == stages


def test_guard_on_empty_pipeline():
    assert guard_secret_tours([]) == ([], False)


def test_match_after_group_becomes_having():
    sql = _sql([
        Match(Tour.price > 0),
        Group(Tour.difficulty, n=func.count(Tour.id)),
        Match(func.count(Tour.id) > 1),
    ])

    assert "where tours.price >" in sql
    assert "group by tours.difficulty" in sql
    assert "having count(tours.id) >" in sql


def test_unwind_joins_start_dates():
    sql = _sql([Unwind(), Match(TourStartDate.starts_at.isnot(None))])

    assert "join tour_start_dates" in sql
    assert "tour_start_dates.starts_at" in sql


def test_sort_and_limit():
    sql = _sql([Group(Tour.difficulty, avg_price=func.avg(Tour.price)), Sort("-avg_price"), Limit(2)])

    assert "order by avg_price desc" in sql
    assert "limit" in sql


def test_unwind_after_group_is_rejected():
    with pytest.raises(ValueError):
        compile_pipeline([Group(Tour.difficulty, n=func.count(Tour.id)), Unwind()])


def test_second_group_is_rejected():
    with pytest.raises(ValueError):
        compile_pipeline([
            Group(Tour.difficulty, n=func.count(Tour.id)),
            Group(Tour.price, n=func.count(Tour.id)),
        ])


def test_unknown_stage_is_rejected():
    class Lookup(Stage):
        pass

    with pytest.raises(TypeError):
        compile_pipeline([Lookup()])
