"""
Aggregation pipelines over the tours table.

A pipeline is an ordered list of stages, modelled on document-store
aggregation: ``Match`` filters rows, ``Unwind`` expands each tour into one
row per start date, ``Group`` folds rows into buckets, ``Sort`` and
``Limit`` shape the output. The whole pipeline compiles into a single
SELECT, so the database does the work.

Supported shape: any number of ``Match`` stages, at most one ``Unwind``
(before the ``Group``), at most one ``Group``. A ``Match`` that follows
the ``Group`` becomes a HAVING clause and may refer to accumulator labels
through ``literal_column``.
"""

from typing import Sequence

from sqlalchemy import ColumnElement, Select, asc, desc, select

from ..models.tour import Tour, TourStartDate


class Stage:
    """Base class for pipeline stages."""


class Match(Stage):
    """Keep rows satisfying every criterion."""

    def __init__(self, *criteria: ColumnElement[bool]):
        self.criteria = criteria

    def __repr__(self) -> str:
        return f"Match({', '.join(str(c) for c in self.criteria)})"


class Unwind(Stage):
    """One row per tour start date, exposing ``TourStartDate.starts_at``."""

    def __repr__(self) -> str:
        return "Unwind(start_dates)"


class Group(Stage):
    """Group rows by ``key`` (returned as ``_id``) and compute named accumulators."""

    def __init__(self, key: ColumnElement, **accumulators: ColumnElement):
        self.key = key
        self.accumulators = accumulators

    def __repr__(self) -> str:
        return f"Group(_id={self.key}, {', '.join(self.accumulators)})"


class Sort(Stage):
    """Order by output field names; a leading '-' sorts descending."""

    def __init__(self, *fields: str):
        self.fields = fields

    def __repr__(self) -> str:
        return f"Sort({', '.join(self.fields)})"


class Limit(Stage):
    def __init__(self, count: int):
        self.count = count

    def __repr__(self) -> str:
        return f"Limit({self.count})"


def compile_pipeline(stages: Sequence[Stage]) -> Select:
    """
    Compile pipeline stages into one SELECT statement.

    Args:
        stages: Pipeline stages in execution order

    Returns:
        Select producing one mapping per output document

    Raises:
        ValueError: If the stages don't fit the supported shape
        TypeError: If a stage type is unknown
    """
    where: list[ColumnElement[bool]] = []
    having: list[ColumnElement[bool]] = []
    order_by = []
    group: Group | None = None
    unwind = False
    limit: int | None = None

    for stage in stages:
        if isinstance(stage, Match):
            (having if group is not None else where).extend(stage.criteria)
        elif isinstance(stage, Unwind):
            if group is not None or unwind:
                raise ValueError("Unwind must appear once, before Group")
            unwind = True
        elif isinstance(stage, Group):
            if group is not None:
                raise ValueError("Only one Group stage is supported")
            group = stage
        elif isinstance(stage, Sort):
            order_by.extend(
                desc(field[1:]) if field.startswith("-") else asc(field)
                for field in stage.fields
            )
        elif isinstance(stage, Limit):
            limit = stage.count
        else:
            raise TypeError(f"Unsupported pipeline stage: {stage!r}")

    if group is not None:
        columns = [group.key.label("_id")]
        columns.extend(expr.label(name) for name, expr in group.accumulators.items())
    else:
        columns = list(Tour.__table__.columns)
        if unwind:
            columns.append(TourStartDate.starts_at)

    stmt = select(*columns).select_from(Tour)
    if unwind:
        stmt = stmt.join(TourStartDate, TourStartDate.tour_id == Tour.id)
    if where:
        stmt = stmt.where(*where)
    if group is not None:
        stmt = stmt.group_by(group.key)
        if having:
            stmt = stmt.having(*having)
    if order_by:
        stmt = stmt.order_by(*order_by)
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt
