"""Filtering, sorting and pagination shared by the list endpoints."""

import logging
from datetime import datetime
from typing import Mapping

from sqlalchemy import Select, asc, desc
from sqlalchemy.orm import InstrumentedAttribute

from ..core.exceptions import ValidationError
from ..schemas.common import FilterCondition, ListQuery

logger = logging.getLogger(__name__)

_OPERATORS = {
    "gt": lambda column, value: column > value,
    "gte": lambda column, value: column >= value,
    "lt": lambda column, value: column < value,
    "lte": lambda column, value: column <= value,
}


def _coerce(column: InstrumentedAttribute, condition: FilterCondition):
    python_type = column.type.python_type
    if python_type is bool:
        return condition.value.lower() in ("true", "1", "yes")
    try:
        if python_type is datetime:
            return datetime.fromisoformat(condition.value)
        return python_type(condition.value)
    except (TypeError, ValueError):
        raise ValidationError(
            detail=f"Invalid value '{condition.value}' for field '{condition.field}'",
            violations=[{"path": condition.field, "message": f"expected {python_type.__name__}"}],
        )


def apply_filters(stmt: Select, query: ListQuery, columns: Mapping[str, InstrumentedAttribute]) -> Select:
    """
    Add one WHERE clause per known filter; unknown fields are ignored.

    Repeated equality filters on one field match any of the given values.
    """
    equalities: dict[str, list] = {}
    for condition in query.filters:
        column = columns.get(condition.field)
        if column is None:
            logger.debug("Ignoring filter on unknown field", extra={"field": condition.field})
            continue
        value = _coerce(column, condition)
        if condition.op == "eq":
            equalities.setdefault(condition.field, []).append(value)
        else:
            stmt = stmt.where(_OPERATORS[condition.op](column, value))

    for field, values in equalities.items():
        column = columns[field]
        stmt = stmt.where(column == values[0] if len(values) == 1 else column.in_(values))
    return stmt


def apply_sorting(
    stmt: Select,
    query: ListQuery,
    columns: Mapping[str, InstrumentedAttribute],
    default: str = "-created_at",
) -> Select:
    """Order by the requested fields, falling back to ``default``."""
    clauses = []
    for field in query.sort or [default]:
        descending = field.startswith("-")
        column = columns.get(field.lstrip("-"))
        if column is None:
            logger.debug("Ignoring sort on unknown field", extra={"field": field})
            continue
        clauses.append(desc(column) if descending else asc(column))
    return stmt.order_by(*clauses) if clauses else stmt


def apply_pagination(stmt: Select, query: ListQuery) -> Select:
    return stmt.offset(query.offset).limit(query.limit)


def apply_list_query(stmt: Select, query: ListQuery, columns: Mapping[str, InstrumentedAttribute]) -> Select:
    """Filter, sort, then paginate."""
    stmt = apply_filters(stmt, query, columns)
    stmt = apply_sorting(stmt, query, columns)
    return apply_pagination(stmt, query)
