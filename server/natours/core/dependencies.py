"""FastAPI dependencies for database sessions and list queries."""

import re
from typing import AsyncGenerator

from fastapi import Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.common import FilterCondition, ListQuery
from .database import get_async_session
from .exceptions import ValidationError

# Query parameters with a meaning of their own; everything else is a filter
RESERVED_PARAMS = frozenset({"page", "sort", "limit", "fields"})

_FILTER_PARAM = re.compile(r"^(?P<field>\w+)(?:\[(?P<op>gte|gt|lte|lt)\])?$")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_list_query(params) -> ListQuery:
    """
    Build a ``ListQuery`` from query parameters.

    ``price[lt]=1500`` becomes a filter with operator ``lt``; a plain
    ``difficulty=easy`` is an equality filter. Parameters that don't look
    like a field reference are ignored.

    Raises:
        ValidationError: If page or limit are out of range
    """
    filters = []
    for key, value in params.multi_items():
        if key in RESERVED_PARAMS:
            continue
        match = _FILTER_PARAM.match(key)
        if match is None:
            continue
        filters.append(FilterCondition(field=match["field"], op=match["op"] or "eq", value=value))

    data: dict = {"filters": filters}
    if "sort" in params:
        data["sort"] = _split(params["sort"])
    if "fields" in params:
        data["fields"] = _split(params["fields"])
    for name in ("page", "limit"):
        if name in params:
            data[name] = params[name]

    try:
        return ListQuery.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            detail="Invalid list query parameters",
            violations=[
                {"path": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                for error in e.errors()
            ],
        )


async def get_list_query(request: Request) -> ListQuery:
    return parse_list_query(request.query_params)


DatabaseSession = Depends(get_db)
ListQueryParams = Depends(get_list_query)
