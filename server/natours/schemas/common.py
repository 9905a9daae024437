"""Common Pydantic schemas."""

from typing import Any, ClassVar, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="Dotted path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


class FilterCondition(BaseModel):
    """One `field[op]=value` condition taken from the query string."""

    field: str
    op: Literal["eq", "gt", "gte", "lt", "lte"] = "eq"
    value: str


class ListQuery(BaseModel):
    """Filtering, sorting, projection and pagination for list endpoints."""

    filters: List[FilterCondition] = Field(default_factory=list)
    sort: List[str] = Field(default_factory=list, description="Field names, '-' prefix for descending")
    fields: Optional[List[str]] = Field(None, description="Fields to include in each item")
    page: int = Field(1, ge=1)
    limit: int = Field(100, ge=1, le=1000)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def envelope(key: str, payload: Any, results: Optional[int] = None) -> dict:
    """Wrap a payload in the success envelope used by every endpoint."""
    body: dict[str, Any] = {"status": "success"}
    if results is not None:
        body["results"] = results
    body["data"] = {key: payload}
    return body


class PartialUpdate(BaseModel):
    """
    Base for PATCH bodies.

    Omitted fields are left alone; an explicit null is only accepted for
    the fields listed in ``nullable_fields``.
    """

    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def reject_nulls(self):
        for field in self.model_fields_set - self.nullable_fields:
            if getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


def project(item: dict, fields: Optional[List[str]]) -> dict:
    """Keep only the requested fields; ``id`` is always included."""
    if not fields:
        return item
    wanted = set(fields) | {"id"}
    return {key: value for key, value in item.items() if key in wanted}
