"""Tour-related Pydantic schemas."""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, ClassVar, Literal, Optional
from uuid import UUID

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
)

from ..models.tour import DEFAULT_RATINGS_AVERAGE, round_rating
from .common import PartialUpdate
from .review import Review
from .user import GuideSummary


class Difficulty(str, Enum):
    """Tour difficulty enumeration."""
    EASY = "easy"
    MEDIUM = "medium"
    DIFFICULT = "difficult"


def _check_rating(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError("Rating must be a finite number")
    # bounds before rounding, scaling a huge float overflows
    if value <= 0:
        raise ValueError("Rating must be above 1.0")
    if value >= 10:
        raise ValueError("Rating must be below 5.0")
    value = round_rating(value)
    if value < 1:
        raise ValueError("Rating must be above 1.0")
    if value > 5:
        raise ValueError("Rating must be below 5.0")
    return value


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


TourName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=10, max_length=40)]
TrimmedText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Rating = Annotated[float, Field(allow_inf_nan=False), AfterValidator(_check_rating)]
StartDate = Annotated[datetime, AfterValidator(_to_naive_utc)]


class GeoPoint(BaseModel):
    """GeoJSON point with an address; coordinates are [longitude, latitude]."""

    type: Literal["Point"] = "Point"
    coordinates: list[float] = Field(..., min_length=2, max_length=2)
    address: Optional[str] = None
    description: Optional[str] = None


class TourLocation(GeoPoint):
    """A stop on the tour, tagged with the day it is visited."""

    day: Optional[int] = Field(None, ge=0)


class CreateTourRequest(BaseModel):
    """Request schema for creating a tour; slug is always derived."""

    name: TourName = Field(..., description="Unique tour name")
    duration: int = Field(..., gt=0, description="Duration in days")
    max_group_size: int = Field(..., gt=0, description="Maximum group size")
    difficulty: Difficulty = Field(..., description="Difficulty: easy, medium or difficult")
    ratings_average: Rating = Field(DEFAULT_RATINGS_AVERAGE, description="Average rating")
    ratings_quantity: int = Field(0, ge=0, description="Number of ratings")
    price: float = Field(..., gt=0, allow_inf_nan=False, description="Regular price")
    price_discount: Optional[float] = Field(
        None, allow_inf_nan=False, description="Discounted price, below the regular price"
    )
    summary: TrimmedText = Field(..., description="Short summary")
    description: Optional[Annotated[str, StringConstraints(strip_whitespace=True)]] = None
    image_cover: str = Field(..., min_length=1, description="Cover image file name")
    images: list[str] = Field(default_factory=list)
    start_dates: list[StartDate] = Field(default_factory=list)
    secret_tour: bool = False
    start_location: Optional[GeoPoint] = None
    locations: list[TourLocation] = Field(default_factory=list)
    guides: list[UUID] = Field(default_factory=list, description="User IDs of the tour guides")


class UpdateTourRequest(PartialUpdate):
    """
    Request schema for partial tour updates.

    Field-level rules apply; the discount-below-price rule is only enforced
    at creation.
    """

    nullable_fields: ClassVar[frozenset[str]] = frozenset({"price_discount", "description", "start_location"})

    name: Optional[TourName] = None
    duration: Optional[int] = Field(None, gt=0)
    max_group_size: Optional[int] = Field(None, gt=0)
    difficulty: Optional[Difficulty] = None
    ratings_average: Optional[Rating] = None
    ratings_quantity: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    price_discount: Optional[float] = Field(None, allow_inf_nan=False)
    summary: Optional[TrimmedText] = None
    description: Optional[Annotated[str, StringConstraints(strip_whitespace=True)]] = None
    image_cover: Optional[str] = Field(None, min_length=1)
    images: Optional[list[str]] = None
    start_dates: Optional[list[StartDate]] = None
    secret_tour: Optional[bool] = None
    start_location: Optional[GeoPoint] = None
    locations: Optional[list[TourLocation]] = None
    guides: Optional[list[UUID]] = None


class Tour(BaseModel):
    """Tour response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    duration: int
    duration_weeks: float
    max_group_size: int
    difficulty: Difficulty
    ratings_average: float
    ratings_quantity: int
    price: float
    price_discount: Optional[float] = None
    summary: str
    description: Optional[str] = None
    image_cover: str
    images: list[str]
    start_dates: list[datetime]
    secret_tour: bool
    start_location: Optional[GeoPoint] = None
    locations: list[TourLocation]
    guides: list[GuideSummary]


class TourDetail(Tour):
    """Single-tour response including its reviews."""

    reviews: list[Review] = Field(default_factory=list)


class TourStats(BaseModel):
    """Per-difficulty statistics over highly rated tours."""

    difficulty: str
    num_tours: int
    num_ratings: int
    avg_rating: float
    avg_price: float
    min_price: float
    max_price: float


class MonthlyPlanEntry(BaseModel):
    """Tour starts falling in one month of a year."""

    month: int
    num_tour_starts: int
    tours: list[str]


class TourDistance(BaseModel):
    """Distance from a reference point to a tour's start location."""

    id: UUID
    name: str
    distance: float
