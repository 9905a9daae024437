"""Tour model definition."""

import math
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from slugify import slugify
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .user import User

DEFAULT_RATINGS_AVERAGE = 4.5

tour_guides = Table(
    "tour_guides",
    Base.metadata,
    Column("tour_id", Uuid, ForeignKey("tours.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


def derive_slug(name: str) -> str:
    """Lowercase, hyphen-separated identifier for a tour name."""
    return slugify(name, lowercase=True)


def round_rating(value: float) -> float:
    """Round half-up to one decimal place (4.45 -> 4.5, 4.44 -> 4.4)."""
    return math.floor(value * 10 + 0.5) / 10


class Tour(Base):
    """Tour entity representing a bookable travel package."""

    __tablename__ = "tours"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Tour information
    name: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    slug: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    max_group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    ratings_average: Mapped[float] = mapped_column(Float, nullable=False, default=DEFAULT_RATINGS_AVERAGE)
    ratings_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    price_discount: Mapped[float | None] = mapped_column(Float, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_cover: Mapped[str] = mapped_column(String(255), nullable=False)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    secret_tour: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Embedded GeoJSON points
    start_location: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    locations: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("duration > 0", name="ck_tour_duration_positive"),
        CheckConstraint("max_group_size > 0", name="ck_tour_max_group_size_positive"),
        CheckConstraint("ratings_average >= 1 AND ratings_average <= 5", name="ck_tour_ratings_average_range"),
        CheckConstraint("ratings_quantity >= 0", name="ck_tour_ratings_quantity_non_negative"),
        CheckConstraint("price > 0", name="ck_tour_price_positive"),
        Index("ix_tours_price_ratings_average", "price", "ratings_average"),
    )

    # Relationships
    start_date_rows: Mapped[list["TourStartDate"]] = relationship(
        "TourStartDate",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="TourStartDate.position",
        lazy="selectin",
    )
    guides: Mapped[list["User"]] = relationship("User", secondary=tour_guides)

    @validates("ratings_average")
    def _round_ratings_average(self, key: str, value: float | None) -> float | None:
        if value is None:
            return value
        return round_rating(value)

    @property
    def duration_weeks(self) -> float:
        return self.duration / 7

    @property
    def start_dates(self) -> list[datetime]:
        return [row.starts_at for row in self.start_date_rows]

    @start_dates.setter
    def start_dates(self, values: list[datetime]) -> None:
        self.start_date_rows = [
            TourStartDate(starts_at=value, position=position)
            for position, value in enumerate(values)
        ]

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, name='{self.name}', slug='{self.slug}')>"


class TourStartDate(Base):
    """One scheduled start date of a tour, kept in order by position."""

    __tablename__ = "tour_start_dates"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tour: Mapped["Tour"] = relationship("Tour", back_populates="start_date_rows")

    def __repr__(self) -> str:
        return f"<TourStartDate(tour_id={self.tour_id}, starts_at={self.starts_at})>"
