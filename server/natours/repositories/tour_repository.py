"""
Tour data access.

Every read-style query (find, find-one, find-and-update, find-and-delete,
count) is built through ``TourRepository._read`` which, in order:

1. excludes secret tours (``secret_tour IS NOT TRUE``);
2. expands guide references into user summaries, resolved at query time.

There is deliberately no way to opt out of step 1 from this class.

Writes go through ``save``, which re-derives the slug from the name before
every full save. ``aggregate`` injects the secrecy filter only when the
pipeline starts with a ``Match`` stage.
"""

import logging
import math
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import Select, delete, extract, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.exceptions import ConflictError, ValidationError
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.review import Review
from ..models.tour import Tour, TourStartDate, derive_slug, tour_guides
from ..models.user import User
from ..schemas.common import ListQuery
from ..schemas.tour import CreateTourRequest, UpdateTourRequest
from .pipeline import Group, Limit, Match, Sort, Stage, Unwind, compile_pipeline
from .query import apply_filters, apply_list_query
from .user_repository import UserRepository, active_users_criterion, without_credentials

logger = logging.getLogger(__name__)

TOUR_COLUMNS = {
    "id": Tour.id,
    "name": Tour.name,
    "slug": Tour.slug,
    "duration": Tour.duration,
    "max_group_size": Tour.max_group_size,
    "difficulty": Tour.difficulty,
    "ratings_average": Tour.ratings_average,
    "ratings_quantity": Tour.ratings_quantity,
    "price": Tour.price,
    "price_discount": Tour.price_discount,
    "created_at": Tour.created_at,
}

# Earth radius per unit; distances are computed on a sphere
EARTH_RADIUS = {"mi": 3963.2, "km": 6378.1}
METERS_PER_EARTH_RADIUS = 6378100
METERS_TO_UNIT = {"mi": 0.000621371, "km": 0.001}


def visible_tours_criterion():
    """The secrecy filter: secret tours never show up in general reads."""
    return Tour.secret_tour.isnot(True)


def exclude_secret_tours(stmt: Select) -> Select:
    return stmt.where(visible_tours_criterion())


def populate_guides(stmt: Select) -> Select:
    """Eager-load active guides without their credentials or bookkeeping columns."""
    return stmt.options(
        without_credentials(selectinload(Tour.guides.and_(active_users_criterion())))
    ).execution_options(populate_existing=True)


def guard_secret_tours(stages: Sequence[Stage]) -> tuple[list[Stage], bool]:
    """
    Prepend the secrecy filter when, and only when, the first stage is a Match.

    Pipelines opening with any other stage run unfiltered and may include
    secret tours.
    """
    stages = list(stages)
    if stages and isinstance(stages[0], Match):
        return [Match(visible_tours_criterion()), *stages], True
    return stages, False


def haversine(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """Central angle in radians between two points given in degrees."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * math.asin(min(1.0, math.sqrt(a)))


def check_unit(unit: str) -> str:
    if unit not in EARTH_RADIUS:
        raise ValidationError(
            detail="Unit must be either 'mi' or 'km'",
            violations=[{"path": "unit", "message": f"unsupported unit '{unit}'"}],
        )
    return unit


class TourRepository:
    """Repository for tour-related data access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Query rewriting

    def _read(self, stmt: Select) -> Select:
        """Entry point for every read-style tour query."""
        stmt = exclude_secret_tours(stmt)
        return populate_guides(stmt)

    async def _reload(self, tour_id: UUID) -> Tour:
        """Re-fetch a tour that was already matched by a filtered query."""
        result = await self.db.execute(populate_guides(select(Tour).where(Tour.id == tour_id)))
        return result.scalar_one()

    # Reads

    async def find(self, query: Optional[ListQuery] = None) -> list[Tour]:
        """
        List visible tours.

        Args:
            query: Filters, sort order, and page; defaults to the first page

        Returns:
            Matching tours with guides expanded
        """
        stmt = apply_list_query(self._read(select(Tour)), query or ListQuery(), TOUR_COLUMNS)
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def count(self, query: Optional[ListQuery] = None) -> int:
        """Count visible tours matching the filters of ``query``."""
        stmt = exclude_secret_tours(select(func.count()).select_from(Tour))
        stmt = apply_filters(stmt, query or ListQuery(), TOUR_COLUMNS)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def find_by_id(self, tour_id: UUID) -> Optional[Tour]:
        """
        Get a visible tour by ID.

        Args:
            tour_id: Tour ID to search for

        Returns:
            Tour if found and not secret, None otherwise
        """
        result = await self.db.execute(self._read(select(Tour).where(Tour.id == tour_id)))
        return result.scalar_one_or_none()

    async def find_by_slug(self, slug: str) -> Optional[Tour]:
        result = await self.db.execute(self._read(select(Tour).where(Tour.slug == slug)))
        return result.scalar_one_or_none()

    # Writes

    async def _resolve_guides(self, guide_ids: Sequence[UUID]) -> list[User]:
        guides = await UserRepository(self.db).find_by_ids(guide_ids)
        missing = set(guide_ids) - {guide.id for guide in guides}
        if missing:
            raise ValidationError(
                detail="Every guide must reference an existing user",
                violations=[
                    {"path": "guides", "message": f"No user found with ID '{guide_id}'"}
                    for guide_id in sorted(str(g) for g in missing)
                ],
            )
        by_id = {guide.id: guide for guide in guides}
        return [by_id[guide_id] for guide_id in dict.fromkeys(guide_ids)]

    @staticmethod
    def _check_price_discount(request: CreateTourRequest) -> None:
        if request.price_discount is not None and request.price_discount >= request.price:
            raise ValidationError(
                detail=(
                    f"Discount price ({request.price_discount}) "
                    f"should be below the regular price"
                ),
                violations=[{
                    "path": "price_discount",
                    "message": f"Discount price ({request.price_discount}) should be below the regular price",
                }],
            )

    async def save(self, tour: Tour) -> Tour:
        """
        Full save: derive the slug, then insert or update the row.

        Raises:
            ConflictError: If another tour already uses the same name
        """
        tour.slug = derive_slug(tour.name)

        try:
            self.db.add(tour)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Tour save failed due to integrity constraint",
                extra={"tour_name": tour.name, "error": str(e.orig)}
            )
            raise ConflictError(
                detail=f"Duplicate field value: '{tour.name}'. Please use another value!",
                conflicting_resource={"name": tour.name},
            )

        logger.info(
            "Tour saved",
            extra={"tour_id": str(tour.id), "slug": tour.slug, "tour_name": tour.name}
        )
        return tour

    async def create(self, request: CreateTourRequest, tour_id: Optional[UUID] = None) -> Tour:
        """
        Create a new tour.

        Runs the discount check, resolves guides, then saves (which derives
        the slug). Nothing is written when a check fails.

        Args:
            request: Validated tour creation request
            tour_id: Fixed ID for the new tour, generated when omitted

        Returns:
            Created tour with guides expanded

        Raises:
            ValidationError: If the discount is not below the price or a guide is unknown
            ConflictError: If the name is already taken
        """
        self._check_price_discount(request)
        guides = await self._resolve_guides(request.guides)

        data = request.model_dump(mode="json", exclude={"guides", "start_dates", "start_location", "locations"})
        tour = Tour(
            **data,
            start_location=request.start_location.model_dump() if request.start_location else None,
            locations=[location.model_dump() for location in request.locations],
            start_dates=request.start_dates,
            guides=guides,
        )
        if tour_id is not None:
            tour.id = tour_id

        await self.save(tour)
        metrics_collector.record_tour_created()
        return await self._reload(tour.id)

    async def find_by_id_and_update(self, tour_id: UUID, request: UpdateTourRequest) -> Optional[Tour]:
        """
        Apply a partial update to a visible tour.

        This is a query-style update: field rules are re-checked by the
        request schema, but neither the discount rule nor slug derivation run.

        Returns:
            Updated tour, or None if no visible tour matched
        """
        tour = await self.find_by_id(tour_id)
        if tour is None:
            return None

        changes = request.model_dump(mode="json", exclude_unset=True)
        if "guides" in changes:
            tour.guides = await self._resolve_guides(request.guides)
        if "start_dates" in changes:
            tour.start_dates = request.start_dates
        if "start_location" in changes:
            tour.start_location = request.start_location.model_dump() if request.start_location else None
        if "locations" in changes:
            tour.locations = [location.model_dump() for location in request.locations]

        for field in changes.keys() - {"guides", "start_dates", "start_location", "locations"}:
            setattr(tour, field, changes[field])

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Tour update failed due to integrity constraint",
                extra={"tour_id": str(tour_id), "error": str(e.orig)}
            )
            raise ConflictError(detail=f"Duplicate field value: '{request.name}'. Please use another value!")

        logger.info(
            "Tour updated",
            extra={"tour_id": str(tour_id), "fields": sorted(changes)}
        )
        return await self._reload(tour_id)

    async def find_by_id_and_delete(self, tour_id: UUID) -> Optional[Tour]:
        """
        Delete a visible tour together with its reviews, bookings and guide links.

        Returns:
            The deleted tour, or None if no visible tour matched
        """
        tour = await self.find_by_id(tour_id)
        if tour is None:
            return None

        # Detach first so the returned instance keeps its loaded state
        self.db.expunge(tour)
        await self._delete_tours([tour_id])
        await self.db.commit()
        metrics_collector.record_tour_deleted()

        logger.info("Tour deleted", extra={"tour_id": str(tour_id), "tour_name": tour.name})
        return tour

    async def delete_all(self) -> int:
        """Bulk delete every tour, secret or not. Used by the data import utility."""
        ids = list((await self.db.execute(select(Tour.id))).scalars())
        await self._delete_tours(ids)
        await self.db.commit()
        logger.info("All tours deleted", extra={"count": len(ids)})
        return len(ids)

    async def _delete_tours(self, tour_ids: Sequence[UUID]) -> None:
        await self.db.execute(delete(tour_guides).where(tour_guides.c.tour_id.in_(tour_ids)))
        await self.db.execute(delete(TourStartDate).where(TourStartDate.tour_id.in_(tour_ids)))
        await self.db.execute(delete(Review).where(Review.tour_id.in_(tour_ids)))
        await self.db.execute(delete(Booking).where(Booking.tour_id.in_(tour_ids)))
        await self.db.execute(delete(Tour).where(Tour.id.in_(tour_ids)))

    # Aggregation

    async def aggregate(self, stages: Sequence[Stage]) -> list[dict[str, Any]]:
        """
        Run an aggregation pipeline against the tours table.

        Args:
            stages: Pipeline stages in order

        Returns:
            One dict per output row
        """
        stages, guarded = guard_secret_tours(stages)
        metrics_collector.record_aggregation(guarded)

        logger.debug(
            "Running tour aggregation",
            extra={"stages": [repr(stage) for stage in stages], "secrecy_guard": guarded}
        )

        result = await self.db.execute(compile_pipeline(stages))
        return [dict(row) for row in result.mappings()]

    async def tour_stats(self) -> list[dict[str, Any]]:
        """Statistics per difficulty over tours rated 4.5 or higher."""
        rows = await self.aggregate([
            Match(Tour.ratings_average >= 4.5),
            Group(
                func.upper(Tour.difficulty),
                num_tours=func.count(Tour.id),
                num_ratings=func.sum(Tour.ratings_quantity),
                avg_rating=func.avg(Tour.ratings_average),
                avg_price=func.avg(Tour.price),
                min_price=func.min(Tour.price),
                max_price=func.max(Tour.price),
            ),
            Sort("avg_price"),
        ])
        return [
            {
                "difficulty": row["_id"],
                "num_tours": row["num_tours"],
                "num_ratings": row["num_ratings"] or 0,
                "avg_rating": float(row["avg_rating"]),
                "avg_price": float(row["avg_price"]),
                "min_price": float(row["min_price"]),
                "max_price": float(row["max_price"]),
            }
            for row in rows
        ]

    async def monthly_plan(self, year: int) -> list[dict[str, Any]]:
        """
        Number of tour starts and tour names per month of ``year``, busiest first.

        The pipeline opens with Unwind, so the secrecy filter is not applied.
        """
        rows = await self.aggregate([
            Unwind(),
            Match(
                TourStartDate.starts_at >= datetime(year, 1, 1),
                TourStartDate.starts_at < datetime(year + 1, 1, 1),
            ),
            Group(
                extract("month", TourStartDate.starts_at),
                num_tour_starts=func.count(TourStartDate.id),
                tours=func.aggregate_strings(Tour.name, "|"),
            ),
            Sort("-num_tour_starts", "_id"),
            Limit(12),
        ])
        return [
            {
                "month": int(row["_id"]),
                "num_tour_starts": row["num_tour_starts"],
                "tours": row["tours"].split("|") if row["tours"] else [],
            }
            for row in rows
        ]

    # Geospatial

    async def _located_tours(self) -> list[Tour]:
        stmt = self._read(select(Tour).where(Tour.start_location.isnot(None)))
        result = await self.db.execute(stmt)
        return [tour for tour in result.scalars() if tour.start_location and tour.start_location.get("coordinates")]

    async def find_within(self, distance: float, lat: float, lng: float, unit: str) -> list[Tour]:
        """Visible tours whose start location lies within ``distance`` of the point."""
        radius = distance / EARTH_RADIUS[check_unit(unit)]
        tours = []
        for tour in await self._located_tours():
            tour_lng, tour_lat = tour.start_location["coordinates"]
            if haversine(lng, lat, tour_lng, tour_lat) <= radius:
                tours.append(tour)
        return tours

    async def distances(self, lat: float, lng: float, unit: str) -> list[dict[str, Any]]:
        """Distance from the point to every visible tour's start, nearest first."""
        multiplier = METERS_TO_UNIT[check_unit(unit)]
        rows = []
        for tour in await self._located_tours():
            tour_lng, tour_lat = tour.start_location["coordinates"]
            meters = haversine(lng, lat, tour_lng, tour_lat) * METERS_PER_EARTH_RADIUS
            rows.append({"id": tour.id, "name": tour.name, "distance": meters * multiplier})
        return sorted(rows, key=lambda row: row["distance"])
