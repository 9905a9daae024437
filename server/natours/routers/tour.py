"""Tour router: CRUD, listing aliases, aggregations and geospatial lookups."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_list_query, parse_list_query
from ..core.exceptions import NotFoundError, ValidationError
from ..repositories import ReviewRepository, TourRepository
from ..schemas.common import ListQuery, envelope, project
from ..schemas.review import Review
from ..schemas.tour import (
    CreateTourRequest,
    MonthlyPlanEntry,
    Tour,
    TourDetail,
    TourDistance,
    TourStats,
    UpdateTourRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tours", tags=["tours"])

TOP_CHEAP_FIELDS = ["name", "price", "ratings_average", "summary", "difficulty"]


def parse_latlng(latlng: str) -> tuple[float, float]:
    """
    Parse a ``lat,lng`` path segment.

    Raises:
        ValidationError: If the segment isn't two comma-separated numbers
    """
    try:
        lat, lng = (float(part) for part in latlng.split(","))
    except ValueError:
        raise ValidationError(
            detail="Please provide latitude and longitude in the format lat,lng.",
            violations=[{"path": "latlng", "message": f"invalid coordinates '{latlng}'"}],
        )
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValidationError(
            detail="Latitude must be within [-90, 90] and longitude within [-180, 180].",
            violations=[{"path": "latlng", "message": f"coordinates out of range '{latlng}'"}],
        )
    return lat, lng


async def _list_response(repo: TourRepository, query: ListQuery) -> JSONResponse:
    tours = await repo.find(query)
    payload = [project(Tour.model_validate(tour).model_dump(mode="json"), query.fields) for tour in tours]
    return JSONResponse(status_code=200, content=envelope("tours", payload, results=len(payload)))


@router.get("", response_model=list[Tour])
async def get_all_tours(
    query: ListQuery = Depends(get_list_query),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """List visible tours with filtering, sorting, projection and pagination."""
    return await _list_response(TourRepository(db), query)


@router.get("/top-5-cheap", response_model=list[Tour])
async def get_top_cheap_tours(request: Request, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Five best rated tours, cheapest first among equal ratings."""
    query = parse_list_query(request.query_params).model_copy(update={
        "limit": 5,
        "sort": ["-ratings_average", "price"],
        "fields": TOP_CHEAP_FIELDS,
    })
    return await _list_response(TourRepository(db), query)


@router.get("/tour-stats", response_model=list[TourStats])
async def get_tour_stats(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    rows = await TourRepository(db).tour_stats()
    payload = [TourStats(**row).model_dump(mode="json") for row in rows]
    return JSONResponse(status_code=200, content=envelope("stats", payload))


@router.get("/monthly-plan/{year}", response_model=list[MonthlyPlanEntry])
async def get_monthly_plan(year: int, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    rows = await TourRepository(db).monthly_plan(year)
    payload = [MonthlyPlanEntry(**row).model_dump(mode="json") for row in rows]
    return JSONResponse(status_code=200, content=envelope("plan", payload, results=len(payload)))


@router.get("/tours-within/{distance}/center/{latlng}/unit/{unit}", response_model=list[Tour])
async def get_tours_within(
    distance: float,
    latlng: str,
    unit: str,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Visible tours starting within ``distance`` (mi or km) of ``lat,lng``."""
    lat, lng = parse_latlng(latlng)
    tours = await TourRepository(db).find_within(distance, lat, lng, unit)
    payload = [Tour.model_validate(tour).model_dump(mode="json") for tour in tours]
    return JSONResponse(status_code=200, content=envelope("tours", payload, results=len(payload)))


@router.get("/distances/{latlng}/unit/{unit}", response_model=list[TourDistance])
async def get_distances(latlng: str, unit: str, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Distance from ``lat,lng`` to every visible tour's start, nearest first."""
    lat, lng = parse_latlng(latlng)
    rows = await TourRepository(db).distances(lat, lng, unit)
    payload = [TourDistance(**row).model_dump(mode="json") for row in rows]
    return JSONResponse(status_code=200, content=envelope("distances", payload))


@router.post("", response_model=Tour, status_code=201)
async def create_tour(request: CreateTourRequest, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Create a new tour.

    The slug is derived from the name and the discount must be below the price.
    """
    tour = await TourRepository(db).create(request)

    logger.info(
        "Tour created successfully",
        extra={"tour_id": str(tour.id), "slug": tour.slug, "tour_name": tour.name}
    )

    return JSONResponse(
        status_code=201,
        content=envelope("tour", Tour.model_validate(tour).model_dump(mode="json"))
    )


@router.get("/{tour_id}", response_model=TourDetail)
async def get_tour(tour_id: UUID, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Get a visible tour with its guides and reviews."""
    tour = await TourRepository(db).find_by_id(tour_id)
    if tour is None:
        raise NotFoundError("tour", str(tour_id))

    detail = TourDetail.model_validate(tour)
    detail.reviews = [Review.model_validate(review) for review in await ReviewRepository(db).find_by_tour(tour_id)]
    return JSONResponse(status_code=200, content=envelope("tour", detail.model_dump(mode="json")))


@router.patch("/{tour_id}", response_model=Tour)
async def update_tour(
    tour_id: UUID,
    request: UpdateTourRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    tour = await TourRepository(db).find_by_id_and_update(tour_id, request)
    if tour is None:
        raise NotFoundError("tour", str(tour_id))
    return JSONResponse(status_code=200, content=envelope("tour", Tour.model_validate(tour).model_dump(mode="json")))


@router.delete("/{tour_id}", status_code=204)
async def delete_tour(tour_id: UUID, db: AsyncSession = Depends(get_db)) -> Response:
    if await TourRepository(db).find_by_id_and_delete(tour_id) is None:
        raise NotFoundError("tour", str(tour_id))
    return Response(status_code=204)
