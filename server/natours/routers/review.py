"""
Review routers.

Reviews are reachable both at ``/api/v1/reviews`` and nested under a tour
at ``/api/v1/tours/{tour_id}/reviews``, where the tour comes from the URL.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_list_query
from ..core.exceptions import NotFoundError, ValidationError
from ..repositories import ReviewRepository
from ..schemas.common import ListQuery, envelope, project
from ..schemas.review import CreateReviewRequest, Review, UpdateReviewRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"])
tour_reviews_router = APIRouter(prefix="/api/v1/tours/{tour_id}/reviews", tags=["reviews"])


async def _list_reviews(db: AsyncSession, query: ListQuery, tour_id: Optional[UUID] = None) -> JSONResponse:
    reviews = await ReviewRepository(db).find(query, tour_id=tour_id)
    payload = [project(Review.model_validate(review).model_dump(mode="json"), query.fields) for review in reviews]
    return JSONResponse(status_code=200, content=envelope("reviews", payload, results=len(payload)))


async def _create_review(db: AsyncSession, request: CreateReviewRequest) -> JSONResponse:
    if request.tour_id is None:
        raise ValidationError(
            detail="Review must belong to a tour.",
            violations=[{"path": "tour_id", "message": "Field required"}],
        )
    review = await ReviewRepository(db).create(request)
    return JSONResponse(status_code=201, content=envelope("review", Review.model_validate(review).model_dump(mode="json")))


@router.get("", response_model=list[Review])
async def get_all_reviews(
    query: ListQuery = Depends(get_list_query),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    return await _list_reviews(db, query)


@router.post("", response_model=Review, status_code=201)
async def create_review(request: CreateReviewRequest, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Create a review; the tour's rating statistics are recalculated."""
    return await _create_review(db, request)


@router.get("/{review_id}", response_model=Review)
async def get_review(review_id: UUID, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    review = await ReviewRepository(db).find_by_id(review_id)
    if review is None:
        raise NotFoundError("review", str(review_id))
    return JSONResponse(status_code=200, content=envelope("review", Review.model_validate(review).model_dump(mode="json")))


@router.patch("/{review_id}", response_model=Review)
async def update_review(
    review_id: UUID,
    request: UpdateReviewRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    review = await ReviewRepository(db).find_by_id_and_update(review_id, request)
    if review is None:
        raise NotFoundError("review", str(review_id))
    return JSONResponse(status_code=200, content=envelope("review", Review.model_validate(review).model_dump(mode="json")))


@router.delete("/{review_id}", status_code=204)
async def delete_review(review_id: UUID, db: AsyncSession = Depends(get_db)) -> Response:
    if await ReviewRepository(db).find_by_id_and_delete(review_id) is None:
        raise NotFoundError("review", str(review_id))
    return Response(status_code=204)


@tour_reviews_router.get("", response_model=list[Review])
async def get_tour_reviews(
    tour_id: UUID,
    query: ListQuery = Depends(get_list_query),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    return await _list_reviews(db, query, tour_id=tour_id)


@tour_reviews_router.post("", response_model=Review, status_code=201)
async def create_tour_review(
    tour_id: UUID,
    request: CreateReviewRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Create a review for the tour named in the URL."""
    return await _create_review(db, request.model_copy(update={"tour_id": tour_id}))
