"""
Review data access.

Every write recalculates the reviewed tour's rating statistics through
the tour repository, so the recalculation is subject to the same
secrecy filter as any other tour update.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.exceptions import ConflictError, NotFoundError
from ..core.observability import metrics_collector
from ..models.review import Review
from ..models.tour import DEFAULT_RATINGS_AVERAGE
from ..schemas.common import ListQuery
from ..schemas.review import CreateReviewRequest, UpdateReviewRequest
from ..schemas.tour import UpdateTourRequest
from .query import apply_filters, apply_list_query
from .tour_repository import TourRepository
from .user_repository import UserRepository, active_users_criterion, without_credentials

logger = logging.getLogger(__name__)

REVIEW_COLUMNS = {
    "id": Review.id,
    "rating": Review.rating,
    "tour_id": Review.tour_id,
    "user_id": Review.user_id,
    "created_at": Review.created_at,
}


def populate_author(stmt: Select) -> Select:
    return stmt.options(
        without_credentials(selectinload(Review.user.and_(active_users_criterion())))
    ).execution_options(populate_existing=True)


class ReviewRepository:
    """Repository for review-related data access."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.tours = TourRepository(db)

    def _scoped(self, stmt: Select, tour_id: Optional[UUID]) -> Select:
        if tour_id is not None:
            stmt = stmt.where(Review.tour_id == tour_id)
        return stmt

    async def find(self, query: Optional[ListQuery] = None, tour_id: Optional[UUID] = None) -> list[Review]:
        """List reviews, optionally only those of one tour."""
        stmt = self._scoped(populate_author(select(Review)), tour_id)
        stmt = apply_list_query(stmt, query or ListQuery(), REVIEW_COLUMNS)
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def count(self, query: Optional[ListQuery] = None, tour_id: Optional[UUID] = None) -> int:
        stmt = self._scoped(select(func.count()).select_from(Review), tour_id)
        stmt = apply_filters(stmt, query or ListQuery(), REVIEW_COLUMNS)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def find_by_tour(self, tour_id: UUID) -> list[Review]:
        stmt = populate_author(select(Review).where(Review.tour_id == tour_id)).order_by(Review.created_at)
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def find_by_id(self, review_id: UUID) -> Optional[Review]:
        result = await self.db.execute(populate_author(select(Review).where(Review.id == review_id)))
        return result.scalar_one_or_none()

    async def create(self, request: CreateReviewRequest) -> Review:
        """
        Create a review and refresh the tour's rating statistics.

        Args:
            request: Validated review request with ``tour_id`` set

        Returns:
            Created review with its author expanded

        Raises:
            NotFoundError: If the tour is not visible or the user does not exist
            ConflictError: If the user already reviewed this tour
        """
        if await self.tours.find_by_id(request.tour_id) is None:
            raise NotFoundError("tour", str(request.tour_id))
        if await UserRepository(self.db).find_by_id(request.user_id) is None:
            raise NotFoundError("user", str(request.user_id))

        review = Review(
            review=request.review,
            rating=request.rating,
            tour_id=request.tour_id,
            user_id=request.user_id,
        )

        try:
            self.db.add(review)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "Review creation failed due to integrity constraint",
                extra={"tour_id": str(request.tour_id), "user_id": str(request.user_id), "error": str(e.orig)}
            )
            raise ConflictError(
                detail="Duplicate field value. A user can review a tour only once!",
                conflicting_resource={"tour_id": str(request.tour_id), "user_id": str(request.user_id)},
            )

        metrics_collector.record_review_created()
        logger.info(
            "Review created",
            extra={"review_id": str(review.id), "tour_id": str(review.tour_id), "rating": review.rating}
        )

        await self.calc_average_ratings(review.tour_id)
        return await self.find_by_id(review.id)

    async def find_by_id_and_update(self, review_id: UUID, request: UpdateReviewRequest) -> Optional[Review]:
        review = await self.find_by_id(review_id)
        if review is None:
            return None

        for field, value in request.model_dump(exclude_unset=True).items():
            setattr(review, field, value)
        await self.db.commit()

        logger.info("Review updated", extra={"review_id": str(review_id)})
        await self.calc_average_ratings(review.tour_id)
        return await self.find_by_id(review_id)

    async def find_by_id_and_delete(self, review_id: UUID) -> Optional[Review]:
        review = await self.find_by_id(review_id)
        if review is None:
            return None

        self.db.expunge(review)
        await self.db.execute(delete(Review).where(Review.id == review_id))
        await self.db.commit()

        logger.info("Review deleted", extra={"review_id": str(review_id)})
        await self.calc_average_ratings(review.tour_id)
        return review

    async def calc_average_ratings(self, tour_id: UUID) -> None:
        """
        Store the review count and average rating on the tour.

        A tour without reviews falls back to zero ratings at the default
        average. Secret tours are skipped, like any other tour update.
        """
        result = await self.db.execute(
            select(func.count(Review.id), func.avg(Review.rating)).where(Review.tour_id == tour_id)
        )
        quantity, average = result.one()

        stats = UpdateTourRequest(
            ratings_quantity=quantity,
            ratings_average=float(average) if quantity else DEFAULT_RATINGS_AVERAGE,
        )
        tour = await self.tours.find_by_id_and_update(tour_id, stats)
        if tour is None:
            logger.debug("Ratings not recalculated for hidden tour", extra={"tour_id": str(tour_id)})
