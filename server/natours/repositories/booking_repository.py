"""Booking data access."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import Select, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.exceptions import NotFoundError
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..schemas.booking import CreateBookingRequest, UpdateBookingRequest
from ..schemas.common import ListQuery
from .query import apply_filters, apply_list_query
from .tour_repository import TourRepository, visible_tours_criterion
from .user_repository import UserRepository, active_users_criterion, without_credentials

logger = logging.getLogger(__name__)

BOOKING_COLUMNS = {
    "id": Booking.id,
    "price": Booking.price,
    "paid": Booking.paid,
    "tour_id": Booking.tour_id,
    "user_id": Booking.user_id,
    "created_at": Booking.created_at,
}


def populate_booking(stmt: Select) -> Select:
    """Expand the booked tour (only if visible) and the active customer."""
    return stmt.options(
        selectinload(Booking.tour.and_(visible_tours_criterion())),
        without_credentials(selectinload(Booking.user.and_(active_users_criterion()))),
    ).execution_options(populate_existing=True)


class BookingRepository:
    """Repository for booking-related data access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find(self, query: Optional[ListQuery] = None) -> list[Booking]:
        stmt = apply_list_query(populate_booking(select(Booking)), query or ListQuery(), BOOKING_COLUMNS)
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def count(self, query: Optional[ListQuery] = None) -> int:
        stmt = apply_filters(select(func.count()).select_from(Booking), query or ListQuery(), BOOKING_COLUMNS)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        result = await self.db.execute(populate_booking(select(Booking).where(Booking.id == booking_id)))
        return result.scalar_one_or_none()

    async def create(self, request: CreateBookingRequest) -> Booking:
        """
        Book a visible tour for an active user.

        Raises:
            NotFoundError: If the tour is not visible or the user does not exist
        """
        if await TourRepository(self.db).find_by_id(request.tour_id) is None:
            raise NotFoundError("tour", str(request.tour_id))
        if await UserRepository(self.db).find_by_id(request.user_id) is None:
            raise NotFoundError("user", str(request.user_id))

        booking = Booking(**request.model_dump())
        self.db.add(booking)
        await self.db.commit()

        metrics_collector.record_booking_created()
        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "tour_id": str(booking.tour_id),
                "user_id": str(booking.user_id),
                "price": booking.price,
            }
        )
        return await self.find_by_id(booking.id)

    async def find_by_id_and_update(self, booking_id: UUID, request: UpdateBookingRequest) -> Optional[Booking]:
        booking = await self.find_by_id(booking_id)
        if booking is None:
            return None

        for field, value in request.model_dump(exclude_unset=True).items():
            setattr(booking, field, value)
        await self.db.commit()

        logger.info("Booking updated", extra={"booking_id": str(booking_id)})
        return await self.find_by_id(booking_id)

    async def find_by_id_and_delete(self, booking_id: UUID) -> Optional[Booking]:
        booking = await self.find_by_id(booking_id)
        if booking is None:
            return None

        self.db.expunge(booking)
        await self.db.execute(delete(Booking).where(Booking.id == booking_id))
        await self.db.commit()

        logger.info("Booking deleted", extra={"booking_id": str(booking_id)})
        return booking
