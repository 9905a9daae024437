"""Booking router for booking operations."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_list_query
from ..core.exceptions import NotFoundError
from ..repositories import BookingRepository
from ..schemas.booking import Booking, CreateBookingRequest, UpdateBookingRequest
from ..schemas.common import ListQuery, envelope, project

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
LIST_QUERY_DEPENDENCY = Depends(get_list_query)


def _to_json(booking) -> dict:
    return Booking.model_validate(booking).model_dump(mode="json")


@router.get("", response_model=list[Booking])
async def get_all_bookings(
    query: ListQuery = LIST_QUERY_DEPENDENCY,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    bookings = await BookingRepository(db).find(query)
    payload = [project(_to_json(booking), query.fields) for booking in bookings]
    return JSONResponse(status_code=200, content=envelope("bookings", payload, results=len(payload)))


@router.post("", response_model=Booking, status_code=201)
async def create_booking(request: CreateBookingRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    Book a tour for a user.

    Only visible tours can be booked; secret tours answer 404.
    """
    booking = await BookingRepository(db).create(request)
    return JSONResponse(status_code=201, content=envelope("booking", _to_json(booking)))


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(booking_id: UUID, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    booking = await BookingRepository(db).find_by_id(booking_id)
    if booking is None:
        raise NotFoundError("booking", str(booking_id))
    return JSONResponse(status_code=200, content=envelope("booking", _to_json(booking)))


@router.patch("/{booking_id}", response_model=Booking)
async def update_booking(
    booking_id: UUID,
    request: UpdateBookingRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    booking = await BookingRepository(db).find_by_id_and_update(booking_id, request)
    if booking is None:
        raise NotFoundError("booking", str(booking_id))
    return JSONResponse(status_code=200, content=envelope("booking", _to_json(booking)))


@router.delete("/{booking_id}", status_code=204)
async def delete_booking(booking_id: UUID, db: AsyncSession = DB_DEPENDENCY) -> Response:
    if await BookingRepository(db).find_by_id_and_delete(booking_id) is None:
        raise NotFoundError("booking", str(booking_id))
    return Response(status_code=204)
