"""Unit tests for the booking repository."""

from uuid import uuid4

import pytest

from natours.core.exceptions import NotFoundError
from natours.repositories import BookingRepository, TourRepository
from natours.schemas.booking import CreateBookingRequest, UpdateBookingRequest
from natours.schemas.tour import UpdateTourRequest


@pytest.mark.asyncio
async def test_create_booking(test_session, sample_tour, guide):
    repo = BookingRepository(test_session)

    booking = await repo.create(CreateBookingRequest(tour_id=sample_tour.id, user_id=guide.id, price=397))

    assert booking.paid is True
    assert booking.tour.name == "The Forest Hiker"
    assert booking.user.email == "lisa@example.com"


@pytest.mark.asyncio
async def test_cannot_book_secret_tour(test_session, secret_tour, guide):
    repo = BookingRepository(test_session)

    with pytest.raises(NotFoundError):
        await repo.create(CreateBookingRequest(tour_id=secret_tour.id, user_id=guide.id, price=397))


@pytest.mark.asyncio
async def test_cannot_book_for_unknown_user(test_session, sample_tour):
    repo = BookingRepository(test_session)

    with pytest.raises(NotFoundError):
        await repo.create(CreateBookingRequest(tour_id=sample_tour.id, user_id=uuid4(), price=397))


@pytest.mark.asyncio
async def test_booked_tour_hidden_once_secret(test_session, sample_tour, guide):
    """Test the expanded tour follows the secrecy filter."""
    repo = BookingRepository(test_session)
    booking = await repo.create(CreateBookingRequest(tour_id=sample_tour.id, user_id=guide.id, price=397))

    await TourRepository(test_session).find_by_id_and_update(sample_tour.id, UpdateTourRequest(secret_tour=True))
    reloaded = await repo.find_by_id(booking.id)

    assert reloaded.tour is None


@pytest.mark.asyncio
async def test_update_and_delete_booking(test_session, sample_tour, guide):
    repo = BookingRepository(test_session)
    booking = await repo.create(CreateBookingRequest(tour_id=sample_tour.id, user_id=guide.id, price=397))

    updated = await repo.find_by_id_and_update(booking.id, UpdateBookingRequest(paid=False))
    assert updated.paid is False

    assert await repo.find_by_id_and_delete(booking.id) is not None
    assert await repo.find_by_id(booking.id) is None
    assert await repo.count() == 0
