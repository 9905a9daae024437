"""Unit tests for the review repository and rating recalculation."""

from uuid import uuid4

import pytest

from natours.core.exceptions import ConflictError, NotFoundError
from natours.repositories import ReviewRepository, TourRepository, UserRepository
from natours.schemas.review import CreateReviewRequest, UpdateReviewRequest
from natours.schemas.tour import CreateTourRequest
from natours.schemas.user import CreateUserRequest


async def _reviewer(session, n: int):
    return await UserRepository(session).create(CreateUserRequest(
        name=f"Reviewer {n}",
        email=f"reviewer{n}@example.com",
        password="pass1234",
        password_confirm="pass1234",
    ))


@pytest.mark.asyncio
async def test_create_review_updates_tour_ratings(test_session, sample_tour):
    """Test each new review recalculates the tour's average and count."""
    repo = ReviewRepository(test_session)
    first, second = await _reviewer(test_session, 1), await _reviewer(test_session, 2)

    review = await repo.create(CreateReviewRequest(
        review="Amazing!", rating=5, tour_id=sample_tour.id, user_id=first.id
    ))
    await repo.create(CreateReviewRequest(
        review="Pretty good", rating=4, tour_id=sample_tour.id, user_id=second.id
    ))

    assert review.user.name == "Reviewer 1"
    tour = await TourRepository(test_session).find_by_id(sample_tour.id)
    assert tour.ratings_quantity == 2
    assert tour.ratings_average == 4.5


@pytest.mark.asyncio
async def test_average_is_rounded(test_session, sample_tour):
    repo = ReviewRepository(test_session)
    for n, rating in enumerate([5, 4, 4]):
        user = await _reviewer(test_session, n)
        await repo.create(CreateReviewRequest(review="Nice", rating=rating, tour_id=sample_tour.id, user_id=user.id))

    tour = await TourRepository(test_session).find_by_id(sample_tour.id)

    assert tour.ratings_average == 4.3
    assert tour.ratings_quantity == 3


@pytest.mark.asyncio
async def test_update_and_delete_review_recalculate(test_session, sample_tour):
    """Test edits and deletes keep the statistics in step, resetting to defaults when empty."""
    repo = ReviewRepository(test_session)
    user = await _reviewer(test_session, 1)
    review = await repo.create(CreateReviewRequest(
        review="Meh", rating=2, tour_id=sample_tour.id, user_id=user.id
    ))

    updated = await repo.find_by_id_and_update(review.id, UpdateReviewRequest(rating=3))
    assert updated.rating == 3
    tour = await TourRepository(test_session).find_by_id(sample_tour.id)
    assert tour.ratings_average == 3.0

    await repo.find_by_id_and_delete(review.id)
    tour = await TourRepository(test_session).find_by_id(sample_tour.id)
    assert tour.ratings_quantity == 0
    assert tour.ratings_average == 4.5


@pytest.mark.asyncio
async def test_one_review_per_user_and_tour(test_session, sample_tour):
    repo = ReviewRepository(test_session)
    user = await _reviewer(test_session, 1)
    request = CreateReviewRequest(review="Great", rating=5, tour_id=sample_tour.id, user_id=user.id)
    await repo.create(request)

    with pytest.raises(ConflictError):
        await repo.create(request)


@pytest.mark.asyncio
async def test_cannot_review_secret_tour(test_session, secret_tour):
    """Test a secret tour is not found when reviewing it."""
    repo = ReviewRepository(test_session)
    user = await _reviewer(test_session, 1)

    with pytest.raises(NotFoundError):
        await repo.create(CreateReviewRequest(
            review="Hidden gem", rating=5, tour_id=secret_tour.id, user_id=user.id
        ))


@pytest.mark.asyncio
async def test_review_requires_existing_user(test_session, sample_tour):
    repo = ReviewRepository(test_session)

    with pytest.raises(NotFoundError):
        await repo.create(CreateReviewRequest(review="Who?", rating=1, tour_id=sample_tour.id, user_id=uuid4()))


@pytest.mark.asyncio
async def test_find_reviews_by_tour(test_session, sample_tour, sample_tour_data):
    repo = ReviewRepository(test_session)
    other = await TourRepository(test_session).create(
        CreateTourRequest(**{**sample_tour_data, "name": "The Sea Explorer"})
    )
    user = await _reviewer(test_session, 1)
    await repo.create(CreateReviewRequest(review="A", rating=5, tour_id=sample_tour.id, user_id=user.id))
    await repo.create(CreateReviewRequest(review="B", rating=4, tour_id=other.id, user_id=user.id))

    assert [r.review for r in await repo.find(tour_id=sample_tour.id)] == ["A"]
    assert [r.review for r in await repo.find_by_tour(other.id)] == ["B"]
    assert await repo.count() == 2
