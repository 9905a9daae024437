"""Data access layer."""

from .booking_repository import BookingRepository
from .review_repository import ReviewRepository
from .tour_repository import TourRepository
from .user_repository import UserRepository

__all__ = [
    "BookingRepository",
    "ReviewRepository",
    "TourRepository",
    "UserRepository",
]
