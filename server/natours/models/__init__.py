"""Models module exporting all database models."""

from .booking import Booking
from .review import Review
from .tour import Tour, TourStartDate, tour_guides
from .user import User, UserRole

__all__ = [
    # Core entities
    "Tour",
    "TourStartDate",
    "tour_guides",

    # People
    "User",
    "UserRole",

    # Tour feedback and sales
    "Review",
    "Booking",
]
