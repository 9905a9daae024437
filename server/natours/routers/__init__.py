"""FastAPI routers package."""

from .booking import router as booking_router
from .health import router as health_router
from .metrics import router as metrics_router
from .review import router as review_router
from .review import tour_reviews_router
from .tour import router as tour_router
from .user import router as user_router

__all__ = [
    "booking_router",
    "health_router",
    "metrics_router",
    "review_router",
    "tour_reviews_router",
    "tour_router",
    "user_router",
]
