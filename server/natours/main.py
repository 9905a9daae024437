"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.database import close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    integrity_error_handler,
    not_found_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import build_middleware_stack
from .core.observability import (
    SERVICE_NAME,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_structured_logging,
    setup_tracing,
)
from .routers import (
    booking_router,
    health_router,
    metrics_router,
    review_router,
    tour_reviews_router,
    tour_router,
    user_router,
)
from .server import crash_guard

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Startup fails if the database can't be reached; the exception
    propagates and the server never starts accepting requests.
    """
    logger.info("Starting Natours API", extra={"environment": settings.environment, "debug": settings.debug})

    setup_tracing(SERVICE_NAME)
    instrument_sqlalchemy(engine)

    await init_db()
    logger.info("DB connection successful!")

    crash_guard.install_loop_handler()

    yield

    logger.info("Shutting down Natours API")
    await close_db()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Natours API",
        description="Tours, users, reviews and bookings for a tour-booking business",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        middleware=build_middleware_stack(),
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Instrument FastAPI with OpenTelemetry
    instrument_fastapi(app)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Register API routers
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(tour_router)
    app.include_router(tour_reviews_router)
    app.include_router(user_router)
    app.include_router(review_router)
    app.include_router(booking_router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()
