"""Test configuration and fixtures."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from natours.core.database import Base
from natours.core.dependencies import get_db
from natours.models import *  # noqa: F403 - Import all models
from natours.repositories import TourRepository, UserRepository
from natours.schemas.tour import CreateTourRequest
from natours.schemas.user import CreateUserRequest

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """The real application with its database dependency pointed at the test session."""
    from natours.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_user_data():
    """Sample user data for testing."""
    return {
        "name": "Lisa Brown",
        "email": "lisa@example.com",
        "role": "guide",
        "password": "pass1234",
        "password_confirm": "pass1234",
    }


@pytest.fixture
def sample_tour_data():
    """Sample tour data for testing."""
    return {
        "name": "The Forest Hiker",
        "duration": 5,
        "max_group_size": 25,
        "difficulty": "easy",
        "price": 397,
        "summary": "Breathtaking hike through the Canadian Banff National Park",
        "description": "Ut enim ad minim veniam, quis nostrud exercitation ullamco laboris.",
        "image_cover": "tour-1-cover.jpg",
        "images": ["tour-1-1.jpg", "tour-1-2.jpg"],
        "start_dates": ["2021-04-25T09:00:00Z", "2021-07-20T09:00:00Z"],
        "start_location": {
            "type": "Point",
            "coordinates": [-115.570154, 51.178456],
            "address": "224 Banff Ave, Banff, AB, Canada",
            "description": "Banff, CAN",
        },
        "locations": [
            {"type": "Point", "coordinates": [-116.214531, 51.417611], "description": "Banff National Park", "day": 1},
        ],
    }


@pytest_asyncio.fixture
async def guide(test_session, sample_user_data):
    """An active guide user."""
    return await UserRepository(test_session).create(CreateUserRequest(**sample_user_data))


@pytest_asyncio.fixture
async def sample_tour(test_session, sample_tour_data, guide):
    """A visible tour led by ``guide``."""
    return await TourRepository(test_session).create(
        CreateTourRequest(**sample_tour_data, guides=[guide.id])
    )


@pytest_asyncio.fixture
async def secret_tour(test_session, sample_tour_data):
    """A secret tour without guides."""
    data = {**sample_tour_data, "name": "The Hidden Valley Trek", "secret_tour": True}
    return await TourRepository(test_session).create(CreateTourRequest(**data))
