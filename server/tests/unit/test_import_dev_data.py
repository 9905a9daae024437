"""Tests for the development data import script."""

import importlib.util
from pathlib import Path
from uuid import UUID

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from natours.models import Review, Tour, User
from natours.repositories import TourRepository

SCRIPT = Path(__file__).parents[3] / "scripts" / "import_dev_data.py"

FOREST_HIKER = UUID("7a3f2c10-5b1e-4c6a-9d2e-000000000001")


@pytest.fixture(scope="module")
def import_script():
    spec = importlib.util.spec_from_file_location("import_dev_data", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


async def _count(session_factory, model) -> int:
    async with session_factory() as db:
        return await db.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_import_loads_every_file(import_script, session_factory):
    await import_script.import_data(session_factory)

    assert await _count(session_factory, User) == 6
    assert await _count(session_factory, Tour) == 5
    assert await _count(session_factory, Review) == 5

    async with session_factory() as db:
        tour = await TourRepository(db).find_by_id(FOREST_HIKER)
        assert tour.slug == "the-forest-hiker"
        assert [guide.name for guide in sorted(tour.guides, key=lambda g: g.name)] == ["Lisa Brown", "Miyah Myles"]
        assert (tour.ratings_quantity, tour.ratings_average) == (2, 4.5)
        assert await TourRepository(db).count() == 4


@pytest.mark.asyncio
async def test_delete_removes_everything(import_script, session_factory):
    await import_script.import_data(session_factory)

    await import_script.delete_data(session_factory)

    for model in (User, Tour, Review):
        assert await _count(session_factory, model) == 0


@pytest.mark.parametrize("argv, action", [(["--import"], "import"), (["--delete"], "delete")])
def test_parse_args(import_script, argv, action):
    assert import_script.parse_args(argv).action == action


def test_parse_args_requires_one_action(import_script):
    with pytest.raises(SystemExit):
        import_script.parse_args(["--import", "--delete"])
