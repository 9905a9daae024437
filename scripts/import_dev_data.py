#!/usr/bin/env python3
"""
Load or wipe the development data set.

    python scripts/import_dev_data.py --import
    python scripts/import_dev_data.py --delete

Data lives in ``dev-data/data/{users,tours,reviews}.json``. Users are
imported first because tours reference them as guides; reviews go last
so that every tour's rating statistics are recalculated on the way in.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from uuid import UUID

# Add the server directory to the Python path
root_dir = Path(__file__).parent.parent
sys.path.insert(0, str(root_dir / "server"))

from natours.core.database import async_session_factory, close_db, init_db  # noqa: E402
from natours.core.observability import get_logger, setup_structured_logging  # noqa: E402
from natours.repositories import ReviewRepository, TourRepository, UserRepository  # noqa: E402
from natours.schemas.review import CreateReviewRequest  # noqa: E402
from natours.schemas.tour import CreateTourRequest  # noqa: E402
from natours.schemas.user import CreateUserRequest  # noqa: E402

DATA_DIR = root_dir / "dev-data" / "data"

logger = get_logger(__name__)


def read_json(name: str) -> list[dict]:
    with open(DATA_DIR / name, encoding="utf-8") as f:
        return json.load(f)


async def import_data(session_factory=async_session_factory) -> None:
    """Insert users, tours and reviews through the repositories."""
    users = read_json("users.json")
    tours = read_json("tours.json")
    reviews = read_json("reviews.json")

    async with session_factory() as db:
        user_repo = UserRepository(db)
        for raw in users:
            user_id = UUID(raw.pop("id"))
            await user_repo.create(CreateUserRequest.model_validate(raw), user_id=user_id)

        tour_repo = TourRepository(db)
        for raw in tours:
            tour_id = UUID(raw.pop("id"))
            await tour_repo.create(CreateTourRequest.model_validate(raw), tour_id=tour_id)

        review_repo = ReviewRepository(db)
        for raw in reviews:
            await review_repo.create(CreateReviewRequest.model_validate(raw))

    logger.info("Data successfully loaded!!", users=len(users), tours=len(tours), reviews=len(reviews))


async def delete_data(session_factory=async_session_factory) -> None:
    """Delete every tour (with reviews and bookings) and every user."""
    async with session_factory() as db:
        tours = await TourRepository(db).delete_all()
        users = await UserRepository(db).delete_all()

    logger.info("Data successfully deleted!!", tours=tours, users=users)


async def main(action: str) -> None:
    await init_db()
    try:
        if action == "import":
            await import_data()
        else:
            await delete_data()
    finally:
        await close_db()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import or delete the Natours development data")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--import", dest="action", action="store_const", const="import",
                       help="load dev-data/data/*.json into the database")
    group.add_argument("--delete", dest="action", action="store_const", const="delete",
                       help="delete all tours, users, reviews and bookings")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    setup_structured_logging()
    asyncio.run(main(args.action))
