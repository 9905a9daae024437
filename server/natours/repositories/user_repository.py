"""User data access; inactive users are invisible to every read."""

import logging
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from ..core.exceptions import ConflictError
from ..core.security import hash_password
from ..models.booking import Booking
from ..models.review import Review
from ..models.tour import tour_guides
from ..models.user import User
from ..schemas.common import ListQuery
from ..schemas.user import CreateUserRequest, UpdateUserRequest
from .query import apply_filters, apply_list_query

logger = logging.getLogger(__name__)

USER_COLUMNS = {
    "id": User.id,
    "name": User.name,
    "email": User.email,
    "role": User.role,
    "created_at": User.created_at,
}


def active_users_criterion():
    return User.active.isnot(False)


CREDENTIAL_COLUMNS = (User.password, User.password_changed_at, User.version)


def without_credentials(loader):
    """Defer the password and bookkeeping columns on a user load (statement or eager loader)."""
    return loader.options(*(defer(column) for column in CREDENTIAL_COLUMNS))


class UserRepository:
    """Repository for user-related data access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _read(self, stmt: Select) -> Select:
        return stmt.where(active_users_criterion())

    async def find(self, query: Optional[ListQuery] = None) -> list[User]:
        stmt = apply_list_query(self._read(select(User)), query or ListQuery(), USER_COLUMNS)
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def count(self, query: Optional[ListQuery] = None) -> int:
        stmt = self._read(select(func.count()).select_from(User))
        stmt = apply_filters(stmt, query or ListQuery(), USER_COLUMNS)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def find_by_id(self, user_id: UUID) -> Optional[User]:
        result = await self.db.execute(self._read(select(User).where(User.id == user_id)))
        return result.scalar_one_or_none()

    async def find_by_ids(self, user_ids: Sequence[UUID]) -> list[User]:
        """Active users among ``user_ids``; unknown or inactive IDs are dropped."""
        if not user_ids:
            return []
        stmt = without_credentials(select(User).where(User.id.in_(set(user_ids))))
        result = await self.db.execute(self._read(stmt))
        return list(result.scalars())

    async def create(self, request: CreateUserRequest, user_id: Optional[UUID] = None) -> User:
        """
        Create a user with a hashed password.

        Args:
            request: Validated user creation request
            user_id: Fixed ID for the new user, generated when omitted

        Returns:
            Created user

        Raises:
            ConflictError: If the e-mail address is already registered
        """
        user = User(
            name=request.name,
            email=request.email,
            role=request.role.value,
            password=hash_password(request.password),
        )
        if request.photo:
            user.photo = request.photo
        if user_id is not None:
            user.id = user_id

        try:
            self.db.add(user)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "User creation failed due to integrity constraint",
                extra={"email": request.email, "error": str(e.orig)}
            )
            raise ConflictError(
                detail=f"Duplicate field value: '{request.email}'. Please use another value!",
                conflicting_resource={"email": request.email},
            )

        logger.info("User created", extra={"user_id": str(user.id), "role": user.role})
        return user

    async def find_by_id_and_update(self, user_id: UUID, request: UpdateUserRequest) -> Optional[User]:
        """Update profile fields of an active user; every update bumps ``version``."""
        user = await self.find_by_id(user_id)
        if user is None:
            return None

        changes = request.model_dump(mode="json", exclude_unset=True)
        for field, value in changes.items():
            setattr(user, field, value)
        user.version += 1

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(
                "User update failed due to integrity constraint",
                extra={"user_id": str(user_id), "error": str(e.orig)}
            )
            raise ConflictError(detail=f"Duplicate field value: '{request.email}'. Please use another value!")

        logger.info("User updated", extra={"user_id": str(user_id), "fields": sorted(changes)})
        return user

    async def deactivate(self, user_id: UUID) -> bool:
        """Soft delete: the user stays in the table but disappears from reads."""
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, active_users_criterion())
            .values(active=False, version=User.version + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount:
            logger.info("User deactivated", extra={"user_id": str(user_id)})
        return bool(result.rowcount)

    async def find_by_id_and_delete(self, user_id: UUID) -> Optional[User]:
        """
        Hard delete a user with the reviews, bookings and guide assignments that reference them.

        Tours that lose a review get their ratings recalculated.
        """
        user = await self.find_by_id(user_id)
        if user is None:
            return None

        reviewed_tours = await self._reviewed_tours([user_id])
        self.db.expunge(user)
        await self._delete_users([user_id])
        await self.db.commit()
        await self._recalculate_ratings(reviewed_tours)

        logger.info("User deleted", extra={"user_id": str(user_id), "reviewed_tours": len(reviewed_tours)})
        return user

    async def delete_all(self) -> int:
        ids = list((await self.db.execute(select(User.id))).scalars())
        reviewed_tours = await self._reviewed_tours(ids)
        await self._delete_users(ids)
        await self.db.commit()
        await self._recalculate_ratings(reviewed_tours)
        logger.info("All users deleted", extra={"count": len(ids)})
        return len(ids)

    async def _reviewed_tours(self, user_ids: Sequence[UUID]) -> list[UUID]:
        result = await self.db.execute(
            select(Review.tour_id).where(Review.user_id.in_(user_ids)).distinct()
        )
        return list(result.scalars())

    async def _recalculate_ratings(self, tour_ids: Sequence[UUID]) -> None:
        from .review_repository import ReviewRepository

        reviews = ReviewRepository(self.db)
        for tour_id in tour_ids:
            await reviews.calc_average_ratings(tour_id)

    async def _delete_users(self, user_ids: Sequence[UUID]) -> None:
        await self.db.execute(delete(tour_guides).where(tour_guides.c.user_id.in_(user_ids)))
        await self.db.execute(delete(Review).where(Review.user_id.in_(user_ids)))
        await self.db.execute(delete(Booking).where(Booking.user_id.in_(user_ids)))
        await self.db.execute(delete(User).where(User.id.in_(user_ids)))
