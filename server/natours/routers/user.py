"""User router for user administration."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_list_query
from ..core.exceptions import NotFoundError
from ..repositories import UserRepository
from ..schemas.common import ListQuery, envelope, project
from ..schemas.user import CreateUserRequest, UpdateUserRequest, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("", response_model=list[User])
async def get_all_users(
    query: ListQuery = Depends(get_list_query),
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    users = await UserRepository(db).find(query)
    payload = [project(User.model_validate(user).model_dump(mode="json"), query.fields) for user in users]
    return JSONResponse(status_code=200, content=envelope("users", payload, results=len(payload)))


@router.post("", response_model=User, status_code=201)
async def create_user(request: CreateUserRequest, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """Create a user; the password is stored hashed and never returned."""
    user = await UserRepository(db).create(request)
    return JSONResponse(status_code=201, content=envelope("user", User.model_validate(user).model_dump(mode="json")))


@router.get("/{user_id}", response_model=User)
async def get_user(user_id: UUID, db: AsyncSession = Depends(get_db)) -> JSONResponse:
    user = await UserRepository(db).find_by_id(user_id)
    if user is None:
        raise NotFoundError("user", str(user_id))
    return JSONResponse(status_code=200, content=envelope("user", User.model_validate(user).model_dump(mode="json")))


@router.patch("/{user_id}", response_model=User)
async def update_user(
    user_id: UUID,
    request: UpdateUserRequest,
    db: AsyncSession = Depends(get_db)
) -> JSONResponse:
    """Update profile fields; passwords cannot be changed through this route."""
    user = await UserRepository(db).find_by_id_and_update(user_id, request)
    if user is None:
        raise NotFoundError("user", str(user_id))
    return JSONResponse(status_code=200, content=envelope("user", User.model_validate(user).model_dump(mode="json")))


@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: UUID, db: AsyncSession = Depends(get_db)) -> Response:
    if await UserRepository(db).find_by_id_and_delete(user_id) is None:
        raise NotFoundError("user", str(user_id))
    return Response(status_code=204)
