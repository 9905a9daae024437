"""User-related Pydantic schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from ..models.user import UserRole
from .common import PartialUpdate


class CreateUserRequest(BaseModel):
    """Request schema for creating a user."""

    name: str = Field(..., min_length=1, max_length=255, description="Full name")
    email: EmailStr = Field(..., description="Unique e-mail address")
    photo: Optional[str] = Field(None, description="Photo file name")
    role: UserRole = Field(UserRole.USER, description="User role")
    password: str = Field(..., min_length=8, description="Plain-text password, stored hashed")
    password_confirm: str = Field(..., description="Must equal password")

    @model_validator(mode="after")
    def passwords_match(self) -> "CreateUserRequest":
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same!")
        return self


class UpdateUserRequest(PartialUpdate):
    """Request schema for updating profile data; passwords are not accepted here."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    photo: Optional[str] = Field(None, min_length=1)
    role: Optional[UserRole] = None


class User(BaseModel):
    """User response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    photo: str
    role: UserRole


class GuideSummary(BaseModel):
    """Guide as embedded in a tour; bookkeeping fields are never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    photo: str
    role: UserRole
