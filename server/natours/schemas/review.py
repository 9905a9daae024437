"""Review-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import PartialUpdate


class CreateReviewRequest(BaseModel):
    """Request schema for creating a review."""

    review: str = Field(..., min_length=1, description="Review text")
    rating: int = Field(..., ge=1, le=5, description="Rating between 1 and 5")
    tour_id: Optional[UUID] = Field(None, description="Reviewed tour; taken from the URL on nested routes")
    user_id: UUID = Field(..., description="Author of the review")


class UpdateReviewRequest(PartialUpdate):
    """Request schema for editing a review."""

    review: Optional[str] = Field(None, min_length=1)
    rating: Optional[int] = Field(None, ge=1, le=5)


class ReviewAuthor(BaseModel):
    """Author as embedded in a review."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    photo: str


class Review(BaseModel):
    """Review response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    review: str
    rating: int
    created_at: datetime
    tour_id: UUID
    user: Optional[ReviewAuthor] = None
