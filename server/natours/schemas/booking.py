"""Booking-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import PartialUpdate


class CreateBookingRequest(BaseModel):
    """Request schema for creating a booking."""

    tour_id: UUID = Field(..., description="Booked tour")
    user_id: UUID = Field(..., description="Customer")
    price: float = Field(..., gt=0, allow_inf_nan=False, description="Price paid")
    paid: bool = Field(True, description="Whether the booking has been paid")


class UpdateBookingRequest(PartialUpdate):
    """Request schema for updating a booking."""

    price: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    paid: Optional[bool] = None


class BookingTour(BaseModel):
    """Tour as embedded in a booking."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str


class BookingUser(BaseModel):
    """Customer as embedded in a booking."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str


class Booking(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    price: float
    paid: bool
    created_at: datetime
    tour: Optional[BookingTour] = None
    user: Optional[BookingUser] = None
