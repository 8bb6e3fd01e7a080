"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from washq.schemas.machine import Machine


class Booking(BaseModel):
    id: str
    user_id: str
    machine_id: str
    start_time: datetime
    wash_started_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BookingCreate(BaseModel):
    machine_id: str = Field(..., min_length=1, max_length=64)


class BookingOutcome(BaseModel):
    """New state after a successful book/join."""

    booking: Booking
    machine: Machine
    joined_queue: bool


class ActiveBookingResponse(BaseModel):
    booking: Optional[Booking] = None
    machine: Optional[Machine] = None


class ClearBookingResponse(BaseModel):
    message: str
    cleared: bool
