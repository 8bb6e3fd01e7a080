"""
Booking endpoints: book or queue, start the wash, view and clear the active booking.
"""

from fastapi import APIRouter, Depends, status

from washq.api.deps import get_app_state, get_current_user
from washq.core.logging import get_logger
from washq.schemas.booking import (
    ActiveBookingResponse, BookingCreate, BookingOutcome, ClearBookingResponse,
)
from washq.schemas.machine import Machine
from washq.schemas.user import User
from washq.services.app_state import WashQ

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingOutcome, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user: User = Depends(get_current_user),
    washq: WashQ = Depends(get_app_state),
):
    """
    Book a machine, or join its queue when it is busy.

    One active booking per user. Concurrent attempts are serialized per user
    and per machine; the losers get a 409.
    """
    return await washq.coordinator.book(user.id, booking_data.machine_id)


@router.post("/start", response_model=Machine)
async def start_wash(
    booking_data: BookingCreate,
    user: User = Depends(get_current_user),
    washq: WashQ = Depends(get_app_state),
):
    """Start the booked machine. Returns after the start delay with the running machine."""
    return await washq.coordinator.start_wash(user.id, booking_data.machine_id)


@router.get("/active", response_model=ActiveBookingResponse)
async def get_active_booking(
    user: User = Depends(get_current_user),
    washq: WashQ = Depends(get_app_state),
):
    booking, machine = await washq.coordinator.active_booking(user.id)
    return ActiveBookingResponse(booking=booking, machine=machine)


@router.delete("/active", response_model=ClearBookingResponse)
async def clear_active_booking(
    user: User = Depends(get_current_user),
    washq: WashQ = Depends(get_app_state),
):
    cleared = await washq.coordinator.clear_active_booking(user.id)
    message = "Booking cancelled" if cleared else "No active booking"
    return ClearBookingResponse(message=message, cleared=cleared)
