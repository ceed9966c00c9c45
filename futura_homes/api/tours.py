"""
Tour booking endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .deps import FuturaSystem, get_system
from .responses import envelope
from .schemas import BookTourRequest, ApproveTourRequest, RejectTourRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def book_tour(
    request: BookTourRequest,
    system: FuturaSystem = Depends(get_system)
):
    booking = system.tour_manager.book_tour(
        property_id=request.property_id,
        client_name=request.client_name,
        client_email=request.client_email,
        appointment_date=request.appointment_date,
        appointment_time=request.appointment_time,
        property_title=request.property_title,
        client_phone=request.client_phone,
        message=request.message,
        user_id=request.user_id
    )
    return envelope(booking, "Tour booked successfully! We will contact you to confirm your appointment.")


@router.get("")
async def list_tours(
    user_id: Optional[str] = Query(None, alias="userId"),
    client_email: Optional[str] = Query(None, alias="clientEmail"),
    system: FuturaSystem = Depends(get_system)
):
    tours = system.tour_manager.list_tours(user_id, client_email)
    return envelope(tours, f"Found {len(tours)} appointments", total=len(tours))


@router.post("/approve")
async def approve_tour(
    request: ApproveTourRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Advance a booking one approval step"""
    booking = system.tour_manager.approve_tour(
        request.appointment_id, request.approver_id, request.approval_notes
    )
    return envelope(booking, f"Tour booking moved to {booking.status.value}")


@router.post("/reject")
async def reject_tour(
    request: RejectTourRequest,
    system: FuturaSystem = Depends(get_system)
):
    booking = system.tour_manager.reject_tour(
        request.appointment_id, request.rejector_id, request.rejection_reason
    )
    return envelope(booking, "Tour booking rejected")
