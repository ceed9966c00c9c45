"""
Reservation endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import FuturaSystem, get_system
from .responses import envelope
from .schemas import SubmitReservationRequest, ReviewReservationRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_reservation(
    request: SubmitReservationRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Submit a property reservation"""
    reservation = system.reservation_manager.submit_reservation(**request.model_dump())
    return envelope(reservation, f"Reservation submitted. Tracking number: {reservation.tracking_number}")


@router.get("")
async def list_reservations(
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    reservations = system.reservation_manager.list_reservations(status, user_id)
    return envelope(reservations, total=len(reservations))


@router.get("/{reservation_id}")
async def get_reservation(
    reservation_id: str,
    system: FuturaSystem = Depends(get_system)
):
    return envelope(system.reservation_manager.require_reservation(reservation_id))


@router.post("/{reservation_id}/approve")
async def approve_reservation(
    reservation_id: str,
    request: Optional[ReviewReservationRequest] = None,
    system: FuturaSystem = Depends(get_system)
):
    reviewed_by = request.reviewed_by if request else None
    reservation = system.reservation_manager.approve_reservation(reservation_id, reviewed_by=reviewed_by)
    return envelope(reservation, "Reservation approved")


@router.post("/{reservation_id}/reject")
async def reject_reservation(
    reservation_id: str,
    request: Optional[ReviewReservationRequest] = None,
    system: FuturaSystem = Depends(get_system)
):
    request = request or ReviewReservationRequest()
    reservation = system.reservation_manager.reject_reservation(
        reservation_id, notes=request.notes, reviewed_by=request.reviewed_by
    )
    return envelope(reservation, "Reservation rejected")


@router.post("/{reservation_id}/revert")
async def revert_reservation(
    reservation_id: str,
    request: Optional[ReviewReservationRequest] = None,
    system: FuturaSystem = Depends(get_system)
):
    reverted_by = request.reviewed_by if request else None
    reservation = system.reservation_manager.revert_reservation(reservation_id, reverted_by=reverted_by)
    return envelope(reservation, "Reservation reverted to pending successfully")
