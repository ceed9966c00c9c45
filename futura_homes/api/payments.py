"""
Walk-in payment endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends

from .deps import FuturaSystem, get_system
from .responses import envelope
from .schemas import WalkInPaymentRequest, RevertPaymentRequest
from ..exceptions import ValidationError


router = APIRouter()


def _parse_as_of(as_of: Optional[str]) -> Optional[date]:
    if not as_of:
        return None
    try:
        return date.fromisoformat(as_of)
    except ValueError:
        raise ValidationError(f"Invalid date: {as_of}")


@router.post("/walk-in")
async def record_walk_in_payment(
    request: WalkInPaymentRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Record a walk-in payment against an installment"""
    result = system.payment_service.record_walk_in_payment(
        schedule_id=request.schedule_id,
        amount_paid=request.amount_paid,
        penalty_paid=request.penalty_paid,
        payment_type=request.payment_type,
        payment_method=request.payment_method,
        reference_number=request.reference_number,
        check_number=request.check_number,
        bank_name=request.bank_name,
        processed_by=request.processed_by,
        processed_by_name=request.processed_by_name,
        notes=request.notes
    )
    return envelope(result, "Walk-in payment processed successfully")


@router.get("/walk-in")
async def get_payment_details(
    schedule_id: Optional[str] = None,
    as_of: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    """Installment with its current penalty and transaction history"""
    details = system.payment_service.get_payment_details(schedule_id, _parse_as_of(as_of))
    return envelope(details)


@router.get("/history")
async def get_payment_history(
    contract_id: Optional[str] = None,
    schedule_id: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    """Payment transactions with summary totals"""
    history = system.payment_service.get_payment_history(contract_id, schedule_id)
    return envelope(
        history["transactions"],
        "Payment history fetched successfully",
        summary=history["summary"]
    )


@router.post("/revert")
async def revert_payment(
    request: RevertPaymentRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Put a paid installment back to pending"""
    result = system.payment_service.revert_payment(request.schedule_id, reverted_by=request.reverted_by)
    return envelope(result, "Payment reverted to pending successfully")
