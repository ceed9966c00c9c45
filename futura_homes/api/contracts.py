"""
Contract endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import FuturaSystem, get_system
from .responses import envelope
from .schemas import (
    CreateContractRequest, PlanChangeRequest, OverdueRefreshRequest, TransferContractRequest, RevertTransferRequest
)
from ..exceptions import ValidationError


router = APIRouter()


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_contract(
    request: CreateContractRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Create a contract to sell and its payment schedule from an approved reservation"""
    result = system.contract_manager.create_contract(
        reservation_id=request.reservation_id,
        payment_plan_months=request.payment_plan_months,
        created_by=request.created_by
    )
    return envelope(result, "Contract created successfully with payment schedule!")


@router.get("")
async def list_contracts(
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    contract_number: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    """List contracts with schedules and statistics"""
    contracts = system.contract_manager.list_contracts(user_id, status, contract_number)
    return envelope(contracts, "Contracts fetched successfully", total=len(contracts))


@router.get("/by-reservation")
async def get_contract_by_reservation(
    reservation_id: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    """Contract created from a reservation, or null when none exists yet"""
    contract = system.contract_manager.get_contract_by_reservation(reservation_id)
    if contract is None:
        return envelope(None, "No contract found for this reservation")
    return envelope(contract, "Contract fetched successfully")


@router.post("/overdue/refresh")
async def refresh_overdue(
    request: Optional[OverdueRefreshRequest] = None,
    system: FuturaSystem = Depends(get_system)
):
    """Recompute overdue flags on pending installments"""
    as_of = None
    if request and request.as_of:
        try:
            as_of = date.fromisoformat(request.as_of)
        except ValueError:
            raise ValidationError(f"Invalid date: {request.as_of}")
    results = system.contract_manager.refresh_overdue_status(as_of)
    return envelope(results, "Overdue status refreshed")


@router.post("/transfer")
async def transfer_contract(
    request: TransferContractRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Transfer contract ownership to a new client"""
    result = system.contract_manager.transfer_contract(
        contract_id=request.contract_id,
        new_client_name=request.new_client_name,
        new_client_email=request.new_client_email,
        relationship=request.relationship,
        transfer_reason=request.transfer_reason,
        new_client_phone=request.new_client_phone,
        new_client_address=request.new_client_address,
        new_user_id=request.new_user_id,
        transfer_notes=request.transfer_notes,
        transferred_by=request.transferred_by
    )
    return envelope(result, f"Contract successfully transferred to {request.new_client_name}")


@router.post("/revert-transfer")
async def revert_transfer(
    request: RevertTransferRequest,
    system: FuturaSystem = Depends(get_system)
):
    contract = system.contract_manager.revert_transfer(
        request.contract_id, request.transfer_id, reverted_by=request.reverted_by
    )
    return envelope(contract, f"Contract transfer reverted. Ownership restored to {contract.client_name}")


@router.get("/{contract_id}")
async def get_contract(
    contract_id: str,
    system: FuturaSystem = Depends(get_system)
):
    """Contract with schedules, statistics and next payment"""
    details = system.contract_manager.get_contract_details(contract_id)
    return envelope(details, "Contract fetched successfully")


@router.get("/{contract_id}/plan-changes")
async def get_plan_change_history(
    contract_id: str,
    system: FuturaSystem = Depends(get_system)
):
    system.contract_manager.require_contract(contract_id)
    history = system.plan_change_reconciler.get_plan_change_history(contract_id)
    return envelope(history, total=len(history))


@router.post("/{contract_id}/validate-plan-change")
async def validate_plan_change(
    contract_id: str,
    request: PlanChangeRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Preview a plan change without modifying anything"""
    validation = system.plan_change_reconciler.validate_plan_change(
        contract_id, request.new_payment_plan_months
    )
    message = (
        "Plan change is allowed" if validation.allowed
        else "Plan change is not allowed due to validation errors"
    )
    return envelope(
        {
            "allowed": validation.allowed,
            "validation_errors": validation.errors,
            "warnings": validation.warnings,
            "current_plan": validation.current_plan,
            "proposed_plan": validation.proposed_plan,
            "impact": validation.impact,
        },
        message,
        allowed=validation.allowed,
        validation_errors=validation.errors,
        warnings=validation.warnings
    )


@router.post("/{contract_id}/change-plan")
async def change_plan(
    contract_id: str,
    request: PlanChangeRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Replace the pending installments with a plan of a different length"""
    if not request.new_payment_plan_months:
        raise ValidationError("Please provide new_payment_plan_months", error="Missing required fields")
    result = system.plan_change_reconciler.change_plan(
        contract_id,
        request.new_payment_plan_months,
        reason=request.reason,
        changed_by=request.changed_by
    )
    return envelope(
        {
            "contract": result.contract,
            "old_payment_schedules": result.kept_schedules,
            "new_payment_schedules": result.new_schedules,
            "summary": result.summary,
        },
        "Payment plan changed successfully"
    )


@router.get("/{contract_id}/transfers")
async def get_transfer_history(
    contract_id: str,
    system: FuturaSystem = Depends(get_system)
):
    transfers = system.contract_manager.list_transfers(contract_id)
    return envelope(transfers, total=len(transfers))
