"""
Account profile endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import FuturaSystem, get_system
from .responses import envelope
from .schemas import CreateAccountRequest, UpdateAccountRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest,
    system: FuturaSystem = Depends(get_system)
):
    account = system.account_manager.create_account(**request.model_dump())
    return envelope(account, "Account created successfully")


@router.get("")
async def list_accounts(
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    system: FuturaSystem = Depends(get_system)
):
    accounts = system.account_manager.list_accounts(role, is_active)
    return envelope(accounts, total=len(accounts))


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    system: FuturaSystem = Depends(get_system)
):
    return envelope(system.account_manager.require_account(account_id))


@router.patch("/{account_id}")
async def update_account(
    account_id: str,
    request: UpdateAccountRequest,
    system: FuturaSystem = Depends(get_system)
):
    account = system.account_manager.update_profile(account_id, **request.model_dump())
    return envelope(account, "Account updated successfully")


@router.post("/{account_id}/deactivate")
async def deactivate_account(
    account_id: str,
    system: FuturaSystem = Depends(get_system)
):
    return envelope(system.account_manager.deactivate_account(account_id), "Account deactivated")
