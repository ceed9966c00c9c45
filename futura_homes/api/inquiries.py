"""
Inquiry endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends

from .deps import FuturaSystem, get_system
from .responses import envelope
from .schemas import SubmitInquiryRequest, StatusUpdateRequest


router = APIRouter()


@router.post("")
async def submit_inquiry(
    request: SubmitInquiryRequest,
    system: FuturaSystem = Depends(get_system)
):
    """Public inquiry about a property"""
    inquiry = system.inquiry_manager.submit_inquiry(**request.model_dump())
    return envelope(inquiry, "Inquiry sent successfully! Our team will contact you soon.")


@router.get("")
async def list_inquiries(
    user_id: Optional[str] = None,
    client_email: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    inquiries = system.inquiry_manager.list_inquiries(user_id, client_email)
    return envelope(inquiries, f"Found {len(inquiries)} inquiries", total=len(inquiries))


@router.patch("/{inquiry_id}")
async def update_inquiry_status(
    inquiry_id: str,
    request: StatusUpdateRequest,
    system: FuturaSystem = Depends(get_system)
):
    return envelope(system.inquiry_manager.update_status(inquiry_id, request.status), "Inquiry updated")
