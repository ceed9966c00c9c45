"""
Complaint and service request endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .deps import FuturaSystem, get_system
from .responses import envelope
from .schemas import FileComplaintRequest, ServiceRequestRequest, StatusUpdateRequest


router = APIRouter()
service_requests_router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def file_complaint(
    request: FileComplaintRequest,
    system: FuturaSystem = Depends(get_system)
):
    complaint = system.complaint_manager.file_complaint(
        subject=request.subject,
        description=request.description,
        complaint_type=request.complaint_type,
        user_id=request.user_id,
        severity=request.severity
    )
    return envelope(complaint, "Complaint filed successfully")


@router.get("")
async def list_complaints(
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    complaints = system.complaint_manager.list_complaints(user_id, status)
    return envelope(complaints, "Complaints fetched successfully", total=len(complaints))


@router.patch("/{complaint_id}")
async def update_complaint_status(
    complaint_id: str,
    request: StatusUpdateRequest,
    system: FuturaSystem = Depends(get_system)
):
    complaint = system.complaint_manager.update_status(complaint_id, request.status)
    return envelope(complaint, "Complaint updated successfully")


@service_requests_router.post("", status_code=status.HTTP_201_CREATED)
async def submit_service_request(
    request: ServiceRequestRequest,
    system: FuturaSystem = Depends(get_system)
):
    service_request = system.service_request_manager.submit_request(
        title=request.title,
        description=request.description,
        request_type=request.request_type,
        user_id=request.user_id,
        priority=request.priority
    )
    return envelope(service_request, "Service request created successfully")


@service_requests_router.get("")
async def list_service_requests(
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    system: FuturaSystem = Depends(get_system)
):
    requests = system.service_request_manager.list_requests(user_id, status)
    return envelope(requests, "Service requests fetched successfully", total=len(requests))


@service_requests_router.patch("/{request_id}")
async def update_service_request_status(
    request_id: str,
    request: StatusUpdateRequest,
    system: FuturaSystem = Depends(get_system)
):
    service_request = system.service_request_manager.update_status(request_id, request.status)
    return envelope(service_request, "Service request updated successfully")
