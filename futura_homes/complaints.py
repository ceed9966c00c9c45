"""
Complaints and Service Requests Module

Homeowner complaints and maintenance requests. Both are tied to the
homeowner's contract; staff and the homeowner are notified on a best-effort
basis.
"""

import uuid
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .contracts import ContractManager, Contract
from .notifications import NotificationEngine, NotificationTemplates
from .exceptions import ValidationError, NotFoundError


class ComplaintStatus(Enum):
    """Complaint workflow states"""
    PENDING = "pending"
    INVESTIGATING = "investigating"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ComplaintSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ServiceRequestStatus(Enum):
    """Service request workflow states"""
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class ServicePriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


@dataclass
class Complaint(StorageRecord):
    """Complaint filed by a homeowner"""
    contract_id: str
    user_id: str
    subject: str
    description: str
    complaint_type: str
    severity: ComplaintSeverity = ComplaintSeverity.MEDIUM
    status: ComplaintStatus = ComplaintStatus.PENDING


@dataclass
class ServiceRequest(StorageRecord):
    """Maintenance or service request filed by a homeowner"""
    contract_id: str
    user_id: str
    title: str
    description: str
    request_type: str
    priority: ServicePriority = ServicePriority.MEDIUM
    status: ServiceRequestStatus = ServiceRequestStatus.PENDING


def _parse(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {label} '{value}'. Expected one of: {allowed}", error=f"Invalid {label}")


def _homeowner_contract(contract_manager: ContractManager, user_id: Optional[str]) -> Contract:
    if not user_id:
        raise ValidationError("User ID is required", error="Missing user ID")
    contracts = contract_manager.list_contracts(user_id=user_id)
    if not contracts:
        raise NotFoundError("Contract not found. Please contact support.", error="Contract not found")
    return contracts[0]["contract"]


class ComplaintManager:
    """Files and tracks homeowner complaints"""

    def __init__(self, storage: StorageInterface, contract_manager: ContractManager, notification_engine: NotificationEngine):
        self.storage = storage
        self.contract_manager = contract_manager
        self.notification_engine = notification_engine
        self.table_name = "complaints"

    def file_complaint(
        self,
        subject: str,
        description: str,
        complaint_type: str,
        user_id: Optional[str],
        severity: Optional[str] = None
    ) -> Complaint:
        if not subject or not description or not complaint_type:
            raise ValidationError(
                "Subject, description, and complaint type are required",
                error="Missing required fields"
            )
        contract = _homeowner_contract(self.contract_manager, user_id)

        now = datetime.now(timezone.utc)
        complaint = Complaint(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            contract_id=contract.id,
            user_id=user_id,
            subject=subject,
            description=description,
            complaint_type=complaint_type,
            severity=_parse(ComplaintSeverity, severity or "medium", "severity")
        )
        self.storage.save(self.table_name, complaint.id, complaint.to_dict())

        self.notification_engine.notify_safely(
            self.notification_engine.notify_roles,
            NotificationTemplates.complaint_filed(
                subject, complaint.severity.value,
                complaint_id=complaint.id, complaint_type=complaint_type, client_name=contract.client_name
            ),
            ["admin", "customer service"]
        )
        return complaint

    def get_complaint(self, complaint_id: str) -> Complaint:
        data = self.storage.load(self.table_name, complaint_id)
        if not data:
            raise NotFoundError(f"Complaint {complaint_id} not found", error="Complaint not found")
        return Complaint.from_dict(data)

    def list_complaints(self, user_id: Optional[str] = None, status: Optional[str] = None) -> List[Complaint]:
        filters = {}
        if user_id:
            filters["user_id"] = user_id
        if status:
            filters["status"] = _parse(ComplaintStatus, status, "status").value
        complaints = [Complaint.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        complaints.sort(key=lambda c: c.created_at, reverse=True)
        return complaints

    def update_status(self, complaint_id: str, status: str) -> Complaint:
        complaint = self.get_complaint(complaint_id)
        complaint.status = _parse(ComplaintStatus, status, "status")
        complaint.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, complaint.id, complaint.to_dict())

        self.notification_engine.notify_safely(
            self.notification_engine.notify_user,
            NotificationTemplates.complaint_status_changed(
                complaint.subject, complaint.status.value, complaint_id=complaint.id
            ),
            complaint.user_id
        )
        return complaint


class ServiceRequestManager:
    """Files and tracks homeowner service requests"""

    def __init__(self, storage: StorageInterface, contract_manager: ContractManager, notification_engine: NotificationEngine):
        self.storage = storage
        self.contract_manager = contract_manager
        self.notification_engine = notification_engine
        self.table_name = "service_requests"

    def submit_request(
        self,
        title: str,
        description: str,
        request_type: str,
        user_id: Optional[str],
        priority: Optional[str] = None
    ) -> ServiceRequest:
        if not title or not description or not request_type:
            raise ValidationError(
                "Title, description, and request type are required",
                error="Missing required fields"
            )
        contract = _homeowner_contract(self.contract_manager, user_id)

        now = datetime.now(timezone.utc)
        request = ServiceRequest(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            contract_id=contract.id,
            user_id=user_id,
            title=title,
            description=description,
            request_type=request_type,
            priority=_parse(ServicePriority, priority or "medium", "priority")
        )
        self.storage.save(self.table_name, request.id, request.to_dict())

        self.notification_engine.notify_safely(
            self.notification_engine.notify_role,
            NotificationTemplates.service_request_submitted(
                title, request_type, request_id=request.id, client_name=contract.client_name
            )
        )
        return request

    def get_request(self, request_id: str) -> ServiceRequest:
        data = self.storage.load(self.table_name, request_id)
        if not data:
            raise NotFoundError(f"Service request {request_id} not found", error="Service request not found")
        return ServiceRequest.from_dict(data)

    def list_requests(self, user_id: Optional[str] = None, status: Optional[str] = None) -> List[ServiceRequest]:
        filters = {}
        if user_id:
            filters["user_id"] = user_id
        if status:
            filters["status"] = _parse(ServiceRequestStatus, status, "status").value
        requests = [ServiceRequest.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests

    def update_status(self, request_id: str, status: str) -> ServiceRequest:
        request = self.get_request(request_id)
        request.status = _parse(ServiceRequestStatus, status, "status")
        request.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, request.id, request.to_dict())

        self.notification_engine.notify_safely(
            self.notification_engine.notify_user,
            NotificationTemplates.service_request_status_changed(
                request.title, request.status.value, request_id=request.id
            ),
            request.user_id
        )
        return request
