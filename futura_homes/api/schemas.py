"""
Pydantic schemas for API requests
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


# Contract schemas
class CreateContractRequest(BaseModel):
    reservation_id: Optional[str] = None
    payment_plan_months: Optional[int] = None
    created_by: Optional[str] = None


class PlanChangeRequest(BaseModel):
    new_payment_plan_months: Optional[int] = None
    reason: Optional[str] = None
    changed_by: Optional[str] = None


class OverdueRefreshRequest(BaseModel):
    as_of: Optional[str] = Field(None, description="ISO date, defaults to today")


# Payment schemas
class WalkInPaymentRequest(BaseModel):
    schedule_id: Optional[str] = None
    contract_id: Optional[str] = None
    payment_type: Optional[str] = Field(None, description="full, partial, monthly, weekly or daily")
    amount_paid: Optional[Decimal] = None
    penalty_paid: Optional[Decimal] = Field(None, description="Computed from the due date when omitted")
    payment_method: str = "cash"
    reference_number: Optional[str] = None
    check_number: Optional[str] = None
    bank_name: Optional[str] = None
    processed_by: Optional[str] = None
    processed_by_name: str = "System"
    notes: Optional[str] = None


class RevertPaymentRequest(BaseModel):
    schedule_id: Optional[str] = None
    reverted_by: Optional[str] = None


# Reservation schemas
class SubmitReservationRequest(BaseModel):
    property_id: str
    property_title: Optional[str] = None
    property_price: Decimal
    client_name: str
    client_email: str
    client_phone: str
    client_address: str
    employment_status: str
    monthly_income: Decimal
    reservation_fee: Decimal = Decimal('0')
    user_id: Optional[str] = None


class ReviewReservationRequest(BaseModel):
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None


# Notification schemas
class MarkAllReadRequest(BaseModel):
    recipient_id: str


class BroadcastRequest(BaseModel):
    title: str
    message: str
    roles: List[str] = Field(default_factory=lambda: ["admin"])
    priority: str = "normal"
    action_url: Optional[str] = None


# Complaint and service request schemas
class FileComplaintRequest(BaseModel):
    subject: Optional[str] = None
    description: Optional[str] = None
    complaint_type: Optional[str] = None
    severity: Optional[str] = None
    user_id: Optional[str] = None


class ServiceRequestRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    request_type: Optional[str] = None
    priority: Optional[str] = None
    user_id: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str


# Inquiry schemas
class SubmitInquiryRequest(BaseModel):
    property_id: Optional[str] = None
    property_title: Optional[str] = None
    client_firstname: Optional[str] = None
    client_lastname: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    message: Optional[str] = None
    user_id: Optional[str] = None
    is_authenticated: bool = False


# Account schemas
class CreateAccountRequest(BaseModel):
    email: str
    full_name: str
    role: str
    phone: Optional[str] = None
    address: Optional[str] = None
    created_by: Optional[str] = None


class UpdateAccountRequest(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    role: Optional[str] = None
    updated_by: Optional[str] = None


# Contract transfer schemas
class TransferContractRequest(BaseModel):
    contract_id: Optional[str] = None
    new_client_name: Optional[str] = None
    new_client_email: Optional[str] = None
    new_client_phone: Optional[str] = None
    new_client_address: Optional[str] = None
    new_user_id: Optional[str] = None
    relationship: Optional[str] = None
    transfer_reason: Optional[str] = None
    transfer_notes: Optional[str] = None
    transferred_by: Optional[str] = None


class RevertTransferRequest(BaseModel):
    contract_id: Optional[str] = None
    transfer_id: Optional[str] = None
    reverted_by: Optional[str] = None


# Tour booking schemas
class BookTourRequest(BaseModel):
    property_id: Optional[str] = None
    property_title: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    message: Optional[str] = None
    user_id: Optional[str] = None


class ApproveTourRequest(BaseModel):
    appointment_id: Optional[str] = None
    approver_id: Optional[str] = None
    approval_notes: Optional[str] = None


class RejectTourRequest(BaseModel):
    appointment_id: Optional[str] = None
    rejector_id: Optional[str] = None
    rejection_reason: Optional[str] = None
