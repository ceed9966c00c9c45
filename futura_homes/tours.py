"""
Tour Bookings Module

Property tour appointments booked by prospective clients. A booking goes
through two approvals: customer service (or an admin) first, then a sales
representative (or an admin). Any reviewer may reject it until it is fully
approved.
"""

import uuid
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .accounts import AccountManager, UserRole
from .notifications import NotificationEngine, NotificationTemplates
from .exceptions import ValidationError, NotFoundError, BusinessRuleError, ForbiddenError
from .logging_config import get_logger, log_action


logger = get_logger("futura.tours")

REVIEWER_ROLES = (UserRole.ADMIN, UserRole.CUSTOMER_SERVICE, UserRole.SALES_REPRESENTATIVE)


class TourStatus(Enum):
    """Tour booking approval states"""
    PENDING = "pending"
    CS_APPROVED = "cs_approved"
    SALES_APPROVED = "sales_approved"
    REJECTED = "rejected"


@dataclass
class TourBooking(StorageRecord):
    """Appointment to view a property"""
    property_id: str
    client_name: str
    client_email: str
    appointment_date: str
    appointment_time: str
    property_title: Optional[str] = None
    client_phone: Optional[str] = None
    message: Optional[str] = None
    user_id: Optional[str] = None
    status: TourStatus = TourStatus.PENDING
    cs_approved_by: Optional[str] = None
    cs_approved_at: Optional[datetime] = None
    cs_approval_notes: Optional[str] = None
    sales_approved_by: Optional[str] = None
    sales_approved_at: Optional[datetime] = None
    sales_approval_notes: Optional[str] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class TourBookingManager:
    """Books tours and walks them through the two-step approval"""

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        account_manager: AccountManager,
        notification_engine: NotificationEngine
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.account_manager = account_manager
        self.notification_engine = notification_engine
        self.table_name = "appointments"

    def book_tour(
        self,
        property_id: str,
        client_name: str,
        client_email: str,
        appointment_date: str,
        appointment_time: str,
        property_title: Optional[str] = None,
        client_phone: Optional[str] = None,
        message: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> TourBooking:
        """
        Record a pending tour booking and alert the sales team.

        Raises:
            ValidationError: property, client details, date or time missing
        """
        required = (property_id, client_name, client_email, appointment_date, appointment_time)
        if any(not value or not str(value).strip() for value in required):
            raise ValidationError(
                "Property, client details, date and time are required",
                error="Missing required fields"
            )

        now = datetime.now(timezone.utc)
        booking = TourBooking(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            property_id=property_id,
            property_title=property_title or None,
            client_name=client_name.strip(),
            client_email=client_email.strip().lower(),
            client_phone=client_phone.strip() if client_phone else None,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            message=message.strip() if message else None,
            user_id=user_id or None
        )
        self.storage.save(self.table_name, booking.id, booking.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.TOUR_BOOKED,
            entity_type="appointment",
            entity_id=booking.id,
            metadata={"property_id": property_id, "appointment_date": appointment_date},
            user_id=user_id
        )
        self.notification_engine.notify_safely(
            self.notification_engine.notify_role,
            NotificationTemplates.tour_booked(
                booking.client_name, booking.property_title, appointment_date,
                appointment_id=booking.id, appointment_time=appointment_time
            )
        )
        return booking

    def get_tour(self, appointment_id: str) -> TourBooking:
        data = self.storage.load(self.table_name, appointment_id) if appointment_id else None
        if not data:
            raise NotFoundError("Appointment not found", error="Appointment not found")
        return TourBooking.from_dict(data)

    def list_tours(self, user_id: Optional[str] = None, client_email: Optional[str] = None) -> List[TourBooking]:
        """Bookings newest first, filtered by user id or else by client email"""
        filters = {}
        if user_id:
            filters["user_id"] = user_id
        elif client_email:
            filters["client_email"] = client_email.strip().lower()
        tours = [TourBooking.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        tours.sort(key=lambda t: t.created_at, reverse=True)
        return tours

    def _reviewer_role(self, user_id: Optional[str]) -> UserRole:
        account = self.account_manager.get_account(user_id) if user_id else None
        if not account:
            raise ValidationError("Failed to verify user role", error="Invalid user")
        if account.role not in REVIEWER_ROLES:
            raise ForbiddenError(
                "Only admin, customer service or sales representatives can review tour bookings",
                error="Unauthorized"
            )
        return account.role

    def approve_tour(
        self,
        appointment_id: str,
        approver_id: str,
        approval_notes: Optional[str] = None
    ) -> TourBooking:
        """
        Advance a booking one approval step.

        Customer service (or an admin) approves a pending booking; a sales
        representative (or an admin) then approves a cs_approved one.

        Raises:
            ValidationError: approver unknown
            ForbiddenError: approver's role may not review tours
            NotFoundError: booking missing
            BusinessRuleError: booking is not at a step the approver can sign off
        """
        if not appointment_id or not approver_id:
            raise ValidationError("Appointment ID and approver ID are required", error="Missing required fields")
        role = self._reviewer_role(approver_id)
        booking = self.get_tour(appointment_id)
        now = datetime.now(timezone.utc)

        if booking.status == TourStatus.PENDING and role in (UserRole.ADMIN, UserRole.CUSTOMER_SERVICE):
            booking.status = TourStatus.CS_APPROVED
            booking.cs_approved_by = approver_id
            booking.cs_approved_at = now
            booking.cs_approval_notes = approval_notes
        elif booking.status == TourStatus.CS_APPROVED and role in (UserRole.ADMIN, UserRole.SALES_REPRESENTATIVE):
            booking.status = TourStatus.SALES_APPROVED
            booking.sales_approved_by = approver_id
            booking.sales_approved_at = now
            booking.sales_approval_notes = approval_notes
        else:
            raise BusinessRuleError(
                f"A {role.value} cannot approve a booking in status {booking.status.value}",
                error="Invalid approval step"
            )

        booking.updated_at = now
        self.storage.save(self.table_name, booking.id, booking.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.TOUR_APPROVED,
            entity_type="appointment",
            entity_id=booking.id,
            metadata={"status": booking.status.value, "notes": approval_notes},
            user_id=approver_id
        )
        log_action(
            logger, "info", f"Tour booking {booking.id} moved to {booking.status.value}",
            user_id=approver_id, action="approve_tour", resource=booking.id
        )
        self.notification_engine.notify_safely(
            self.notification_engine.notify_role,
            NotificationTemplates.tour_approved(
                booking.client_name, booking.property_title, booking.status.value, appointment_id=booking.id
            )
        )
        return booking

    def reject_tour(self, appointment_id: str, rejector_id: str, rejection_reason: Optional[str]) -> TourBooking:
        """Reject a booking that is not already rejected"""
        if not appointment_id or not rejector_id:
            raise ValidationError("Appointment ID and rejector ID are required", error="Missing required fields")
        if not rejection_reason or not rejection_reason.strip():
            raise ValidationError("Rejection reason is required", error="Missing rejection reason")
        self._reviewer_role(rejector_id)
        booking = self.get_tour(appointment_id)
        if booking.status == TourStatus.REJECTED:
            raise BusinessRuleError("Booking has already been rejected", error="Invalid status")

        now = datetime.now(timezone.utc)
        booking.status = TourStatus.REJECTED
        booking.rejected_by = rejector_id
        booking.rejected_at = now
        booking.rejection_reason = rejection_reason.strip()
        booking.updated_at = now
        self.storage.save(self.table_name, booking.id, booking.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.TOUR_REJECTED,
            entity_type="appointment",
            entity_id=booking.id,
            metadata={"reason": booking.rejection_reason},
            user_id=rejector_id
        )
        self.notification_engine.notify_safely(
            self.notification_engine.notify_role,
            NotificationTemplates.tour_rejected(
                booking.client_name, booking.property_title, booking.rejection_reason, appointment_id=booking.id
            )
        )
        return booking
