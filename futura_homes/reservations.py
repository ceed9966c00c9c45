"""
Reservations Module

Property reservation intake and review. An approved reservation is the
prerequisite for creating a contract to sell.
"""

import secrets
import string
import uuid
from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .notifications import NotificationEngine, NotificationTemplates
from .exceptions import ValidationError, NotFoundError, BusinessRuleError


CONTRACTS_TABLE = "property_contracts"


class ReservationStatus(Enum):
    """Reservation review states"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class Reservation(StorageRecord):
    """A client's reservation of a property"""
    tracking_number: str
    property_id: str
    property_title: str
    property_price: Decimal
    reservation_fee: Decimal
    client_name: str
    client_email: str
    client_phone: str
    client_address: str
    employment_status: str
    monthly_income: Decimal
    user_id: Optional[str] = None
    status: ReservationStatus = ReservationStatus.PENDING
    notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @property
    def reservation_id(self) -> str:
        return self.id


def generate_tracking_number() -> str:
    """TRK- followed by eight random uppercase letters and digits"""
    alphabet = string.ascii_uppercase + string.digits
    return "TRK-" + "".join(secrets.choice(alphabet) for _ in range(8))


class ReservationManager:
    """Submits and reviews property reservations"""

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        notification_engine: NotificationEngine
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.notification_engine = notification_engine
        self.table_name = "property_reservations"

    def submit_reservation(
        self,
        property_id: str,
        property_title: str,
        property_price: Decimal,
        client_name: str,
        client_email: str,
        client_phone: str,
        client_address: str,
        employment_status: str,
        monthly_income: Decimal,
        reservation_fee: Decimal = Decimal('0'),
        user_id: Optional[str] = None
    ) -> Reservation:
        """
        Record a new pending reservation and alert the sales team.

        Raises:
            ValidationError: a required field is missing or an amount is out of range
        """
        required = {
            "property_id": property_id,
            "client_name": client_name,
            "client_email": client_email,
            "client_phone": client_phone,
            "client_address": client_address,
            "employment_status": employment_status,
        }
        missing = [name for name, value in required.items() if not value or not str(value).strip()]
        if monthly_income is None:
            missing.append("monthly_income")
        if property_price is None:
            missing.append("property_price")
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                error="Missing required fields"
            )

        monthly_income = Decimal(str(monthly_income))
        property_price = Decimal(str(property_price))
        reservation_fee = Decimal(str(reservation_fee or 0))
        if monthly_income <= 0:
            raise ValidationError("Monthly income must be greater than zero", error="Invalid income")
        if property_price <= 0:
            raise ValidationError("Property price must be greater than zero", error="Invalid price")
        if reservation_fee < 0:
            raise ValidationError("Reservation fee cannot be negative", error="Invalid reservation fee")

        now = datetime.now(timezone.utc)
        reservation = Reservation(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            tracking_number=generate_tracking_number(),
            property_id=property_id,
            property_title=property_title or "",
            property_price=property_price,
            reservation_fee=reservation_fee,
            client_name=client_name.strip(),
            client_email=client_email.strip().lower(),
            client_phone=client_phone.strip(),
            client_address=client_address.strip(),
            employment_status=employment_status,
            monthly_income=monthly_income,
            user_id=user_id
        )
        self.storage.save(self.table_name, reservation.id, reservation.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.RESERVATION_SUBMITTED,
            entity_type="reservation",
            entity_id=reservation.id,
            metadata={"tracking_number": reservation.tracking_number, "property_id": property_id},
            user_id=user_id
        )
        self.notification_engine.notify_safely(
            self.notification_engine.notify_role,
            NotificationTemplates.reservation_submitted(
                reservation.client_name, reservation.property_title, reservation.tracking_number,
                reservation_id=reservation.id
            )
        )
        return reservation

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        data = self.storage.load(self.table_name, reservation_id)
        return Reservation.from_dict(data) if data else None

    def require_reservation(self, reservation_id: str) -> Reservation:
        reservation = self.get_reservation(reservation_id)
        if not reservation:
            raise NotFoundError(f"Reservation {reservation_id} not found", error="Reservation not found")
        return reservation

    def list_reservations(self, status: Optional[str] = None, user_id: Optional[str] = None) -> List[Reservation]:
        """Reservations newest first"""
        filters = {}
        if status:
            try:
                filters["status"] = ReservationStatus(status).value
            except ValueError:
                raise ValidationError(f"Invalid reservation status: {status}", error="Invalid status")
        if user_id:
            filters["user_id"] = user_id
        reservations = [Reservation.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        reservations.sort(key=lambda r: r.created_at, reverse=True)
        return reservations

    def approve_reservation(self, reservation_id: str, reviewed_by: Optional[str] = None) -> Reservation:
        reservation = self.require_reservation(reservation_id)
        if reservation.status != ReservationStatus.PENDING:
            raise BusinessRuleError(
                f"Only pending reservations can be approved (current status: {reservation.status.value})",
                error="Invalid status"
            )

        self._review(reservation, ReservationStatus.APPROVED, reviewed_by)
        self.audit_trail.log_event(
            event_type=AuditEventType.RESERVATION_APPROVED,
            entity_type="reservation",
            entity_id=reservation.id,
            metadata={"tracking_number": reservation.tracking_number},
            user_id=reviewed_by
        )
        if reservation.user_id:
            self.notification_engine.notify_safely(
                self.notification_engine.notify_user,
                NotificationTemplates.reservation_approved(
                    reservation.tracking_number, reservation.property_title, reservation_id=reservation.id
                ),
                reservation.user_id
            )
        return reservation

    def reject_reservation(self, reservation_id: str, notes: Optional[str] = None, reviewed_by: Optional[str] = None) -> Reservation:
        reservation = self.require_reservation(reservation_id)
        if reservation.status != ReservationStatus.PENDING:
            raise BusinessRuleError(
                f"Only pending reservations can be rejected (current status: {reservation.status.value})",
                error="Invalid status"
            )

        reservation.notes = notes
        self._review(reservation, ReservationStatus.REJECTED, reviewed_by)
        self.audit_trail.log_event(
            event_type=AuditEventType.RESERVATION_REJECTED,
            entity_type="reservation",
            entity_id=reservation.id,
            metadata={"tracking_number": reservation.tracking_number, "notes": notes},
            user_id=reviewed_by
        )
        if reservation.user_id:
            self.notification_engine.notify_safely(
                self.notification_engine.notify_user,
                NotificationTemplates.reservation_rejected(
                    reservation.tracking_number, reservation.property_title, notes, reservation_id=reservation.id
                ),
                reservation.user_id
            )
        return reservation

    def revert_reservation(self, reservation_id: str, reverted_by: Optional[str] = None) -> Reservation:
        """Send an approved reservation back to pending review"""
        reservation = self.require_reservation(reservation_id)
        if reservation.status != ReservationStatus.APPROVED:
            raise BusinessRuleError(
                "Only approved reservations can be reverted to pending",
                error="Invalid status"
            )
        if self.storage.find(CONTRACTS_TABLE, {"reservation_id": reservation.id}):
            raise BusinessRuleError(
                "A contract already exists for this reservation",
                error="Contract exists"
            )

        reservation.status = ReservationStatus.PENDING
        reservation.reviewed_by = None
        reservation.reviewed_at = None
        reservation.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, reservation.id, reservation.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.RESERVATION_REVERTED,
            entity_type="reservation",
            entity_id=reservation.id,
            metadata={"tracking_number": reservation.tracking_number},
            user_id=reverted_by
        )
        return reservation

    def reassign_client(
        self,
        reservation_id: str,
        user_id: Optional[str],
        client_name: str,
        client_email: str,
        client_phone: str,
        client_address: str
    ) -> Reservation:
        """Point a reservation at a different client after its contract changes hands"""
        reservation = self.require_reservation(reservation_id)
        reservation.user_id = user_id
        reservation.client_name = client_name
        reservation.client_email = client_email
        reservation.client_phone = client_phone
        reservation.client_address = client_address
        reservation.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, reservation.id, reservation.to_dict())
        return reservation

    def _review(self, reservation: Reservation, status: ReservationStatus, reviewed_by: Optional[str]) -> None:
        now = datetime.now(timezone.utc)
        reservation.status = status
        reservation.reviewed_by = reviewed_by
        reservation.reviewed_at = now
        reservation.updated_at = now
        self.storage.save(self.table_name, reservation.id, reservation.to_dict())
