"""
Notification Engine Module

In-app notifications addressed to a role or to individual users. Business
operations call notify_safely so that a notification failure is logged and
never fails the operation that triggered it.
"""

import uuid
from datetime import datetime, timezone
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .accounts import AccountManager
from .exceptions import ValidationError, NotFoundError
from .logging_config import get_logger, log_action


logger = get_logger("futura.notifications")


class NotificationPriority(Enum):
    """Notification priority levels"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationStatus(Enum):
    """Read state of an in-app notification"""
    UNREAD = "unread"
    READ = "read"


@dataclass
class Notification(StorageRecord):
    """In-app notification row"""
    notification_type: str
    title: str
    message: str
    recipient_role: str
    recipient_id: Optional[str] = None  # None means every user holding recipient_role
    icon: str = "info"
    priority: NotificationPriority = NotificationPriority.NORMAL
    status: NotificationStatus = NotificationStatus.UNREAD
    data: Dict[str, Any] = field(default_factory=dict)
    action_url: Optional[str] = None
    source_table: str = "system"
    source_table_display_name: str = "System"
    read_at: Optional[datetime] = None


def _peso(amount: Any) -> str:
    return f"PHP {Decimal(str(amount)):,.2f}"


class NotificationTemplates:
    """Canned notification payloads for back office events"""

    @staticmethod
    def contract_created(contract_number: str, client_name: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "contract_created",
            "title": "New Contract Created",
            "message": f"Contract {contract_number} has been created for {client_name}.",
            "icon": "document",
            "priority": NotificationPriority.HIGH,
            "recipient_role": "admin",
            "source_table": "property_contracts",
            "source_table_display_name": "Property Contract",
            "action_url": "/client-contract-to-sell",
            "data": {"contract_number": contract_number, "client_name": client_name, **data},
        }

    @staticmethod
    def payment_received(amount: Any, contract_number: str, or_number: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "payment_received",
            "title": "Payment Received",
            "message": f"{_peso(amount)} payment received for {contract_number}. OR#: {or_number}",
            "icon": "payment",
            "priority": NotificationPriority.NORMAL,
            "recipient_role": "collection",
            "source_table": "contract_payment_transactions",
            "source_table_display_name": "Payment Transaction",
            "action_url": "/transactions",
            "data": {"amount": amount, "contract_number": contract_number, "or_number": or_number, **data},
        }

    @staticmethod
    def reservation_submitted(client_name: str, property_title: Optional[str], tracking_number: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "reservation_submitted",
            "title": "New Property Reservation",
            "message": (
                f"{client_name} submitted a reservation for {property_title or 'a property'}. "
                f"Tracking: {tracking_number}"
            ),
            "icon": "calendar",
            "priority": NotificationPriority.HIGH,
            "recipient_role": "sales representative",
            "source_table": "property_reservations",
            "source_table_display_name": "Property Reservation",
            "action_url": "/client-reservation",
            "data": {"client_name": client_name, "tracking_number": tracking_number, **data},
        }

    @staticmethod
    def reservation_approved(tracking_number: str, property_title: Optional[str], **data) -> Dict[str, Any]:
        return {
            "notification_type": "reservation_approved",
            "title": "Reservation Approved",
            "message": (
                f"Congratulations! Your reservation ({tracking_number}) for {property_title} has been "
                "approved. Our team will contact you shortly with next steps."
            ),
            "icon": "check",
            "priority": NotificationPriority.URGENT,
            "recipient_role": "homeowner",
            "source_table": "property_reservations",
            "source_table_display_name": "Property Reservation",
            "action_url": "/client-bookings",
            "data": {"tracking_number": tracking_number, **data},
        }

    @staticmethod
    def reservation_rejected(tracking_number: str, property_title: Optional[str], notes: Optional[str] = None, **data) -> Dict[str, Any]:
        reason = f"Reason: {notes}" if notes else "Please contact us for more information."
        return {
            "notification_type": "reservation_rejected",
            "title": "Reservation Update",
            "message": f"Your reservation ({tracking_number}) for {property_title} was not approved. {reason}",
            "icon": "cross",
            "priority": NotificationPriority.HIGH,
            "recipient_role": "homeowner",
            "source_table": "property_reservations",
            "source_table_display_name": "Property Reservation",
            "action_url": "/client-bookings",
            "data": {"tracking_number": tracking_number, "notes": notes, **data},
        }

    @staticmethod
    def complaint_filed(subject: str, severity: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "complaint_filed",
            "title": "New Complaint Filed",
            "message": f"A {severity} severity complaint was filed: {subject}",
            "icon": "alert",
            "priority": NotificationPriority.HIGH if severity in ("high", "critical") else NotificationPriority.NORMAL,
            "recipient_role": "admin",
            "source_table": "complaints",
            "source_table_display_name": "Complaint",
            "action_url": "/complaints",
            "data": {"subject": subject, "severity": severity, **data},
        }

    @staticmethod
    def complaint_status_changed(subject: str, status: str, **data) -> Dict[str, Any]:
        messages = {
            "investigating": f"Your complaint '{subject}' is now being investigated.",
            "resolved": f"Your complaint '{subject}' has been resolved.",
            "closed": f"Your complaint '{subject}' has been closed.",
            "escalated": f"Your complaint '{subject}' has been escalated for further review.",
            "pending": f"Your complaint '{subject}' has been moved back to pending.",
        }
        return {
            "notification_type": "complaint_updated",
            "title": "Complaint Update",
            "message": messages.get(status, f"Your complaint '{subject}' is now {status}."),
            "icon": "alert",
            "priority": NotificationPriority.HIGH if status == "escalated" else NotificationPriority.NORMAL,
            "recipient_role": "homeowner",
            "source_table": "complaints",
            "source_table_display_name": "Complaint",
            "action_url": "/complaints",
            "data": {"subject": subject, "status": status, **data},
        }

    @staticmethod
    def service_request_submitted(title: str, request_type: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "service_request_submitted",
            "title": "New Service Request",
            "message": f"A {request_type} service request was submitted: {title}",
            "icon": "wrench",
            "priority": NotificationPriority.NORMAL,
            "recipient_role": "customer service",
            "source_table": "request_tbl",
            "source_table_display_name": "Service Request",
            "action_url": "/service-requests",
            "data": {"title": title, "request_type": request_type, **data},
        }

    @staticmethod
    def service_request_status_changed(title: str, status: str, **data) -> Dict[str, Any]:
        messages = {
            "approved": f"Your service request '{title}' has been approved.",
            "in_progress": f"Work on your service request '{title}' has started.",
            "completed": f"Your service request '{title}' has been completed.",
            "declined": f"Your service request '{title}' was declined.",
            "cancelled": f"Your service request '{title}' was cancelled.",
        }
        return {
            "notification_type": "service_request_updated",
            "title": "Service Request Update",
            "message": messages.get(status, f"Your service request '{title}' is now {status}."),
            "icon": "wrench",
            "priority": NotificationPriority.NORMAL,
            "recipient_role": "homeowner",
            "source_table": "request_tbl",
            "source_table_display_name": "Service Request",
            "action_url": "/service-requests",
            "data": {"title": title, "status": status, **data},
        }

    @staticmethod
    def inquiry_received(client_name: str, client_email: str, property_title: Optional[str] = None, **data) -> Dict[str, Any]:
        return {
            "notification_type": "inquiry_received",
            "title": "New Property Inquiry",
            "message": f"{client_name} ({client_email}) sent an inquiry about {property_title or 'a property'}.",
            "icon": "question",
            "priority": NotificationPriority.NORMAL,
            "recipient_role": "sales representative",
            "source_table": "client_inquiries",
            "source_table_display_name": "Client Inquiry",
            "action_url": "/client-inquiries",
            "data": {"client_name": client_name, "client_email": client_email, **data},
        }

    @staticmethod
    def contract_transferred(contract_number: str, new_client_name: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "contract_transferred",
            "title": "Contract Transferred",
            "message": f"Your contract {contract_number} has been transferred to {new_client_name}.",
            "icon": "document",
            "priority": NotificationPriority.HIGH,
            "recipient_role": "homeowner",
            "source_table": "contract_transfer_history",
            "source_table_display_name": "Contract Transfer",
            "action_url": "/client-contract-to-sell",
            "data": {"contract_number": contract_number, "new_client_name": new_client_name, **data},
        }

    @staticmethod
    def contract_received(contract_number: str, property_title: Optional[str], **data) -> Dict[str, Any]:
        return {
            "notification_type": "contract_received",
            "title": "Contract Transferred to You",
            "message": f"Contract {contract_number} for {property_title or 'a property'} has been transferred to you.",
            "icon": "document",
            "priority": NotificationPriority.HIGH,
            "recipient_role": "homeowner",
            "source_table": "contract_transfer_history",
            "source_table_display_name": "Contract Transfer",
            "action_url": "/client-contract-to-sell",
            "data": {"contract_number": contract_number, **data},
        }

    @staticmethod
    def transfer_reverted(contract_number: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "contract_transfer_reverted",
            "title": "Contract Transfer Reverted",
            "message": f"The transfer of contract {contract_number} to you has been reverted.",
            "icon": "document",
            "priority": NotificationPriority.HIGH,
            "recipient_role": "homeowner",
            "source_table": "contract_transfer_history",
            "source_table_display_name": "Contract Transfer",
            "action_url": "/client-contract-to-sell",
            "data": {"contract_number": contract_number, **data},
        }

    @staticmethod
    def contract_restored(contract_number: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "contract_restored",
            "title": "Contract Restored to You",
            "message": f"The transfer of contract {contract_number} was reverted. The contract is yours again.",
            "icon": "document",
            "priority": NotificationPriority.HIGH,
            "recipient_role": "homeowner",
            "source_table": "contract_transfer_history",
            "source_table_display_name": "Contract Transfer",
            "action_url": "/client-contract-to-sell",
            "data": {"contract_number": contract_number, **data},
        }

    @staticmethod
    def tour_booked(client_name: str, property_title: Optional[str], appointment_date: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "tour_booked",
            "title": "New Tour Booking",
            "message": f"{client_name} booked a tour for {property_title or 'a property'} on {appointment_date}.",
            "icon": "calendar",
            "priority": NotificationPriority.NORMAL,
            "recipient_role": "sales representative",
            "source_table": "appointments",
            "source_table_display_name": "Tour Booking",
            "action_url": "/book-tour",
            "data": {"client_name": client_name, "appointment_date": appointment_date, **data},
        }

    @staticmethod
    def tour_approved(client_name: str, property_title: Optional[str], stage: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "tour_approved",
            "title": "Tour Booking Approved",
            "message": f"The tour of {property_title or 'a property'} for {client_name} was approved ({stage}).",
            "icon": "check",
            "priority": NotificationPriority.NORMAL,
            "recipient_role": "sales representative",
            "source_table": "appointments",
            "source_table_display_name": "Tour Booking",
            "action_url": "/book-tour",
            "data": {"client_name": client_name, "stage": stage, **data},
        }

    @staticmethod
    def tour_rejected(client_name: str, property_title: Optional[str], reason: str, **data) -> Dict[str, Any]:
        return {
            "notification_type": "tour_rejected",
            "title": "Tour Booking Rejected",
            "message": f"The tour of {property_title or 'a property'} for {client_name} was rejected. Reason: {reason}",
            "icon": "cross",
            "priority": NotificationPriority.NORMAL,
            "recipient_role": "sales representative",
            "source_table": "appointments",
            "source_table_display_name": "Tour Booking",
            "action_url": "/book-tour",
            "data": {"client_name": client_name, "reason": reason, **data},
        }


class NotificationEngine:
    """Creates and tracks in-app notifications"""

    def __init__(self, storage: StorageInterface, account_manager: AccountManager, enabled: bool = True):
        self.storage = storage
        self.account_manager = account_manager
        self.enabled = enabled
        self.notifications_table = "notifications"

    def create_notification(
        self,
        notification_type: str,
        title: str,
        message: str,
        recipient_role: str = "admin",
        recipient_id: Optional[str] = None,
        recipient_ids: Optional[List[str]] = None,
        icon: str = "info",
        priority: NotificationPriority = NotificationPriority.NORMAL,
        data: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None,
        source_table: str = "system",
        source_table_display_name: str = "System"
    ) -> List[Notification]:
        """
        Create notification rows.

        One row per id in recipient_ids when given, else one row for
        recipient_id, else a single row addressed to the role only.
        """
        try:
            priority = NotificationPriority(priority)
        except ValueError:
            raise ValidationError(f"Invalid notification priority: {priority}", error="Invalid priority")

        if recipient_ids:
            targets: List[Optional[str]] = list(recipient_ids)
        elif recipient_id:
            targets = [recipient_id]
        else:
            targets = [None]

        now = datetime.now(timezone.utc)
        payload = dict(data or {})
        payload["created_at"] = now.isoformat()

        notifications = [
            Notification(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                notification_type=notification_type,
                title=title,
                message=message,
                recipient_role=recipient_role,
                recipient_id=target,
                icon=icon,
                priority=priority,
                data=payload,
                action_url=action_url,
                source_table=source_table,
                source_table_display_name=source_table_display_name
            )
            for target in targets
        ]
        self.storage.save_many(
            self.notifications_table,
            {n.id: n.to_dict() for n in notifications}
        )
        return notifications

    def notify_role(self, template: Dict[str, Any], role: Optional[str] = None) -> List[Notification]:
        """Send a template to every active user holding a role, or to the role itself when nobody does"""
        role = role or template["recipient_role"]
        user_ids = self.account_manager.get_user_ids_by_role(role)
        return self.create_notification(**{**template, "recipient_role": role, "recipient_ids": user_ids})

    def notify_roles(self, template: Dict[str, Any], roles: List[str]) -> List[Notification]:
        created = []
        for role in roles:
            created.extend(self.notify_role(template, role))
        return created

    def notify_user(self, template: Dict[str, Any], user_id: str) -> List[Notification]:
        return self.create_notification(**{**template, "recipient_id": user_id})

    def broadcast(self, title: str, message: str, roles: List[str], **kwargs) -> List[Notification]:
        """Send a system notification to several roles"""
        template = {
            "notification_type": "system_event",
            "title": title,
            "message": message,
            **kwargs,
        }
        return self.notify_roles(template, roles)

    def notify_safely(self, send, *args, **kwargs) -> List[Notification]:
        """Run a notify_* call; failures are logged and an empty list is returned"""
        if not self.enabled:
            return []
        try:
            return send(*args, **kwargs)
        except Exception as e:
            log_action(
                logger, "warning", f"Notification failed: {e}",
                action="notify", resource="notifications",
                extra={"error_type": type(e).__name__}
            )
            return []

    def get_notification(self, notification_id: str) -> Optional[Notification]:
        data = self.storage.load(self.notifications_table, notification_id)
        return Notification.from_dict(data) if data else None

    def list_notifications(
        self,
        recipient_id: Optional[str] = None,
        role: Optional[str] = None,
        status: Optional[NotificationStatus] = None,
        limit: int = 50
    ) -> List[Notification]:
        """Notifications newest first, filtered by recipient, role and status"""
        filters = {}
        if recipient_id:
            filters["recipient_id"] = recipient_id
        if role:
            filters["recipient_role"] = role.lower()
        if status:
            try:
                filters["status"] = NotificationStatus(status).value
            except ValueError:
                raise ValidationError(f"Invalid notification status: {status}", error="Invalid status")

        notifications = [Notification.from_dict(data) for data in self.storage.find(self.notifications_table, filters)]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications[:limit]

    def mark_as_read(self, notification_id: str) -> Notification:
        notification = self.get_notification(notification_id)
        if not notification:
            raise NotFoundError(f"Notification {notification_id} not found", error="Notification not found")

        if notification.status != NotificationStatus.READ:
            notification.status = NotificationStatus.READ
            notification.read_at = datetime.now(timezone.utc)
            notification.updated_at = notification.read_at
            self.storage.save(self.notifications_table, notification.id, notification.to_dict())
        return notification

    def mark_all_as_read(self, recipient_id: str) -> int:
        """Mark every unread notification of a recipient as read, returning how many changed"""
        unread = self.list_notifications(recipient_id=recipient_id, status=NotificationStatus.UNREAD, limit=10000)
        now = datetime.now(timezone.utc)
        for notification in unread:
            notification.status = NotificationStatus.READ
            notification.read_at = now
            notification.updated_at = now
        if unread:
            self.storage.save_many(self.notifications_table, {n.id: n.to_dict() for n in unread})
        return len(unread)

    def get_unread_count(self, recipient_id: str) -> int:
        return len(self.storage.find(self.notifications_table, {
            "recipient_id": recipient_id,
            "status": NotificationStatus.UNREAD.value
        }))
