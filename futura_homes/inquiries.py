"""
Inquiries Module

Public property inquiries with per-email throttling and duplicate detection.
The throttle's hit log lives in the shared storage backend so every API
process sees the same counts.
"""

import hashlib
import math
import threading
import uuid
from datetime import datetime, timezone, timedelta
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .notifications import NotificationEngine, NotificationTemplates
from .exceptions import ValidationError, NotFoundError, ConflictError, RateLimitExceeded


class InquiryStatus(Enum):
    """Inquiry follow-up states"""
    PENDING = "pending"
    CONTACTED = "contacted"
    CLOSED = "closed"


@dataclass
class Inquiry(StorageRecord):
    """Inquiry about a property from a prospective client"""
    property_id: str
    client_firstname: str
    client_lastname: str
    client_email: str
    message: str
    property_title: Optional[str] = None
    client_phone: Optional[str] = None
    user_id: Optional[str] = None
    is_authenticated: bool = False
    status: InquiryStatus = InquiryStatus.PENDING

    @property
    def client_name(self) -> str:
        return f"{self.client_firstname} {self.client_lastname}"


class RateLimiter:
    """
    Sliding window limiter keyed by an identifier.

    Each key's recent hit timestamps are stored as one record in the shared
    storage backend.
    """

    def __init__(self, storage: StorageInterface, max_requests: int = 5, window_seconds: int = 3600,
                 table_name: str = "rate_limit_hits"):
        self.storage = storage
        self.max_requests = max_requests
        self.window = timedelta(seconds=window_seconds)
        self.table_name = table_name
        self._lock = threading.Lock()

    @staticmethod
    def _record_id(key: str) -> str:
        return hashlib.sha256(key.encode("utf-8")).hexdigest()

    def hit(self, key: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Register a request for key if it is within the limit.

        Returns:
            Dict with allowed, remaining and reset_minutes (minutes until the
            oldest hit in the window expires; 0 when allowed)
        """
        now = now or datetime.now(timezone.utc)
        record_id = self._record_id(key)

        with self._lock, self.storage.atomic():
            record = self.storage.load(self.table_name, record_id) or {"hits": []}
            recent = [
                stamp for stamp in (datetime.fromisoformat(h) for h in record["hits"])
                if now - stamp < self.window
            ]
            recent.sort()

            if len(recent) >= self.max_requests:
                reset = recent[0] + self.window - now
                return {
                    "allowed": False,
                    "remaining": 0,
                    "reset_minutes": math.ceil(reset.total_seconds() / 60),
                }

            recent.append(now)
            self.storage.save(self.table_name, record_id, {
                "id": record_id,
                "hits": [stamp.isoformat() for stamp in recent],
                "updated_at": now.isoformat(),
            })
            return {"allowed": True, "remaining": self.max_requests - len(recent), "reset_minutes": 0}

    def reset(self, key: str) -> None:
        self.storage.delete(self.table_name, self._record_id(key))


class InquiryManager:
    """Accepts and tracks property inquiries"""

    def __init__(
        self,
        storage: StorageInterface,
        notification_engine: NotificationEngine,
        rate_limiter: RateLimiter,
        duplicate_window_hours: int = 24
    ):
        self.storage = storage
        self.notification_engine = notification_engine
        self.rate_limiter = rate_limiter
        self.duplicate_window = timedelta(hours=duplicate_window_hours)
        self.table_name = "client_inquiries"

    def submit_inquiry(
        self,
        property_id: str,
        client_firstname: str,
        client_lastname: str,
        client_email: str,
        message: str,
        property_title: Optional[str] = None,
        client_phone: Optional[str] = None,
        user_id: Optional[str] = None,
        is_authenticated: bool = False,
        now: Optional[datetime] = None
    ) -> Inquiry:
        """
        Raises:
            ValidationError: a required field is missing
            RateLimitExceeded: too many inquiries from this email in the window
            ConflictError: same email already asked about this property recently
        """
        if not all([property_id, client_firstname, client_lastname, client_email, message]):
            raise ValidationError(
                "Property, client details, and message are required",
                error="Missing required fields"
            )

        now = now or datetime.now(timezone.utc)
        email = client_email.strip().lower()

        limit = self.rate_limiter.hit(email, now)
        if not limit["allowed"]:
            raise RateLimitExceeded(
                f"Too many inquiries. Please try again in {limit['reset_minutes']} minutes.",
                retry_after_minutes=limit["reset_minutes"]
            )

        cutoff = now - self.duplicate_window
        previous = self.storage.find(self.table_name, {"client_email": email, "property_id": property_id})
        if any(datetime.fromisoformat(p["created_at"]) >= cutoff for p in previous):
            raise ConflictError(
                "You have already submitted an inquiry for this property recently. "
                "Our team will contact you soon.",
                error="Duplicate inquiry"
            )

        inquiry = Inquiry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            property_id=property_id,
            client_firstname=client_firstname.strip(),
            client_lastname=client_lastname.strip(),
            client_email=email,
            message=message.strip(),
            property_title=property_title,
            client_phone=client_phone.strip() if client_phone else None,
            user_id=user_id,
            is_authenticated=is_authenticated
        )
        self.storage.save(self.table_name, inquiry.id, inquiry.to_dict())

        self.notification_engine.notify_safely(
            self.notification_engine.notify_role,
            NotificationTemplates.inquiry_received(
                inquiry.client_name, email, property_title,
                inquiry_id=inquiry.id, property_id=property_id, client_phone=inquiry.client_phone
            )
        )
        return inquiry

    def get_inquiry(self, inquiry_id: str) -> Inquiry:
        data = self.storage.load(self.table_name, inquiry_id)
        if not data:
            raise NotFoundError(f"Inquiry {inquiry_id} not found", error="Inquiry not found")
        return Inquiry.from_dict(data)

    def list_inquiries(self, user_id: Optional[str] = None, client_email: Optional[str] = None) -> List[Inquiry]:
        """Inquiries newest first; user_id takes precedence over client_email"""
        filters = {}
        if user_id:
            filters["user_id"] = user_id
        elif client_email:
            filters["client_email"] = client_email.strip().lower()
        inquiries = [Inquiry.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        inquiries.sort(key=lambda i: i.created_at, reverse=True)
        return inquiries

    def update_status(self, inquiry_id: str, status: str) -> Inquiry:
        inquiry = self.get_inquiry(inquiry_id)
        try:
            inquiry.status = InquiryStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid inquiry status: {status}", error="Invalid status")
        inquiry.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, inquiry.id, inquiry.to_dict())
        return inquiry
