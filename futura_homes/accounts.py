"""
Accounts Module

User profiles and roles for the back office. Authentication is handled by the
external identity provider; this module only keeps the profile directory used
for role lookups (notifications) and ownership checks.
"""

import uuid
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .exceptions import ValidationError, NotFoundError, ConflictError


class UserRole(Enum):
    """Back office roles"""
    ADMIN = "admin"
    SALES_REPRESENTATIVE = "sales representative"
    COLLECTION = "collection"
    CUSTOMER_SERVICE = "customer service"
    HOMEOWNER = "homeowner"

    @classmethod
    def parse(cls, value: str) -> 'UserRole':
        normalized = value.strip().lower().replace("_", " ")
        for role in cls:
            if role.value == normalized:
                return role
        raise ValidationError(f"Unknown role: {value}", error="Invalid role")


@dataclass
class UserAccount(StorageRecord):
    """Profile of a back office user or homeowner"""
    email: str
    full_name: str
    role: UserRole
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool = True


class AccountManager:
    """Profile directory backed by the shared storage"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "user_profiles"

    def create_account(
        self,
        email: str,
        full_name: str,
        role: str,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> UserAccount:
        """Create a profile; email addresses are unique case-insensitively"""
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise ValidationError("A valid email address is required", error="Invalid email")
        if not full_name or not full_name.strip():
            raise ValidationError("Full name is required", error="Missing required fields")
        if self.storage.find(self.table_name, {"email": email}):
            raise ConflictError(f"An account already exists for {email}", error="Duplicate account")

        now = datetime.now(timezone.utc)
        account = UserAccount(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            email=email,
            full_name=full_name.strip(),
            role=UserRole.parse(role),
            phone=phone,
            address=address
        )
        self.storage.save(self.table_name, account.id, account.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="user_profile",
            entity_id=account.id,
            metadata={"email": email, "role": account.role.value},
            user_id=created_by
        )
        return account

    def get_account(self, account_id: str) -> Optional[UserAccount]:
        data = self.storage.load(self.table_name, account_id)
        return UserAccount.from_dict(data) if data else None

    def require_account(self, account_id: str) -> UserAccount:
        account = self.get_account(account_id)
        if not account:
            raise NotFoundError(f"Account {account_id} not found", error="Account not found")
        return account

    def update_profile(
        self,
        account_id: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        role: Optional[str] = None,
        updated_by: Optional[str] = None
    ) -> UserAccount:
        """Update the mutable profile fields that were supplied"""
        account = self.require_account(account_id)

        changes = {}
        if full_name is not None:
            if not full_name.strip():
                raise ValidationError("Full name cannot be empty")
            account.full_name = full_name.strip()
            changes["full_name"] = account.full_name
        if phone is not None:
            account.phone = phone
            changes["phone"] = phone
        if address is not None:
            account.address = address
            changes["address"] = address
        if role is not None:
            account.role = UserRole.parse(role)
            changes["role"] = account.role.value

        if changes:
            account.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table_name, account.id, account.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_UPDATED,
                entity_type="user_profile",
                entity_id=account.id,
                metadata=changes,
                user_id=updated_by
            )
        return account

    def deactivate_account(self, account_id: str, deactivated_by: Optional[str] = None) -> UserAccount:
        account = self.require_account(account_id)
        if account.is_active:
            account.is_active = False
            account.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table_name, account.id, account.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_DEACTIVATED,
                entity_type="user_profile",
                entity_id=account.id,
                metadata={"email": account.email},
                user_id=deactivated_by
            )
        return account

    def list_accounts(self, role: Optional[str] = None, is_active: Optional[bool] = None) -> List[UserAccount]:
        """List profiles with optional filters, ordered by name"""
        filters = {}
        if role:
            filters["role"] = UserRole.parse(role).value
        if is_active is not None:
            filters["is_active"] = is_active

        accounts = [UserAccount.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        return sorted(accounts, key=lambda a: a.full_name.lower())

    def get_user_ids_by_role(self, role: str) -> List[str]:
        """Ids of active users holding a role (role name matched case-insensitively)"""
        return [account.id for account in self.list_accounts(role=role, is_active=True)]

    def find_by_email(self, email: Optional[str]) -> Optional[UserAccount]:
        """Profile registered under an email address, matched case-insensitively"""
        if not email:
            return None
        matches = self.storage.find(self.table_name, {"email": email.strip().lower()})
        return UserAccount.from_dict(matches[0]) if matches else None
