"""
Test suite for in-app notifications
"""

import pytest
from unittest import mock

from futura_homes.storage import InMemoryStorage
from futura_homes.audit import AuditTrail
from futura_homes.accounts import AccountManager
from futura_homes.notifications import (
    NotificationEngine, NotificationTemplates, NotificationStatus, NotificationPriority
)
from futura_homes.exceptions import ValidationError, NotFoundError


class TestNotificationTemplates:
    """Test canned payloads"""

    def test_payment_received_formats_amount(self):
        template = NotificationTemplates.payment_received("1004.67", "CTS-2024-ABC", "OR-20240101-AAAAAA")
        assert "PHP 1,004.67" in template["message"]
        assert template["recipient_role"] == "collection"

    def test_complaint_priority_follows_severity(self):
        assert NotificationTemplates.complaint_filed("Leak", "high")["priority"] == NotificationPriority.HIGH
        assert NotificationTemplates.complaint_filed("Noise", "low")["priority"] == NotificationPriority.NORMAL


class TestNotificationEngine:
    """Test notification creation, fan-out and read state"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.accounts = AccountManager(self.storage, AuditTrail(self.storage))
        self.engine = NotificationEngine(self.storage, self.accounts)

    def test_role_only_notification(self):
        notifications = self.engine.notify_role(NotificationTemplates.contract_created("CTS-1", "Maria"))

        assert len(notifications) == 1
        assert notifications[0].recipient_id is None
        assert notifications[0].recipient_role == "admin"
        assert self.engine.list_notifications(role="Admin")[0].title == "New Contract Created"

    def test_fans_out_to_active_role_members(self):
        ana = self.accounts.create_account("ana@futura.ph", "Ana", "collection")
        ben = self.accounts.create_account("ben@futura.ph", "Ben", "collection")
        cara = self.accounts.create_account("cara@futura.ph", "Cara", "collection")
        self.accounts.deactivate_account(cara.id)

        notifications = self.engine.notify_role(NotificationTemplates.payment_received("1000", "CTS-1", "OR-1"))

        assert sorted(n.recipient_id for n in notifications) == sorted([ana.id, ben.id])
        assert self.engine.get_unread_count(ana.id) == 1
        assert self.engine.get_unread_count(cara.id) == 0

    def test_notify_user(self):
        created = self.engine.notify_user(NotificationTemplates.reservation_approved("TRK-1", "Lot 1"), "user-1")
        assert created[0].recipient_id == "user-1"
        assert created[0].priority == NotificationPriority.URGENT

    def test_broadcast_to_roles(self):
        created = self.engine.broadcast("Maintenance", "Portal down at 10pm", ["admin", "collection"], priority="high")
        assert {n.recipient_role for n in created} == {"admin", "collection"}
        assert all(n.priority == NotificationPriority.HIGH for n in created)

    def test_invalid_priority(self):
        with pytest.raises(ValidationError):
            self.engine.broadcast("Title", "Body", ["admin"], priority="shouting")

    def test_mark_as_read(self):
        created = self.engine.notify_user(NotificationTemplates.reservation_approved("TRK-1", "Lot 1"), "user-1")
        read = self.engine.mark_as_read(created[0].id)

        assert read.status == NotificationStatus.READ
        assert read.read_at is not None
        assert self.engine.get_unread_count("user-1") == 0

    def test_mark_as_read_missing(self):
        with pytest.raises(NotFoundError):
            self.engine.mark_as_read("missing")

    def test_mark_all_as_read(self):
        for i in range(3):
            self.engine.notify_user(NotificationTemplates.reservation_approved(f"TRK-{i}", "Lot"), "user-1")
        self.engine.notify_user(NotificationTemplates.reservation_approved("TRK-9", "Lot"), "user-2")

        assert self.engine.mark_all_as_read("user-1") == 3
        assert self.engine.get_unread_count("user-1") == 0
        assert self.engine.get_unread_count("user-2") == 1

    def test_list_filters_and_limit(self):
        for i in range(5):
            self.engine.notify_user(NotificationTemplates.reservation_approved(f"TRK-{i}", "Lot"), "user-1")

        assert len(self.engine.list_notifications(recipient_id="user-1", limit=2)) == 2
        assert len(self.engine.list_notifications(recipient_id="user-1", status="unread")) == 5
        with pytest.raises(ValidationError):
            self.engine.list_notifications(status="archived")

    def test_notify_safely_swallows_failures(self):
        with mock.patch.object(self.storage, "save_many", side_effect=RuntimeError("down")):
            result = self.engine.notify_safely(
                self.engine.notify_user, NotificationTemplates.reservation_approved("TRK-1", "Lot"), "user-1"
            )
        assert result == []

    def test_disabled_engine_sends_nothing(self):
        engine = NotificationEngine(self.storage, self.accounts, enabled=False)
        result = engine.notify_safely(engine.notify_user, NotificationTemplates.reservation_approved("T", "L"), "u")
        assert result == []
        assert self.engine.list_notifications() == []
