"""
Test suite for tour bookings and their two-step approval
"""

import pytest
from unittest import mock

from futura_homes.tours import TourStatus
from futura_homes.audit import AuditEventType
from futura_homes.exceptions import ValidationError, NotFoundError, BusinessRuleError, ForbiddenError


@pytest.fixture
def staff(system):
    """One account per back office role"""
    accounts = system.account_manager
    return {
        "admin": accounts.create_account("admin@futura.ph", "Admin", "admin").id,
        "cs": accounts.create_account("cs@futura.ph", "Agent", "customer service").id,
        "sales": accounts.create_account("sales@futura.ph", "Seller", "sales representative").id,
        "collection": accounts.create_account("collect@futura.ph", "Collector", "collection").id,
    }


@pytest.fixture
def book(system):
    def _book(**overrides):
        fields = {
            "property_id": "prop-1",
            "property_title": "Lot 12 Block 4",
            "client_name": "  Ana Reyes ",
            "client_email": "Ana@Example.com",
            "appointment_date": "2026-11-05",
            "appointment_time": "10:00",
        }
        fields.update(overrides)
        return system.tour_manager.book_tour(**fields)
    return _book


class TestBookTour:
    """Test booking and listing tours"""

    def test_booking_is_pending_and_normalized(self, system, book):
        booking = book(client_phone=" 0917 ", message=" Weekend please ")

        assert booking.status == TourStatus.PENDING
        assert booking.client_name == "Ana Reyes"
        assert booking.client_email == "ana@example.com"
        assert booking.client_phone == "0917"
        assert booking.message == "Weekend please"
        assert system.tour_manager.get_tour(booking.id).appointment_time == "10:00"
        assert len(system.audit_trail.get_events_by_type(AuditEventType.TOUR_BOOKED)) == 1

    def test_required_fields(self, book):
        for name in ("property_id", "client_name", "client_email", "appointment_date", "appointment_time"):
            with pytest.raises(ValidationError):
                book(**{name: ""})

    def test_notifies_sales_team(self, system, staff, book):
        book()
        notifications = system.notification_engine.list_notifications(recipient_id=staff["sales"])
        assert [n.notification_type for n in notifications] == ["tour_booked"]
        assert "Ana Reyes booked a tour for Lot 12 Block 4 on 2026-11-05" in notifications[0].message

    def test_notification_failure_does_not_fail_booking(self, system, book):
        with mock.patch.object(system.notification_engine, "notify_role", side_effect=RuntimeError("down")):
            booking = book()
        assert system.tour_manager.get_tour(booking.id).status == TourStatus.PENDING

    def test_list_filters(self, system, book):
        book(user_id="user-1")
        book(client_email="ben@example.com", client_name="Ben")

        assert len(system.tour_manager.list_tours()) == 2
        assert [t.user_id for t in system.tour_manager.list_tours(user_id="user-1")] == ["user-1"]
        assert [t.client_name for t in system.tour_manager.list_tours(client_email="BEN@example.com")] == ["Ben"]


class TestTourApproval:
    """Test the customer service then sales approval chain"""

    def test_two_step_approval(self, system, staff, book):
        booking = book()

        first = system.tour_manager.approve_tour(booking.id, staff["cs"], "Confirmed by phone")
        assert first.status == TourStatus.CS_APPROVED
        assert first.cs_approved_by == staff["cs"]
        assert first.cs_approval_notes == "Confirmed by phone"

        second = system.tour_manager.approve_tour(booking.id, staff["sales"])
        assert second.status == TourStatus.SALES_APPROVED
        assert second.sales_approved_by == staff["sales"]
        assert second.sales_approved_at is not None
        assert len(system.audit_trail.get_events_by_type(AuditEventType.TOUR_APPROVED)) == 2

    def test_admin_can_approve_both_steps(self, system, staff, book):
        booking = book()
        system.tour_manager.approve_tour(booking.id, staff["admin"])
        assert system.tour_manager.approve_tour(booking.id, staff["admin"]).status == TourStatus.SALES_APPROVED

    def test_steps_cannot_be_skipped(self, system, staff, book):
        booking = book()
        with pytest.raises(BusinessRuleError):
            system.tour_manager.approve_tour(booking.id, staff["sales"])

        system.tour_manager.approve_tour(booking.id, staff["cs"])
        with pytest.raises(BusinessRuleError):
            system.tour_manager.approve_tour(booking.id, staff["cs"])

        system.tour_manager.approve_tour(booking.id, staff["sales"])
        with pytest.raises(BusinessRuleError):
            system.tour_manager.approve_tour(booking.id, staff["admin"])

    def test_role_checks(self, system, staff, book):
        booking = book()
        with pytest.raises(ForbiddenError):
            system.tour_manager.approve_tour(booking.id, staff["collection"])
        with pytest.raises(ValidationError, match="verify user role"):
            system.tour_manager.approve_tour(booking.id, "unknown-user")
        with pytest.raises(NotFoundError):
            system.tour_manager.approve_tour("missing", staff["cs"])


class TestTourRejection:
    """Test rejecting bookings"""

    def test_reject_after_first_approval(self, system, staff, book):
        booking = book()
        system.tour_manager.approve_tour(booking.id, staff["cs"])

        rejected = system.tour_manager.reject_tour(booking.id, staff["sales"], " Property sold ")

        assert rejected.status == TourStatus.REJECTED
        assert rejected.rejected_by == staff["sales"]
        assert rejected.rejection_reason == "Property sold"

    def test_reason_required(self, staff, system, book):
        booking = book()
        with pytest.raises(ValidationError):
            system.tour_manager.reject_tour(booking.id, staff["cs"], "  ")

    def test_cannot_reject_twice(self, system, staff, book):
        booking = book()
        system.tour_manager.reject_tour(booking.id, staff["cs"], "Duplicate booking")
        with pytest.raises(BusinessRuleError):
            system.tour_manager.reject_tour(booking.id, staff["admin"], "Again")

    def test_rejector_role_checked(self, system, staff, book):
        booking = book()
        with pytest.raises(ForbiddenError):
            system.tour_manager.reject_tour(booking.id, staff["collection"], "No")
