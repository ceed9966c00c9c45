"""
Integration tests for the Futura Homes API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from datetime import date, timedelta
from fastapi.testclient import TestClient

import futura_homes.api.deps
from futura_homes.api import app
from futura_homes.api.deps import FuturaSystem
from futura_homes.config import FuturaConfig
from futura_homes.storage import InMemoryStorage


@pytest.fixture
def api_system():
    """In-memory back office swapped in for the global one"""
    test_system = FuturaSystem(config=FuturaConfig(storage_backend="memory"), storage=InMemoryStorage())
    original_system = futura_homes.api.deps.futura_system
    futura_homes.api.deps.futura_system = test_system

    yield test_system

    futura_homes.api.deps.futura_system = original_system
    test_system.close()


@pytest.fixture
def client(api_system):
    """Create a test client for the API"""
    return TestClient(app)


RESERVATION = {
    "property_id": "prop-1",
    "property_title": "Lot 12 Block 4",
    "property_price": "100000",
    "client_name": "Maria Santos",
    "client_email": "maria@example.com",
    "client_phone": "09171234567",
    "client_address": "123 Mabini St",
    "employment_status": "employed",
    "monthly_income": "50000",
    "reservation_fee": "1000",
    "user_id": "owner-1",
}


def create_contract(client, months=3):
    reservation = client.post("/reservations", json=RESERVATION).json()["data"]
    client.post(f"/reservations/{reservation['id']}/approve", json={"reviewed_by": "staff-1"})
    r = client.post("/contracts/create", json={
        "reservation_id": reservation["id"],
        "payment_plan_months": months,
        "created_by": "staff-1",
    })
    assert r.status_code == 201
    return r.json()["data"]


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Futura Homes Back Office API"
        assert "contracts" in data["endpoints"]


class TestContractFlow:
    """End-to-end contract tests"""

    def test_create_contract(self, client):
        data = create_contract(client)

        contract = data["contract"]
        assert contract["remaining_downpayment"] == "9000.00"
        assert contract["contract_status"] == "active"
        assert len(data["payment_schedules"]) == 3
        assert data["payment_schedules"][0]["installment_number"] == 1

    def test_create_contract_validation(self, client):
        r = client.post("/contracts/create", json={"reservation_id": "r-1", "payment_plan_months": 61})
        assert r.status_code == 400
        body = r.json()
        assert body["success"] is False
        assert body["message"] == "Payment plan must be between 1 and 60 months"

    def test_create_contract_unknown_reservation(self, client):
        r = client.post("/contracts/create", json={"reservation_id": "missing", "payment_plan_months": 3})
        assert r.status_code == 404

    def test_get_and_list_contracts(self, client):
        created = create_contract(client)
        contract_id = created["contract"]["id"]

        r = client.get(f"/contracts/{contract_id}")
        assert r.status_code == 200
        assert r.json()["data"]["statistics"]["total_installments"] == 3

        r = client.get("/contracts", params={"user_id": "owner-1"})
        assert r.json()["total"] == 1

        r = client.get("/contracts/by-reservation", params={"reservation_id": created["contract"]["reservation_id"]})
        assert r.json()["data"]["id"] == contract_id

    def test_missing_contract(self, client):
        r = client.get("/contracts/missing")
        assert r.status_code == 404
        assert r.json()["error"] == "Contract not found"

    def test_validate_and_change_plan(self, client):
        contract_id = create_contract(client)["contract"]["id"]

        r = client.post(f"/contracts/{contract_id}/validate-plan-change", json={"new_payment_plan_months": 6})
        assert r.status_code == 200
        assert r.json()["allowed"] is True

        r = client.post(f"/contracts/{contract_id}/change-plan", json={
            "new_payment_plan_months": 6, "reason": "Client request", "changed_by": "staff-1"
        })
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["contract"]["payment_plan_months"] == 6
        assert len(data["new_payment_schedules"]) == 6
        assert data["summary"]["changes"]["schedules_deleted"] == 3

        r = client.get(f"/contracts/{contract_id}/plan-changes")
        assert len(r.json()["data"]) == 1

    def test_rejected_plan_change(self, client):
        contract_id = create_contract(client)["contract"]["id"]

        r = client.post(f"/contracts/{contract_id}/change-plan", json={"new_payment_plan_months": 3})
        assert r.status_code == 400
        assert r.json()["validation_errors"] == ["Contract already has a 3-month payment plan."]

    def test_overdue_refresh(self, client):
        create_contract(client)
        as_of = (date.today() + timedelta(days=60)).isoformat()

        r = client.post("/contracts/overdue/refresh", json={"as_of": as_of})
        assert r.status_code == 200
        assert r.json()["data"]["contracts_processed"] == 1


class TestPaymentFlow:
    """End-to-end walk-in payment tests"""

    def test_walk_in_payment_and_history(self, client):
        data = create_contract(client)
        schedule_id = data["payment_schedules"][0]["id"]
        contract_id = data["contract"]["id"]

        r = client.post("/contracts/payment/walk-in", json={
            "schedule_id": schedule_id, "payment_type": "full", "processed_by_name": "Cashier"
        })
        assert r.status_code == 200
        body = r.json()["data"]
        assert body["transaction"]["amount_paid"] == "3000.00"
        assert body["updated_schedule"]["payment_status"] == "paid"

        r = client.get("/contracts/payment/walk-in", params={"schedule_id": schedule_id})
        assert r.status_code == 200
        assert len(r.json()["data"]["transactions"]) == 1

        r = client.get("/contracts/payment/history", params={"contract_id": contract_id})
        assert r.json()["summary"]["total_transactions"] == 1

    def test_overpayment_rejected(self, client):
        schedule_id = create_contract(client)["payment_schedules"][0]["id"]

        r = client.post("/contracts/payment/walk-in", json={"schedule_id": schedule_id, "amount_paid": "5000"})
        assert r.status_code == 400
        assert r.json()["success"] is False

    def test_revert_payment(self, client):
        schedule_id = create_contract(client)["payment_schedules"][0]["id"]
        client.post("/contracts/payment/walk-in", json={"schedule_id": schedule_id})

        r = client.post("/contracts/payment/revert", json={"schedule_id": schedule_id, "reverted_by": "admin-1"})
        assert r.status_code == 200
        assert r.json()["data"]["transactions_reverted"] == 1


class TestReservationFlow:
    """End-to-end reservation tests"""

    def test_submit_and_review(self, client):
        r = client.post("/reservations", json=RESERVATION)
        assert r.status_code == 201
        reservation_id = r.json()["data"]["id"]

        r = client.post(f"/reservations/{reservation_id}/reject", json={"notes": "Incomplete documents"})
        assert r.json()["data"]["status"] == "rejected"

        r = client.get("/reservations", params={"status": "rejected"})
        assert len(r.json()["data"]) == 1

    def test_invalid_payload(self, client):
        r = client.post("/reservations", json={"property_id": "prop-1"})
        assert r.status_code == 400
        assert r.json()["success"] is False


class TestHomeownerServices:
    """End-to-end complaint, service request, notification and inquiry tests"""

    def test_complaint_lifecycle(self, client):
        create_contract(client)

        r = client.post("/complaints", json={
            "subject": "Leak", "description": "Kitchen ceiling", "complaint_type": "maintenance",
            "user_id": "owner-1"
        })
        assert r.status_code == 201
        complaint_id = r.json()["data"]["id"]

        r = client.patch(f"/complaints/{complaint_id}", json={"status": "resolved"})
        assert r.json()["data"]["status"] == "resolved"

        r = client.get("/notifications", params={"recipient_id": "owner-1"})
        assert r.json()["total"] >= 1

        r = client.post("/notifications/read-all", json={"recipient_id": "owner-1"})
        assert r.json()["data"]["updated"] >= 1
        r = client.get("/notifications/unread-count", params={"recipient_id": "owner-1"})
        assert r.json()["data"]["unread_count"] == 0

    def test_service_request_without_contract(self, client):
        r = client.post("/service-requests", json={
            "title": "Fix gate", "description": "Broken hinge", "request_type": "repair", "user_id": "stranger"
        })
        assert r.status_code == 404

    def test_inquiry_rate_limit(self, client):
        for i in range(5):
            r = client.post("/inquiries", json={
                "property_id": f"prop-{i}", "client_firstname": "Juan", "client_lastname": "Cruz",
                "client_email": "juan@example.com", "message": "Available?"
            })
            assert r.status_code == 200

        r = client.post("/inquiries", json={
            "property_id": "prop-9", "client_firstname": "Juan", "client_lastname": "Cruz",
            "client_email": "juan@example.com", "message": "Available?"
        })
        assert r.status_code == 429
        assert r.json()["retry_after_minutes"] > 0

    def test_broadcast(self, client):
        client.post("/accounts", json={"email": "admin@futura.ph", "full_name": "Admin", "role": "admin"})

        r = client.post("/notifications/broadcast", json={
            "title": "Maintenance", "message": "Portal down tonight", "roles": ["admin"]
        })
        assert r.status_code == 200
        assert r.json()["total"] == 1


class TestAccounts:
    """End-to-end account tests"""

    def test_account_lifecycle(self, client):
        r = client.post("/accounts", json={"email": "ana@futura.ph", "full_name": "Ana", "role": "collection"})
        assert r.status_code == 201
        account_id = r.json()["data"]["id"]

        r = client.patch(f"/accounts/{account_id}", json={"phone": "0917"})
        assert r.json()["data"]["phone"] == "0917"

        r = client.post(f"/accounts/{account_id}/deactivate")
        assert r.json()["data"]["is_active"] is False

        r = client.get("/accounts", params={"is_active": "false"})
        assert r.json()["total"] == 1

    def test_duplicate_account(self, client):
        payload = {"email": "ana@futura.ph", "full_name": "Ana", "role": "collection"}
        client.post("/accounts", json=payload)
        r = client.post("/accounts", json=payload)
        assert r.status_code == 409


class TestTransferFlow:
    """End-to-end contract transfer tests"""

    def test_transfer_and_revert(self, client):
        contract_id = create_contract(client)["contract"]["id"]

        r = client.post("/contracts/transfer", json={
            "contract_id": contract_id,
            "new_client_name": "Jose Santos",
            "new_client_email": "jose@example.com",
            "new_user_id": "owner-2",
            "relationship": "sibling",
            "transfer_reason": "Relocating abroad",
        })
        assert r.status_code == 200
        data = r.json()["data"]
        assert data["contract"]["client_name"] == "Jose Santos"
        assert data["original_client"]["client_name"] == "Maria Santos"
        transfer_id = data["transfer_history"]["id"]

        r = client.get(f"/contracts/{contract_id}/transfers")
        assert r.json()["total"] == 1

        r = client.post("/contracts/revert-transfer", json={"contract_id": contract_id, "transfer_id": transfer_id})
        assert r.status_code == 200
        assert r.json()["data"]["user_id"] == "owner-1"

    def test_transfer_validation(self, client):
        r = client.post("/contracts/transfer", json={"contract_id": "c-1", "new_client_name": "Jose"})
        assert r.status_code == 400
        r = client.post("/contracts/revert-transfer", json={"contract_id": "c-1", "transfer_id": "t-1"})
        assert r.status_code == 404


class TestTourBookingFlow:
    """End-to-end tour booking tests"""

    def staff_id(self, client, email, role):
        return client.post("/accounts", json={"email": email, "full_name": role.title(), "role": role}).json()["data"]["id"]

    def test_book_approve_and_list(self, client):
        cs_id = self.staff_id(client, "cs@futura.ph", "customer service")
        sales_id = self.staff_id(client, "sales@futura.ph", "sales representative")

        r = client.post("/book-tour", json={
            "property_id": "prop-1", "client_name": "Ana Reyes", "client_email": "ana@example.com",
            "appointment_date": "2026-11-05", "appointment_time": "10:00", "user_id": "user-1"
        })
        assert r.status_code == 201
        appointment_id = r.json()["data"]["id"]

        r = client.post("/book-tour/approve", json={"appointment_id": appointment_id, "approver_id": cs_id})
        assert r.json()["data"]["status"] == "cs_approved"
        r = client.post("/book-tour/approve", json={"appointment_id": appointment_id, "approver_id": sales_id})
        assert r.json()["data"]["status"] == "sales_approved"

        r = client.get("/book-tour", params={"userId": "user-1"})
        assert r.json()["total"] == 1

    def test_reject_requires_allowed_role(self, client):
        collector_id = self.staff_id(client, "collect@futura.ph", "collection")
        r = client.post("/book-tour", json={
            "property_id": "prop-1", "client_name": "Ana Reyes", "client_email": "ana@example.com",
            "appointment_date": "2026-11-05", "appointment_time": "10:00"
        })
        appointment_id = r.json()["data"]["id"]

        r = client.post("/book-tour/reject", json={
            "appointment_id": appointment_id, "rejector_id": collector_id, "rejection_reason": "No"
        })
        assert r.status_code == 403

    def test_missing_fields(self, client):
        r = client.post("/book-tour", json={"property_id": "prop-1"})
        assert r.status_code == 400
