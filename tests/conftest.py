"""
Shared fixtures: an in-memory back office and factories for approved
reservations and contracts.
"""

import pytest
from decimal import Decimal

from futura_homes.config import FuturaConfig
from futura_homes.storage import InMemoryStorage
from futura_homes.api.deps import FuturaSystem


@pytest.fixture
def system():
    """Back office wired against in-memory storage"""
    test_system = FuturaSystem(config=FuturaConfig(storage_backend="memory"), storage=InMemoryStorage())
    yield test_system
    test_system.close()


@pytest.fixture
def make_reservation(system):
    """Factory for reservations, approved unless told otherwise"""
    def _make(price="100000", fee="1000", user_id=None, approve=True, email="maria@example.com"):
        reservation = system.reservation_manager.submit_reservation(
            property_id="prop-1",
            property_title="Lot 12 Block 4",
            property_price=Decimal(price),
            client_name="Maria Santos",
            client_email=email,
            client_phone="09171234567",
            client_address="123 Mabini St, Quezon City",
            employment_status="employed",
            monthly_income=Decimal("50000"),
            reservation_fee=Decimal(fee),
            user_id=user_id
        )
        if approve:
            reservation = system.reservation_manager.approve_reservation(reservation.id, reviewed_by="staff-1")
        return reservation
    return _make


@pytest.fixture
def make_contract(system, make_reservation):
    """Factory returning {"contract", "payment_schedules"} for a fresh contract"""
    def _make(months=3, price="100000", fee="1000", user_id=None):
        reservation = make_reservation(price=price, fee=fee, user_id=user_id)
        return system.contract_manager.create_contract(reservation.id, months, created_by="staff-1")
    return _make
