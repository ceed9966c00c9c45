"""
Test suite for payment plan changes

Covers the validation gates, rebuilding pending installments, and
compensation when a write fails partway through.
"""

import pytest
from decimal import Decimal
from datetime import timedelta
from unittest import mock

from futura_homes.contracts import ContractStatus, DownpaymentStatus
from futura_homes.schedules import PaymentStatus, add_months
from futura_homes.audit import AuditEventType
from futura_homes.exceptions import ValidationError, NotFoundError, PlanChangeRejected, PlanChangeFailed


class TestPlanChangeValidation:
    """Test the read-only gate check"""

    def test_allowed_change_preview(self, system, make_contract):
        contract = make_contract(months=3)["contract"]
        validation = system.plan_change_reconciler.validate_plan_change(contract.id, 6)

        assert validation.allowed
        assert validation.errors == []
        assert validation.current_plan["monthly_installment"] == Decimal("3000")
        assert validation.proposed_plan["monthly_installment"] == Decimal("1500")
        assert validation.impact["monthly_payment_difference"] == Decimal("-1500")
        assert validation.impact["monthly_payment_change_percent"] == Decimal("-50.00")
        assert validation.impact["schedules_to_recalculate"] == 3

    def test_all_failing_gates_reported_together(self, system, make_contract):
        result = make_contract(months=3)
        contract = result["contract"]
        contract.contract_status = ContractStatus.CANCELLED
        contract.downpayment_status = DownpaymentStatus.COMPLETED
        system.contract_manager.save_contract(contract)
        for schedule in result["payment_schedules"]:
            schedule.payment_status = PaymentStatus.PAID
        system.contract_manager.save_schedules(result["payment_schedules"])

        validation = system.plan_change_reconciler.validate_plan_change(contract.id, 3)

        assert not validation.allowed
        assert validation.errors == [
            "Contract status is 'cancelled'. Only active contracts can be modified.",
            "Downpayment is already completed. Plan change is not allowed.",
            "All installments are already paid. Plan change is not allowed.",
            "Contract already has a 3-month payment plan.",
        ]

    def test_defaulted_contract(self, system, make_contract):
        contract = make_contract(months=3)["contract"]
        contract.downpayment_status = DownpaymentStatus.DEFAULTED
        system.contract_manager.save_contract(contract)

        validation = system.plan_change_reconciler.validate_plan_change(contract.id, 6)
        assert validation.errors == ["Contract is in defaulted status. Plan change is not allowed."]

    def test_overdue_is_only_a_warning(self, system, make_contract):
        result = make_contract(months=3)
        system.contract_manager.refresh_overdue_status(result["payment_schedules"][0].due_date + timedelta(days=10))

        validation = system.plan_change_reconciler.validate_plan_change(result["contract"].id, 6)
        assert validation.allowed
        assert validation.warnings == [
            "There are 1 overdue payment(s). Please settle overdue amounts before changing plan."
        ]

    def test_bounds_checked_before_lookup(self, system):
        with pytest.raises(ValidationError):
            system.plan_change_reconciler.validate_plan_change("missing", 0)
        with pytest.raises(NotFoundError):
            system.plan_change_reconciler.validate_plan_change("missing", 6)


class TestPlanChangeApply:
    """Test replacing pending installments"""

    def test_three_to_six_months(self, system, make_contract):
        result = make_contract(months=3)
        contract = result["contract"]
        first_due = result["payment_schedules"][0].due_date

        change = system.plan_change_reconciler.change_plan(contract.id, 6, reason="Client request", changed_by="staff-1")

        assert change.contract.payment_plan_months == 6
        assert change.contract.monthly_installment == Decimal("1500")
        assert change.contract.final_installment_date == add_months(first_due, 5)
        assert change.kept_schedules == []

        stored = system.contract_manager.get_schedules(contract.id)
        assert [s.installment_number for s in stored] == [1, 2, 3, 4, 5, 6]
        assert all(s.scheduled_amount == Decimal("1500") for s in stored)
        assert stored[0].due_date == first_due
        assert stored[0].installment_description == "Monthly Payment 1 of 6"

        changes = change.summary["changes"]
        assert changes["month_difference"] == 3
        assert changes["monthly_payment_difference"] == Decimal("-1500")
        assert changes["schedules_deleted"] == 3
        assert changes["schedules_created"] == 6

    def test_paid_installments_kept(self, system, make_contract):
        result = make_contract(months=3)
        contract = result["contract"]
        paid_row = result["payment_schedules"][0]
        system.payment_service.record_walk_in_payment(paid_row.id, payment_type="full")

        change = system.plan_change_reconciler.change_plan(contract.id, 4)

        assert change.contract.monthly_installment == Decimal("1500")
        assert [s.id for s in change.kept_schedules] == [paid_row.id]
        stored = system.contract_manager.get_schedules(contract.id)
        assert [s.installment_number for s in stored] == [1, 2, 3, 4, 5]
        assert stored[0].id == paid_row.id
        assert stored[0].payment_status == PaymentStatus.PAID
        assert stored[1].due_date == result["payment_schedules"][1].due_date
        assert change.summary["changes"]["paid_schedules_kept"] == 1

    def test_paid_rows_unchanged_and_balance_matches(self, system, make_contract):
        result = make_contract(months=3)
        contract = result["contract"]
        first, second = result["payment_schedules"][:2]
        system.payment_service.record_walk_in_payment(first.id)
        system.payment_service.record_walk_in_payment(second.id, amount_paid=Decimal("1000"))
        paid_before = system.contract_manager.get_schedule(first.id).to_dict()

        system.plan_change_reconciler.change_plan(contract.id, 4)

        assert system.contract_manager.get_schedule(first.id).to_dict() == paid_before
        stored = system.contract_manager.require_contract(contract.id)
        unpaid = [s for s in system.contract_manager.get_schedules(contract.id) if not s.is_paid]
        assert stored.remaining_balance == Decimal("5000")
        assert stored.remaining_balance == sum(s.remaining_amount for s in unpaid)

    def test_rejected_change_raises(self, system, make_contract):
        contract = make_contract(months=3)["contract"]
        with pytest.raises(PlanChangeRejected) as exc:
            system.plan_change_reconciler.change_plan(contract.id, 3)
        assert exc.value.validation_errors == ["Contract already has a 3-month payment plan."]

    def test_history_and_audit(self, system, make_contract):
        contract = make_contract(months=3)["contract"]
        system.plan_change_reconciler.change_plan(contract.id, 6, reason="Lower installments", changed_by="staff-1")

        history = system.plan_change_reconciler.get_plan_change_history(contract.id)
        assert len(history) == 1
        assert history[0].old_payment_plan_months == 3
        assert history[0].new_payment_plan_months == 6
        assert history[0].reason == "Lower installments"
        assert history[0].changed_by == "staff-1"
        assert system.audit_trail.get_events_by_type(AuditEventType.PAYMENT_PLAN_CHANGED)

    def test_history_failure_keeps_change(self, system, make_contract):
        contract = make_contract(months=3)["contract"]
        original_save = system.storage.save

        def failing_history_save(table, record_id, data):
            if table == "contract_plan_changes":
                raise RuntimeError("history table offline")
            return original_save(table, record_id, data)

        with mock.patch.object(system.storage, "save", side_effect=failing_history_save):
            change = system.plan_change_reconciler.change_plan(contract.id, 6)

        assert change.contract.payment_plan_months == 6
        assert system.contract_manager.require_contract(contract.id).payment_plan_months == 6


class TestPlanChangeCompensation:
    """Test compensation when a write fails"""

    def test_delete_failure_restores_contract(self, system, make_contract):
        result = make_contract(months=3)
        contract = result["contract"]

        with mock.patch.object(system.storage, "delete_many", side_effect=RuntimeError("lock timeout")):
            with pytest.raises(PlanChangeFailed) as exc:
                system.plan_change_reconciler.change_plan(contract.id, 6)

        assert exc.value.compensated
        stored = system.contract_manager.require_contract(contract.id)
        assert stored.payment_plan_months == 3
        assert stored.monthly_installment == Decimal("3000")
        assert len(system.contract_manager.get_schedules(contract.id)) == 3

    def test_insert_failure_restores_pending_rows(self, system, make_contract):
        result = make_contract(months=3)
        contract = result["contract"]
        original_ids = sorted(s.id for s in result["payment_schedules"])
        original_save_many = system.storage.save_many
        calls = []

        def fail_first_insert(table, records):
            calls.append(table)
            if len(calls) == 1:
                raise RuntimeError("insert failed")
            return original_save_many(table, records)

        with mock.patch.object(system.storage, "save_many", side_effect=fail_first_insert):
            with pytest.raises(PlanChangeFailed) as exc:
                system.plan_change_reconciler.change_plan(contract.id, 6)

        assert exc.value.compensated
        assert system.contract_manager.require_contract(contract.id).payment_plan_months == 3
        restored = system.contract_manager.get_schedules(contract.id)
        assert sorted(s.id for s in restored) == original_ids
        assert system.audit_trail.get_events_by_type(AuditEventType.PLAN_CHANGE_COMPENSATED)

    def test_failed_compensation_reported(self, system, make_contract):
        contract = make_contract(months=3)["contract"]

        with mock.patch.object(system.storage, "save_many", side_effect=RuntimeError("storage down")):
            with pytest.raises(PlanChangeFailed) as exc:
                system.plan_change_reconciler.change_plan(contract.id, 6)

        assert not exc.value.compensated
