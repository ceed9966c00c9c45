"""
Plan Change Module

Validates and applies a change of a contract's installment plan length.
Paid installments are kept; every pending installment is replaced by a fresh
series that spreads the remaining balance over the new number of months.

Applying a change takes three writes (contract, delete pending rows, insert
new rows). They run inside storage.atomic(), and each failing write is also
compensated by re-writing the captured originals so that backends without
real transactions end up where they started. A failure during compensation
is logged and left as is.
"""

import uuid
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .schedules import PaymentSchedule, ScheduleGenerator, add_months, partition_schedules, first_unpaid
from .contracts import Contract, ContractManager, ContractStatus, DownpaymentStatus
from .exceptions import PlanChangeRejected, PlanChangeFailed
from .logging_config import get_logger, log_action


logger = get_logger("futura.plan_changes")


@dataclass
class PlanChangeValidation:
    """Outcome of the plan change gates plus a preview of the new plan"""
    allowed: bool
    errors: List[str]
    warnings: List[str]
    current_plan: Dict[str, Any]
    proposed_plan: Dict[str, Any]
    impact: Dict[str, Any]


@dataclass
class PlanChangeAudit(StorageRecord):
    """History row written after a successful plan change"""
    contract_id: str
    old_payment_plan_months: int
    new_payment_plan_months: int
    old_monthly_installment: Decimal
    new_monthly_installment: Decimal
    old_final_installment_date: Optional[date]
    new_final_installment_date: date
    reason: str
    schedules_deleted: int
    schedules_created: int
    paid_schedules_kept: int
    changed_by: Optional[str] = None


@dataclass
class PlanChangeResult:
    """Updated contract, untouched paid rows and the newly inserted rows"""
    contract: Contract
    kept_schedules: List[PaymentSchedule]
    new_schedules: List[PaymentSchedule]
    summary: Dict[str, Any] = field(default_factory=dict)


class PlanChangeValidator:
    """Read-only gate check for a proposed plan length"""

    def validate(self, contract: Contract, schedules: List[PaymentSchedule], new_months: int) -> PlanChangeValidation:
        errors = []
        warnings = []

        if contract.contract_status != ContractStatus.ACTIVE:
            errors.append(
                f"Contract status is '{contract.contract_status.value}'. Only active contracts can be modified."
            )
        if contract.downpayment_status == DownpaymentStatus.COMPLETED:
            errors.append("Downpayment is already completed. Plan change is not allowed.")
        if contract.downpayment_status == DownpaymentStatus.DEFAULTED:
            errors.append("Contract is in defaulted status. Plan change is not allowed.")

        paid, pending = partition_schedules(schedules)
        if schedules and len(paid) == len(schedules):
            errors.append("All installments are already paid. Plan change is not allowed.")
        if contract.payment_plan_months == new_months:
            errors.append(f"Contract already has a {new_months}-month payment plan.")

        overdue_count = sum(1 for s in schedules if s.is_overdue)
        if overdue_count > 0:
            warnings.append(
                f"There are {overdue_count} overdue payment(s). "
                "Please settle overdue amounts before changing plan."
            )

        old_installment = contract.monthly_installment
        new_installment = contract.remaining_balance / Decimal(new_months)
        first_pending = first_unpaid(schedules)
        new_final_date = add_months(first_pending.due_date, new_months - 1) if first_pending else None

        difference = new_installment - old_installment
        if old_installment:
            change_percent = (difference / old_installment * Decimal('100')).quantize(
                Decimal('0.01'), rounding=ROUND_HALF_UP
            )
        else:
            change_percent = None

        return PlanChangeValidation(
            allowed=not errors,
            errors=errors,
            warnings=warnings,
            current_plan={
                "payment_plan_months": contract.payment_plan_months,
                "monthly_installment": old_installment,
                "remaining_balance": contract.remaining_balance,
                "paid_installments": len(paid),
                "pending_installments": len(pending),
                "overdue_installments": overdue_count,
                "final_installment_date": contract.final_installment_date,
            },
            proposed_plan={
                "payment_plan_months": new_months,
                "monthly_installment": new_installment,
                "remaining_balance": contract.remaining_balance,
                "new_final_installment_date": new_final_date,
            },
            impact={
                "monthly_payment_difference": difference,
                "monthly_payment_change_percent": change_percent,
                "schedules_to_recalculate": len(pending),
            },
        )


class PlanChangeReconciler:
    """
    Applies validated plan changes to a contract and its schedule
    """

    def __init__(
        self,
        storage: StorageInterface,
        contract_manager: ContractManager,
        audit_trail: AuditTrail,
        validator: Optional[PlanChangeValidator] = None,
        schedule_generator: Optional[ScheduleGenerator] = None
    ):
        self.storage = storage
        self.contract_manager = contract_manager
        self.audit_trail = audit_trail
        self.validator = validator or PlanChangeValidator()
        self.schedule_generator = schedule_generator or contract_manager.schedule_generator
        self.history_table = "contract_plan_changes"

    def validate_plan_change(self, contract_id: str, new_months: Any) -> PlanChangeValidation:
        """Bounds-check the requested length, then run the gates against stored state"""
        new_months = self.contract_manager.check_plan_months(new_months)
        contract = self.contract_manager.require_contract(contract_id)
        schedules = self.contract_manager.get_schedules(contract.id)
        return self.validator.validate(contract, schedules, new_months)

    def change_plan(
        self,
        contract_id: str,
        new_months: Any,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None
    ) -> PlanChangeResult:
        new_months = self.contract_manager.check_plan_months(new_months)
        contract = self.contract_manager.require_contract(contract_id)
        schedules = self.contract_manager.get_schedules(contract.id)
        return self.apply(contract, schedules, new_months, reason, changed_by)

    def apply(
        self,
        contract: Contract,
        schedules: List[PaymentSchedule],
        new_months: int,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None
    ) -> PlanChangeResult:
        """
        Replace the pending installments of a contract with a new series.

        Args:
            contract: Contract to change
            schedules: All of its installments
            new_months: New number of monthly installments for the remaining balance
            reason: Free text reason kept in the plan change history
            changed_by: Staff user performing the change

        Returns:
            PlanChangeResult with the updated contract, kept paid rows, new rows
            and a summary of the change

        Raises:
            PlanChangeRejected: one or more gates failed
            PlanChangeFailed: a write failed; compensation was attempted
        """
        validation = self.validator.validate(contract, schedules, new_months)
        if not validation.allowed:
            raise PlanChangeRejected(validation.errors)

        paid, pending = partition_schedules(schedules)
        new_installment = contract.remaining_balance / Decimal(new_months)
        first_pending = first_unpaid(schedules)
        start_date = first_pending.due_date if first_pending else add_months(date.today(), 1)
        new_final_date = add_months(start_date, new_months - 1)

        original = {
            "payment_plan_months": contract.payment_plan_months,
            "monthly_installment": contract.monthly_installment,
            "final_installment_date": contract.final_installment_date,
            "updated_at": contract.updated_at,
        }

        with self.storage.atomic():
            contract.payment_plan_months = new_months
            contract.monthly_installment = new_installment
            contract.final_installment_date = new_final_date
            contract.updated_at = datetime.now(timezone.utc)
            self.contract_manager.save_contract(contract)

            try:
                self.contract_manager.delete_schedules([s.id for s in pending])
            except Exception as e:
                compensated = self._restore_contract(contract, original)
                raise PlanChangeFailed(
                    f"Failed to delete pending schedules: {e}", compensated=compensated
                ) from e

            try:
                new_schedules = self.schedule_generator.generate(
                    contract.id,
                    contract.remaining_balance,
                    new_months,
                    start_date,
                    starting_installment_number=len(paid) + 1
                )
                self.contract_manager.save_schedules(new_schedules)
            except Exception as e:
                contract_restored = self._restore_contract(contract, original)
                schedules_restored = self._restore_schedules(contract.id, pending)
                raise PlanChangeFailed(
                    f"Failed to create new payment schedules: {e}",
                    compensated=contract_restored and schedules_restored
                ) from e

        summary = {
            "old_plan": {
                "payment_plan_months": original["payment_plan_months"],
                "monthly_installment": original["monthly_installment"],
                "final_installment_date": original["final_installment_date"],
            },
            "new_plan": {
                "payment_plan_months": new_months,
                "monthly_installment": new_installment,
                "final_installment_date": new_final_date,
            },
            "changes": {
                "month_difference": new_months - original["payment_plan_months"],
                "monthly_payment_difference": new_installment - original["monthly_installment"],
                "schedules_deleted": len(pending),
                "schedules_created": len(new_schedules),
                "paid_schedules_kept": len(paid),
            },
        }

        self._record_history(contract, original, summary, reason, changed_by)
        log_action(
            logger, "info",
            f"Payment plan of {contract.contract_number} changed from "
            f"{original['payment_plan_months']} to {new_months} months",
            user_id=changed_by, action="change_plan", resource=contract.id,
            extra=summary["changes"]
        )

        return PlanChangeResult(
            contract=contract,
            kept_schedules=paid,
            new_schedules=new_schedules,
            summary=summary
        )

    def get_plan_change_history(self, contract_id: str) -> List[PlanChangeAudit]:
        rows = [PlanChangeAudit.from_dict(d) for d in self.storage.find(self.history_table, {"contract_id": contract_id})]
        rows.sort(key=lambda r: r.created_at)
        return rows

    def _restore_contract(self, contract: Contract, original: Dict[str, Any]) -> bool:
        contract.payment_plan_months = original["payment_plan_months"]
        contract.monthly_installment = original["monthly_installment"]
        contract.final_installment_date = original["final_installment_date"]
        contract.updated_at = original["updated_at"]
        try:
            self.contract_manager.save_contract(contract)
        except Exception as e:
            log_action(
                logger, "error", f"Could not restore contract after failed plan change: {e}",
                action="compensate_plan_change", resource=contract.id
            )
            return False
        self._log_compensation(contract.id, "contract_restored")
        return True

    def _restore_schedules(self, contract_id: str, pending: List[PaymentSchedule]) -> bool:
        try:
            self.contract_manager.save_schedules(pending)
        except Exception as e:
            log_action(
                logger, "error", f"Could not re-insert {len(pending)} pending schedules: {e}",
                action="compensate_plan_change", resource=contract_id
            )
            return False
        self._log_compensation(contract_id, "pending_schedules_restored")
        return True

    def _log_compensation(self, contract_id: str, step: str) -> None:
        try:
            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_CHANGE_COMPENSATED,
                entity_type="contract",
                entity_id=contract_id,
                metadata={"step": step}
            )
        except Exception as e:
            logger.warning(f"Audit write for plan change compensation failed: {e}")

    def _record_history(
        self,
        contract: Contract,
        original: Dict[str, Any],
        summary: Dict[str, Any],
        reason: Optional[str],
        changed_by: Optional[str]
    ) -> None:
        """Plan change history and audit event; failures are logged and never unwind the change"""
        now = datetime.now(timezone.utc)
        changes = summary["changes"]
        record = PlanChangeAudit(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            contract_id=contract.id,
            old_payment_plan_months=original["payment_plan_months"],
            new_payment_plan_months=contract.payment_plan_months,
            old_monthly_installment=original["monthly_installment"],
            new_monthly_installment=contract.monthly_installment,
            old_final_installment_date=original["final_installment_date"],
            new_final_installment_date=contract.final_installment_date,
            reason=reason or "No reason provided",
            schedules_deleted=changes["schedules_deleted"],
            schedules_created=changes["schedules_created"],
            paid_schedules_kept=changes["paid_schedules_kept"],
            changed_by=changed_by
        )
        try:
            self.storage.save(self.history_table, record.id, record.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_PLAN_CHANGED,
                entity_type="contract",
                entity_id=contract.id,
                metadata={
                    "old_payment_plan_months": record.old_payment_plan_months,
                    "new_payment_plan_months": record.new_payment_plan_months,
                    "new_monthly_installment": record.new_monthly_installment,
                    "reason": record.reason
                },
                user_id=changed_by
            )
        except Exception as e:
            log_action(
                logger, "warning", f"Plan change history write failed: {e}",
                user_id=changed_by, action="change_plan", resource=contract.id
            )
