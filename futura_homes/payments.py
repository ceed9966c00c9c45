"""
Walk-in Payments Module

Records in-person payments against contract installments, exposes payment
details with the current late penalty, transaction history, and reverting a
paid installment back to pending.

Applying a payment is delegated to a PaymentRecorder. StoragePaymentRecorder
applies it against the shared storage backend.
"""

import secrets
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .schedules import PaymentStatus
from .contracts import ContractManager, DownpaymentStatus
from .penalties import PenaltyCalculator
from .notifications import NotificationEngine, NotificationTemplates
from .exceptions import ValidationError, BusinessRuleError
from .logging_config import get_logger, log_action


logger = get_logger("futura.payments")

# Tolerance when comparing a tendered amount against remaining plus penalty
HALF_CENT = Decimal('0.005')


class TransactionStatus(Enum):
    """Payment transaction states"""
    COMPLETED = "completed"
    REVERTED = "reverted"


class PaymentMethod(Enum):
    """Accepted walk-in payment methods"""
    CASH = "cash"
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"
    GCASH = "gcash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"


@dataclass
class PaymentTransaction(StorageRecord):
    """Receipt of one walk-in payment"""
    contract_id: str
    schedule_id: str
    or_number: str
    transaction_date: datetime
    amount_paid: Decimal
    penalty_paid: Decimal
    total_amount: Decimal
    payment_type: str
    payment_method: PaymentMethod
    transaction_status: TransactionStatus = TransactionStatus.COMPLETED
    reference_number: Optional[str] = None
    check_number: Optional[str] = None
    bank_name: Optional[str] = None
    processed_by: Optional[str] = None
    processed_by_name: str = "System"
    notes: Optional[str] = None

    @property
    def transaction_id(self) -> str:
        return self.id


def generate_or_number(on: Optional[date] = None) -> str:
    """Official receipt number OR-YYYYMMDD-XXXXXX"""
    on = on or date.today()
    return f"OR-{on.strftime('%Y%m%d')}-{secrets.token_hex(3).upper()}"


class PaymentRecorder(ABC):
    """Applies a payment to an installment and returns the transaction written"""

    @abstractmethod
    def record_walk_in_payment(
        self,
        schedule_id: str,
        amount_paid: Decimal,
        penalty_paid: Decimal,
        payment_type: str,
        payment_method: PaymentMethod,
        reference_number: Optional[str] = None,
        processed_by: Optional[str] = None,
        processed_by_name: str = "System",
        notes: Optional[str] = None
    ) -> PaymentTransaction:
        pass


class StoragePaymentRecorder(PaymentRecorder):
    """
    Applies payments against the storage backend in one atomic block:
    the installment balance, the transaction row, and the contract totals.
    """

    def __init__(self, storage: StorageInterface, contract_manager: ContractManager):
        self.storage = storage
        self.contract_manager = contract_manager
        self.transactions_table = "contract_payment_transactions"

    def record_walk_in_payment(
        self,
        schedule_id: str,
        amount_paid: Decimal,
        penalty_paid: Decimal,
        payment_type: str,
        payment_method: PaymentMethod,
        reference_number: Optional[str] = None,
        processed_by: Optional[str] = None,
        processed_by_name: str = "System",
        notes: Optional[str] = None
    ) -> PaymentTransaction:
        schedule = self.contract_manager.require_schedule(schedule_id)
        contract = self.contract_manager.require_contract(schedule.contract_id)
        if amount_paid > schedule.remaining_amount:
            raise BusinessRuleError("Payment exceeds remaining balance")

        now = datetime.now(timezone.utc)
        schedule.paid_amount += amount_paid
        schedule.remaining_amount -= amount_paid
        if schedule.remaining_amount <= 0:
            schedule.remaining_amount = Decimal('0')
            schedule.payment_status = PaymentStatus.PAID
            schedule.paid_date = now.date()
            schedule.is_overdue = False
            schedule.days_overdue = 0
        schedule.updated_at = now

        contract.total_paid_amount += amount_paid
        contract.remaining_balance -= amount_paid
        if contract.remaining_balance <= 0:
            contract.remaining_balance = Decimal('0')
            contract.downpayment_status = DownpaymentStatus.COMPLETED
        contract.updated_at = now

        transaction = PaymentTransaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            contract_id=contract.id,
            schedule_id=schedule.id,
            or_number=generate_or_number(now.date()),
            transaction_date=now,
            amount_paid=amount_paid,
            penalty_paid=penalty_paid,
            total_amount=amount_paid + penalty_paid,
            payment_type=payment_type,
            payment_method=payment_method,
            reference_number=reference_number,
            processed_by=processed_by,
            processed_by_name=processed_by_name,
            notes=notes
        )

        with self.storage.atomic():
            self.contract_manager.save_schedule(schedule)
            self.contract_manager.save_contract(contract)
            self.storage.save(self.transactions_table, transaction.id, transaction.to_dict())

        return transaction


class WalkInPaymentService:
    """
    Walk-in payment desk operations
    """

    def __init__(
        self,
        storage: StorageInterface,
        contract_manager: ContractManager,
        recorder: PaymentRecorder,
        penalty_calculator: PenaltyCalculator,
        audit_trail: AuditTrail,
        notification_engine: NotificationEngine,
        min_partial_payment_ratio: Decimal = Decimal('0.10'),
        persist_penalty_on_read: bool = False
    ):
        self.storage = storage
        self.contract_manager = contract_manager
        self.recorder = recorder
        self.penalty_calculator = penalty_calculator
        self.audit_trail = audit_trail
        self.notification_engine = notification_engine
        self.min_partial_payment_ratio = Decimal(str(min_partial_payment_ratio))
        self.persist_penalty_on_read = persist_penalty_on_read
        self.transactions_table = "contract_payment_transactions"

    def record_walk_in_payment(
        self,
        schedule_id: str,
        amount_paid: Optional[Decimal] = None,
        penalty_paid: Optional[Decimal] = None,
        payment_type: Optional[str] = None,
        payment_method: str = "cash",
        reference_number: Optional[str] = None,
        check_number: Optional[str] = None,
        bank_name: Optional[str] = None,
        processed_by: Optional[str] = None,
        processed_by_name: str = "System",
        notes: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Record a walk-in payment against an installment.

        payment_type "full" pays the whole remaining amount and ignores
        amount_paid. Any other type needs amount_paid of at least the
        configured share of the contract's monthly installment. When
        payment_type is omitted it is "full" without an amount, else "partial".
        The late penalty is computed as of `as_of` when penalty_paid is omitted.

        Returns:
            Dict with the transaction, the updated schedule and the updated contract

        Raises:
            ValidationError: missing schedule id or a bad amount
            NotFoundError: the schedule does not exist
            BusinessRuleError: nothing left to pay, or the amount is too large
        """
        if not schedule_id:
            raise ValidationError("Schedule ID is required")
        schedule = self.contract_manager.require_schedule(schedule_id)
        contract = self.contract_manager.require_contract(schedule.contract_id)

        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unsupported payment method: {payment_method}", error="Invalid payment method")

        if payment_type is None:
            payment_type = "full" if amount_paid is None else "partial"

        remaining = schedule.remaining_amount
        if remaining <= 0:
            raise BusinessRuleError("No remaining amount to pay for this installment")

        if payment_type == "full":
            amount = remaining
        else:
            if amount_paid is None:
                raise ValidationError("amount_paid is required for partial payments", error="Missing required fields")
            amount = Decimal(str(amount_paid))
            minimum = contract.monthly_installment * self.min_partial_payment_ratio
            if amount < minimum:
                raise ValidationError(f"Minimum payment is PHP {minimum:,.2f}", error="Payment below minimum")

        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        if amount > remaining:
            raise BusinessRuleError("Payment exceeds remaining balance")

        calculated_penalty = self.penalty_calculator.calculate(schedule, as_of)
        penalty = calculated_penalty if penalty_paid is None else Decimal(str(penalty_paid))
        if penalty < 0:
            raise ValidationError("Penalty cannot be negative")
        if amount + penalty > remaining + calculated_penalty + HALF_CENT:
            raise BusinessRuleError(
                f"Payment of {amount + penalty} exceeds the remaining amount plus penalty "
                f"({remaining + calculated_penalty})",
                error="Payment exceeds remaining balance"
            )

        if calculated_penalty != schedule.penalty_amount:
            schedule.penalty_amount = calculated_penalty
            schedule.updated_at = datetime.now(timezone.utc)
            self.contract_manager.save_schedule(schedule)
            if calculated_penalty > 0:
                self.audit_trail.log_event(
                    event_type=AuditEventType.PENALTY_ASSESSED,
                    entity_type="payment_schedule",
                    entity_id=schedule.id,
                    metadata={"penalty_amount": calculated_penalty},
                    user_id=processed_by
                )

        transaction = self.recorder.record_walk_in_payment(
            schedule_id=schedule.id,
            amount_paid=amount,
            penalty_paid=penalty,
            payment_type=payment_type,
            payment_method=method,
            reference_number=reference_number,
            processed_by=processed_by,
            processed_by_name=processed_by_name,
            notes=notes
        )

        self._finish_recorded_payment(transaction, schedule.id, check_number, bank_name, processed_by)
        log_action(
            logger, "info", f"Walk-in payment {transaction.or_number} recorded",
            user_id=processed_by, action="record_walk_in_payment", resource=schedule.id,
            extra={"amount_paid": str(amount), "penalty_paid": str(penalty)}
        )
        self.notification_engine.notify_safely(
            self.notification_engine.notify_role,
            NotificationTemplates.payment_received(
                transaction.total_amount, contract.contract_number, transaction.or_number,
                transaction_id=transaction.id
            )
        )

        return {
            "transaction": transaction,
            "updated_schedule": self.contract_manager.get_schedule(schedule.id),
            "updated_contract": self.contract_manager.get_contract(contract.id),
        }

    def _finish_recorded_payment(
        self,
        transaction: PaymentTransaction,
        schedule_id: str,
        check_number: Optional[str],
        bank_name: Optional[str],
        processed_by: Optional[str]
    ) -> None:
        """Check details and audit event; the payment is already stored, so failures are only logged"""
        try:
            if check_number or bank_name:
                transaction.check_number = check_number
                transaction.bank_name = bank_name
                transaction.updated_at = datetime.now(timezone.utc)
                self.storage.save(self.transactions_table, transaction.id, transaction.to_dict())

            self.audit_trail.log_event(
                event_type=AuditEventType.WALK_IN_PAYMENT_RECORDED,
                entity_type="payment_schedule",
                entity_id=schedule_id,
                metadata={
                    "transaction_id": transaction.id,
                    "or_number": transaction.or_number,
                    "amount_paid": transaction.amount_paid,
                    "penalty_paid": transaction.penalty_paid,
                    "payment_method": transaction.payment_method.value
                },
                user_id=processed_by
            )
        except Exception as e:
            log_action(
                logger, "warning", f"Post-payment write for {transaction.or_number} failed: {e}",
                user_id=processed_by, action="record_walk_in_payment", resource=schedule_id
            )

    def get_payment_details(self, schedule_id: str, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Installment with its current penalty and its transactions, newest first.

        The returned schedule always carries the penalty as of `as_of`; it is
        written back only when persist_penalty_on_read is set.
        """
        if not schedule_id:
            raise ValidationError("Schedule ID is required")
        schedule = self.contract_manager.require_schedule(schedule_id)
        contract = self.contract_manager.require_contract(schedule.contract_id)

        penalty = self.penalty_calculator.calculate(schedule, as_of)
        if penalty > 0 and penalty != schedule.penalty_amount:
            schedule.penalty_amount = penalty
            if self.persist_penalty_on_read:
                schedule.updated_at = datetime.now(timezone.utc)
                self.contract_manager.save_schedule(schedule)

        return {
            "schedule": schedule,
            "contract": {
                "contract_id": contract.id,
                "contract_number": contract.contract_number,
                "client_name": contract.client_name,
                "client_email": contract.client_email,
                "property_title": contract.property_title,
            },
            "calculated_penalty": penalty,
            "days_overdue_after_grace": self.penalty_calculator.days_overdue(schedule, as_of),
            "grace_period_end": self.penalty_calculator.grace_period_end(schedule),
            "transactions": self.get_transactions(schedule_id=schedule.id),
        }

    def get_transactions(self, contract_id: Optional[str] = None, schedule_id: Optional[str] = None) -> List[PaymentTransaction]:
        filters = {}
        if contract_id:
            filters["contract_id"] = contract_id
        if schedule_id:
            filters["schedule_id"] = schedule_id
        transactions = [
            PaymentTransaction.from_dict(data)
            for data in self.storage.find(self.transactions_table, filters)
        ]
        transactions.sort(key=lambda t: t.transaction_date, reverse=True)
        return transactions

    def get_payment_history(self, contract_id: Optional[str] = None, schedule_id: Optional[str] = None) -> Dict[str, Any]:
        """Transactions newest first with summary totals"""
        if not contract_id and not schedule_id:
            raise ValidationError("Contract ID or Schedule ID is required")

        transactions = self.get_transactions(contract_id, schedule_id)
        methods = []
        for t in transactions:
            if t.payment_method.value not in methods:
                methods.append(t.payment_method.value)

        summary = {
            "total_transactions": len(transactions),
            "total_amount_paid": sum((t.total_amount for t in transactions), Decimal('0')),
            "total_penalties_paid": sum((t.penalty_paid for t in transactions), Decimal('0')),
            "payment_methods": methods,
            "completed_count": sum(1 for t in transactions if t.transaction_status == TransactionStatus.COMPLETED),
            "reverted_count": sum(1 for t in transactions if t.transaction_status == TransactionStatus.REVERTED),
        }
        return {"transactions": transactions, "summary": summary}

    def revert_payment(self, schedule_id: str, reverted_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Put a paid installment back to pending.

        Marking the related transactions as reverted is best-effort. The
        contract's paid total and remaining balance move by the amount that
        was paid on the installment.
        """
        if not schedule_id:
            raise ValidationError("Schedule ID is required")
        schedule = self.contract_manager.require_schedule(schedule_id)
        if schedule.payment_status != PaymentStatus.PAID:
            raise BusinessRuleError("Payment schedule is not in paid status")

        now = datetime.now(timezone.utc)
        previous_paid = schedule.paid_amount
        schedule.payment_status = PaymentStatus.PENDING
        schedule.paid_amount = Decimal('0')
        schedule.remaining_amount = schedule.scheduled_amount
        schedule.paid_date = None
        schedule.updated_at = now
        self.contract_manager.save_schedule(schedule)

        transactions = self.get_transactions(schedule_id=schedule.id)
        reverted = 0
        try:
            for t in transactions:
                t.transaction_status = TransactionStatus.REVERTED
                t.notes = f"Payment reverted on {now.date().isoformat()}"
                t.updated_at = now
            if transactions:
                self.storage.save_many(self.transactions_table, {t.id: t.to_dict() for t in transactions})
                reverted = len(transactions)
        except Exception as e:
            log_action(
                logger, "warning", f"Failed to mark transactions as reverted: {e}",
                user_id=reverted_by, action="revert_payment", resource=schedule.id
            )

        # Payments on pending rows replaced by a plan change no longer appear in
        # any schedule, so the totals move by the reverted amount only.
        contract = self.contract_manager.require_contract(schedule.contract_id)
        contract.total_paid_amount -= previous_paid
        contract.remaining_balance += previous_paid
        if contract.remaining_balance > 0 and contract.downpayment_status == DownpaymentStatus.COMPLETED:
            contract.downpayment_status = DownpaymentStatus.IN_PROGRESS
        contract.updated_at = now
        self.contract_manager.save_contract(contract)

        self.audit_trail.log_event(
            event_type=AuditEventType.PAYMENT_REVERTED,
            entity_type="payment_schedule",
            entity_id=schedule.id,
            metadata={"previous_paid_amount": previous_paid, "transactions_reverted": reverted},
            user_id=reverted_by
        )
        log_action(
            logger, "info", f"Payment on schedule {schedule.id} reverted to pending",
            user_id=reverted_by, action="revert_payment", resource=schedule.id
        )

        return {"schedule_id": schedule.id, "transactions_reverted": reverted}
