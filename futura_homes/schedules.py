"""
Installment Schedule Module

Generates monthly installment rows for a contract's amortized downpayment
and tracks their overdue state. Shared by contract creation and plan changes.
"""

import calendar
import uuid
from decimal import Decimal
from datetime import datetime, timezone, timedelta, date
from dataclasses import dataclass
from typing import List, Optional, Tuple
from enum import Enum

from .storage import StorageRecord
from .exceptions import ValidationError


class PaymentStatus(Enum):
    """Installment payment states"""
    PENDING = "pending"
    PAID = "paid"


@dataclass
class PaymentSchedule(StorageRecord):
    """One installment of a contract's payment plan"""
    contract_id: str
    installment_number: int             # 1-based, unique per contract
    installment_description: str
    scheduled_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    due_date: date
    grace_period_end_date: date
    payment_status: PaymentStatus = PaymentStatus.PENDING
    is_overdue: bool = False
    days_overdue: int = 0
    penalty_amount: Decimal = Decimal('0')
    penalty_rate: Optional[Decimal] = None  # Monthly rate; None means the configured default
    paid_date: Optional[date] = None

    @property
    def schedule_id(self) -> str:
        return self.id

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID


def add_months(start_date: date, months: int) -> date:
    """Add calendar months to a date, clamping to the last day of short months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def partition_schedules(schedules: List[PaymentSchedule]) -> Tuple[List[PaymentSchedule], List[PaymentSchedule]]:
    """Split schedules into (paid, unpaid), each ordered by installment number"""
    ordered = sorted(schedules, key=lambda s: s.installment_number)
    paid = [s for s in ordered if s.is_paid]
    unpaid = [s for s in ordered if not s.is_paid]
    return paid, unpaid


def first_unpaid(schedules: List[PaymentSchedule]) -> Optional[PaymentSchedule]:
    """The earliest-due installment that is not yet paid, if any"""
    unpaid = [s for s in schedules if not s.is_paid]
    if not unpaid:
        return None
    return min(unpaid, key=lambda s: (s.due_date, s.installment_number))


class ScheduleGenerator:
    """
    Builds equal monthly installment rows.

    The per-row amount is principal / months with no residual reconciliation:
    the final row does not absorb the rounding remainder, so the sum of the
    rows may differ from the principal in the last decimal places.
    """

    def __init__(self, grace_period_days: int = 7):
        self.grace_period_days = grace_period_days

    def generate(
        self,
        contract_id: str,
        principal: Decimal,
        months: int,
        first_due_date: date,
        starting_installment_number: int = 1
    ) -> List[PaymentSchedule]:
        """
        Generate `months` pending installments.

        Args:
            contract_id: Owning contract
            principal: Amount to spread across the installments
            months: Number of monthly installments
            first_due_date: Due date of the first generated row; row k is due
                k calendar months later
            starting_installment_number: Absolute number of the first row, so
                numbering continues after installments already paid

        Returns:
            List of unsaved PaymentSchedule rows
        """
        if months < 1:
            raise ValidationError("Payment plan must have at least one month")
        if starting_installment_number < 1:
            raise ValidationError("Installment numbering starts at 1")
        principal = Decimal(str(principal))
        if principal <= 0:
            raise ValidationError("Principal must be greater than zero")

        now = datetime.now(timezone.utc)
        amount = principal / Decimal(months)
        last_number = starting_installment_number + months - 1

        rows = []
        for offset in range(months):
            number = starting_installment_number + offset
            due_date = add_months(first_due_date, offset)
            rows.append(PaymentSchedule(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                contract_id=contract_id,
                installment_number=number,
                installment_description=f"Monthly Payment {number} of {last_number}",
                scheduled_amount=amount,
                paid_amount=Decimal('0'),
                remaining_amount=amount,
                due_date=due_date,
                grace_period_end_date=due_date + timedelta(days=self.grace_period_days),
            ))
        return rows


def refresh_overdue(schedules: List[PaymentSchedule], as_of: date) -> List[PaymentSchedule]:
    """
    Recompute overdue flags against the stored grace period end date.

    Paid rows are never modified. Returns only the rows whose flags changed.
    """
    changed = []
    for schedule in schedules:
        if schedule.is_paid:
            continue

        overdue = as_of > schedule.grace_period_end_date
        days = (as_of - schedule.due_date).days if overdue else 0
        if overdue != schedule.is_overdue or days != schedule.days_overdue:
            schedule.is_overdue = overdue
            schedule.days_overdue = days
            schedule.updated_at = datetime.now(timezone.utc)
            changed.append(schedule)
    return changed
