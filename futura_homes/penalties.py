"""
Late Payment Penalty Module

Computes pro-rated penalties for installments paid after the penalty grace
window. The window here (3 days after the due date by default) is separate
from the 7-day grace_period_end_date stored on each installment.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import date, timedelta
from typing import Optional

from .schedules import PaymentSchedule


CENT = Decimal('0.01')
DAYS_PER_MONTH = Decimal('30')


class PenaltyCalculator:
    """Daily pro-rated penalty on the scheduled amount of an installment"""

    def __init__(self, grace_period_days: int = 3, default_rate: Decimal = Decimal('0.02')):
        self.grace_period_days = grace_period_days
        self.default_rate = Decimal(str(default_rate))

    def grace_period_end(self, schedule: PaymentSchedule) -> date:
        return schedule.due_date + timedelta(days=self.grace_period_days)

    def days_overdue(self, schedule: PaymentSchedule, as_of: Optional[date] = None) -> int:
        """Whole days elapsed after the penalty grace window, never negative"""
        as_of = as_of or date.today()
        return max(0, (as_of - self.grace_period_end(schedule)).days)

    def calculate(self, schedule: PaymentSchedule, as_of: Optional[date] = None) -> Decimal:
        """
        Penalty owed on an installment as of a date.

        penalty = scheduled_amount * (monthly_rate / 30) * days past the grace
        window, rounded half-up to the cent. Zero on or before the last grace day.
        """
        days = self.days_overdue(schedule, as_of)
        if days <= 0:
            return Decimal('0.00')

        rate = schedule.penalty_rate if schedule.penalty_rate else self.default_rate
        penalty = Decimal(schedule.scheduled_amount) * (rate / DAYS_PER_MONTH) * days
        return penalty.quantize(CENT, rounding=ROUND_HALF_UP)
