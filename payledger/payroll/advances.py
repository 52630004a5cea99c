"""
Salary advance amortization.

An advance is recovered in ``monthly_deduction`` installments, the last one
trimmed so the total recovered equals the advance amount exactly. Balances are
only touched by ``apply_deduction``, which the workflow calls when a run is
finalized; drafts and trials only read what would be due.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List

from payledger.core.errors import ValidationError
from payledger.core.repositories import AdvanceRepository
from payledger.core.schemas import Advance, AdvanceAllocation
from payledger.core.utils import ZERO, ceil_whole, to_money

logger = logging.getLogger(__name__)

def amortization_schedule(amount, months_to_repay: int) -> List[Decimal]:
    """Installments for an advance, e.g. 1000 over 3 months -> [334, 334, 332]."""
    amount = to_money(amount)
    months = max(int(months_to_repay or 1), 1)
    monthly = ceil_whole(amount / months)
    schedule = []
    remaining = amount
    while remaining > 0:
        step = min(monthly, remaining)
        schedule.append(step)
        remaining -= step
    return schedule

class AdvanceLedger:
    def __init__(self, advances: AdvanceRepository):
        self.advances = advances

    def outstanding(self, employee_id: str) -> List[Advance]:
        return self.advances.get_outstanding_advances(employee_id)

    def consumption_plan(self, employee_id: str, as_of_period_end: date) -> List[AdvanceAllocation]:
        """What each outstanding advance would recover in a run ending on ``as_of_period_end``."""
        plan = []
        for advance in self.outstanding(employee_id):
            due = advance.due_on(as_of_period_end)
            if due > 0:
                plan.append(AdvanceAllocation(advance_id=advance.id, amount=due))
        return plan

    def due_deduction(self, employee_id: str, as_of_period_end: date) -> Decimal:
        return sum((a.amount for a in self.consumption_plan(employee_id, as_of_period_end)), ZERO)

    def apply_deduction(self, advance_id: str, amount, run_id: str = None,
                        period_start: date = None, period_end: date = None) -> Advance:
        """
        Recover ``amount`` from an advance. With a period, the advance must not
        have been recovered by a run whose period ends on or after
        ``period_start``; the balance must cover ``amount`` either way.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Advance deduction must be positive", {"advance_id": advance_id, "amount": str(amount)})
        advance = self.advances.decrement_if_sufficient(advance_id, amount, run_id, period_start, period_end)
        logger.info(
            "advance %s deducted %s (remaining %s, %s)",
            advance_id, amount, advance.remaining_balance, advance.status.value,
        )
        return advance

    def create_advance(self, advance: Advance) -> Advance:
        created = self.advances.add(advance)
        logger.info(
            "advance %s created for employee %s: %s over %s months from %s",
            created.id, created.employee_id, created.amount, created.months_to_repay, created.date_to_deduct,
        )
        return created
