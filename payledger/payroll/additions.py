"""
Per-run additions: one-off earnings, bonuses, overtime and new salary advances.

The basket belongs to exactly one draft run. Its earnings feed the run's gross
for that run only; advances it creates start being recovered from the next run
whose period reaches their ``date_to_deduct``.
"""
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Dict, List

from payledger.core.errors import InvalidAdditionError
from payledger.core.repositories import PayrollRunRepository
from payledger.core.schemas import AdditionType, Advance, PayrollAddition
from payledger.core.utils import ZERO, ceil_whole, to_money

@dataclass
class BasketResolution:
    gross_additions: Dict[str, Decimal] = field(default_factory=dict)
    new_advances: List[Advance] = field(default_factory=list)

def normalize_addition(addition: PayrollAddition) -> PayrollAddition:
    """Validate an addition and fill in its derived amounts."""
    if not addition.employee_id:
        raise InvalidAdditionError("Addition needs an employee")
    kind = addition.type

    if kind == AdditionType.OVERTIME:
        if addition.hourly_rate is None or addition.hours_worked is None:
            raise InvalidAdditionError("Overtime needs an hourly rate and hours worked")
        if addition.hourly_rate < 0 or addition.hours_worked < 0:
            raise InvalidAdditionError("Overtime rate and hours must not be negative")
        amount = to_money(Decimal(addition.hourly_rate) * Decimal(addition.hours_worked))
        return replace(addition, name=addition.name or "Overtime", amount=amount)

    if kind == AdditionType.ADVANCE:
        total = to_money(addition.total_amount if addition.total_amount is not None else addition.amount)
        if total <= 0:
            raise InvalidAdditionError("Advance amount must be positive")
        months = int(addition.months_to_pay or 1)
        if months < 1:
            raise InvalidAdditionError("Advance must be repaid over at least one month")
        monthly = ceil_whole(total / months)
        return replace(
            addition,
            name=addition.name or "Advance",
            total_amount=total,
            months_to_pay=months,
            monthly_deduction=monthly,
            amount=monthly,
        )

    amount = to_money(addition.amount)
    if amount <= 0:
        raise InvalidAdditionError(f"{kind.value.title()} amount must be positive")
    return replace(addition, name=addition.name or kind.value.title(), amount=amount)

class AdditionsBasket:
    def __init__(self, run_id: str, runs: PayrollRunRepository):
        self.run_id = run_id
        self.runs = runs

    def entries(self) -> List[PayrollAddition]:
        return self.runs.list_additions(self.run_id)

    def add(self, addition: PayrollAddition) -> PayrollAddition:
        return self.runs.add_addition(self.run_id, normalize_addition(addition))

    def remove(self, addition_id: str) -> bool:
        return self.runs.remove_addition(self.run_id, addition_id)

    def clear(self):
        self.runs.clear_additions(self.run_id)

    def resolve(self, company_id: str, deduct_from: date) -> BasketResolution:
        """
        Split the basket into per-employee gross additions and the advances it
        creates. New advances become deductible from ``deduct_from``, which the
        workflow sets to the day after the run's period end.
        """
        resolution = BasketResolution()
        for addition in self.entries():
            if addition.type == AdditionType.ADVANCE:
                resolution.new_advances.append(Advance.new(
                    company_id=company_id,
                    employee_id=addition.employee_id,
                    amount=addition.total_amount,
                    months_to_repay=addition.months_to_pay or 1,
                    date_to_deduct=deduct_from,
                    source_run_id=self.run_id,
                ))
            else:
                current = resolution.gross_additions.get(addition.employee_id, ZERO)
                resolution.gross_additions[addition.employee_id] = current + addition.amount
        return resolution
