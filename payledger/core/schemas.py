"""
Typed entities for the payroll engine.

These are the only shapes the calculation and workflow code sees. Raw database
rows are converted into them by the mapping functions in
``payledger.core.repositories``.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from payledger.core.utils import ZERO, ceil_whole, to_money

class RateType(str, Enum):
    NAPSA = "napsa"
    NHIMA = "nhima"
    PENSION = "pension"
    WHT_LOCAL = "wht_local"
    WHT_NONRESIDENT = "wht_nonresident"

class ReferenceBase(str, Enum):
    BASIC = "basic"
    GROSS = "gross"

class ConsultantType(str, Enum):
    LOCAL = "local"
    NON_RESIDENT = "non_resident"

class AdvanceStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"

    @property
    def is_outstanding(self) -> bool:
        return self in (AdvanceStatus.PENDING, AdvanceStatus.PARTIAL)

class AdditionType(str, Enum):
    EARNING = "earning"
    BONUS = "bonus"
    OVERTIME = "overtime"
    ADVANCE = "advance"

class RunStatus(str, Enum):
    DRAFT = "draft"
    TRIAL = "trial"
    FINAL = "final"

    def can_transition_to(self, target: "RunStatus") -> bool:
        return target in RUN_TRANSITIONS[self]

# draft -> trial -> final, with trial -> draft as the only back-edge
RUN_TRANSITIONS: Dict[RunStatus, FrozenSet[RunStatus]] = {
    RunStatus.DRAFT: frozenset({RunStatus.TRIAL}),
    RunStatus.TRIAL: frozenset({RunStatus.DRAFT, RunStatus.FINAL}),
    RunStatus.FINAL: frozenset(),
}

class PeriodStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    LOCKED = "locked"

class AccountType(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

@dataclass(frozen=True)
class TaxBand:
    order: int
    min_amount: Decimal
    max_amount: Optional[Decimal]
    rate: Decimal

@dataclass(frozen=True)
class StatutoryRate:
    type: RateType
    employee_rate: Decimal
    employer_rate: Decimal
    cap_amount: Optional[Decimal] = None
    employee_base: ReferenceBase = ReferenceBase.BASIC
    employer_base: ReferenceBase = ReferenceBase.BASIC

@dataclass(frozen=True)
class Allowances:
    # None means the allowance is not configured for this person
    housing: Optional[Decimal] = None
    transport: Optional[Decimal] = None
    other: Optional[Decimal] = None

    def total(self) -> Decimal:
        return sum((a for a in (self.housing, self.transport, self.other) if a is not None), ZERO)

@dataclass(frozen=True)
class Employee:
    id: str
    company_id: str
    name: str
    basic_salary: Decimal
    allowances: Allowances = field(default_factory=Allowances)
    is_consultant: bool = False
    consultant_type: Optional[ConsultantType] = None
    apply_paye: bool = True
    apply_napsa: bool = True
    apply_nhima: bool = True
    apply_wht: bool = False
    pension_enabled: bool = False
    pension_employee_rate: Optional[Decimal] = None
    pension_employer_rate: Optional[Decimal] = None
    is_active: bool = True

@dataclass(frozen=True)
class Advance:
    id: Optional[str]
    company_id: str
    employee_id: str
    amount: Decimal
    months_to_repay: int
    monthly_deduction: Decimal
    remaining_balance: Decimal
    status: AdvanceStatus
    date_to_deduct: date
    months_deducted: int = 0
    source_run_id: Optional[str] = None

    @classmethod
    def new(cls, company_id: str, employee_id: str, amount, months_to_repay: int,
            date_to_deduct: date, source_run_id: Optional[str] = None) -> "Advance":
        amount = to_money(amount)
        months = max(int(months_to_repay or 1), 1)
        return cls(
            id=None,
            company_id=company_id,
            employee_id=employee_id,
            amount=amount,
            months_to_repay=months,
            monthly_deduction=ceil_whole(amount / months),
            remaining_balance=amount,
            status=AdvanceStatus.PENDING,
            date_to_deduct=date_to_deduct,
            source_run_id=source_run_id,
        )

    def due_on(self, period_end: date) -> Decimal:
        if not self.status.is_outstanding or self.date_to_deduct > period_end:
            return ZERO
        return min(self.monthly_deduction, self.remaining_balance)

@dataclass(frozen=True)
class PayrollAddition:
    employee_id: str
    type: AdditionType
    name: str
    amount: Decimal
    id: Optional[str] = None
    total_amount: Optional[Decimal] = None
    months_to_pay: Optional[int] = None
    monthly_deduction: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    hours_worked: Optional[Decimal] = None

@dataclass(frozen=True)
class AdvanceAllocation:
    """Portion of one advance recovered by one payroll item."""
    advance_id: str
    amount: Decimal

@dataclass(frozen=True)
class PayrollItem:
    employee_id: str
    employee_name: str
    basic_salary: Decimal
    housing_allowance: Decimal
    transport_allowance: Decimal
    other_allowances: Decimal
    additions: Decimal
    gross_salary: Decimal
    paye: Decimal
    napsa_employee: Decimal
    napsa_employer: Decimal
    nhima_employee: Decimal
    nhima_employer: Decimal
    pension_employee: Decimal
    pension_employer: Decimal
    wht: Decimal
    advances_deducted: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    advance_allocations: List[AdvanceAllocation] = field(default_factory=list)

    @property
    def employer_contributions(self) -> Decimal:
        return self.napsa_employer + self.nhima_employer + self.pension_employer

    def with_allocations(self, allocations: List[AdvanceAllocation]) -> "PayrollItem":
        return replace(self, advance_allocations=list(allocations))

@dataclass(frozen=True)
class RunTotals:
    gross: Decimal = ZERO
    deductions: Decimal = ZERO
    net: Decimal = ZERO

    @classmethod
    def from_items(cls, items: List[PayrollItem]) -> "RunTotals":
        return cls(
            gross=sum((i.gross_salary for i in items), ZERO),
            deductions=sum((i.total_deductions for i in items), ZERO),
            net=sum((i.net_salary for i in items), ZERO),
        )

@dataclass
class PayrollRun:
    id: Optional[str]
    company_id: str
    period_start: date
    period_end: date
    run_date: date
    status: RunStatus = RunStatus.DRAFT
    payroll_number: Optional[str] = None
    totals: RunTotals = field(default_factory=RunTotals)
    is_locked: bool = False
    items: List[PayrollItem] = field(default_factory=list)
    notes: Optional[str] = None
    created_by: Optional[str] = None
    trial_run_at: Optional[datetime] = None
    trial_run_by: Optional[str] = None
    finalized_at: Optional[datetime] = None
    finalized_by: Optional[str] = None
    gl_journal_id: Optional[str] = None

@dataclass(frozen=True)
class JournalLine:
    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None

@dataclass
class JournalEntry:
    id: Optional[str]
    company_id: str
    entry_date: date
    reference_number: Optional[str]
    description: str
    lines: List[JournalLine]
    reference_type: str = "manual"
    reference_id: Optional[str] = None
    is_posted: bool = False
    is_locked: bool = False
    created_by: Optional[str] = None

    @property
    def total_debit(self) -> Decimal:
        return sum((l.debit for l in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((l.credit for l in self.lines), ZERO)

@dataclass(frozen=True)
class Account:
    code: str
    name: str
    account_type: AccountType
    is_active: bool = True

@dataclass(frozen=True)
class FinancialPeriod:
    id: Optional[str]
    company_id: str
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus = PeriodStatus.OPEN

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and start <= self.end_date

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

@dataclass(frozen=True)
class PeriodLock:
    company_id: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_locked: bool = True

    def overlaps(self, start: date, end: date) -> bool:
        if not self.is_locked:
            return False
        if self.start_date and end < self.start_date:
            return False
        if self.end_date and start > self.end_date:
            return False
        return True

@dataclass(frozen=True)
class SalaryPayment:
    id: Optional[str]
    company_id: str
    run_id: str
    journal_id: str
    payment_date: date
    amount: Decimal
    paid_by: Optional[str] = None
