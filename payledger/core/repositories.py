"""
Repository layer: the boundary between the payroll engine and storage.

The abstract classes describe what the engine needs from persistence. The
``Sql*`` classes implement them on SQLAlchemy and are the only place where
ORM rows are read or written; every row is converted into a typed entity from
``payledger.core.schemas`` by the mapping functions below, so the engine never
does ad-hoc field lookups.

All repositories handed out by one ``SqlUnitOfWork`` share a session, and the
unit of work commits or rolls back them together.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError

from payledger.core.errors import AdvanceAlreadySettledError, InvalidTransitionError, RunNotFoundError
from payledger.core.schemas import (
    Account, AccountType, AdditionType, Advance, AdvanceAllocation, AdvanceStatus, Allowances,
    ConsultantType, Employee, FinancialPeriod, JournalEntry, JournalLine, PayrollAddition,
    PayrollItem, PayrollRun, PeriodLock, PeriodStatus, RateType, ReferenceBase, RunStatus,
    RunTotals, SalaryPayment, StatutoryRate, TaxBand,
)
from payledger.core.utils import from_minor, to_minor
from payledger.db.models import (
    AccountRecord, AdvanceRecord, EmployeeRecord, FinancialPeriodRecord, JournalEntryRecord,
    JournalLineRecord, PayrollAdditionRecord, PayrollItemRecord, PayrollRunRecord,
    PeriodLockRecord, SalaryPaymentRecord, StatutoryRateRecord, TaxBandRecord,
)


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------

def _rate(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value)).normalize()

def _money(value) -> Decimal:
    return from_minor(value or 0)

def _opt_minor(value) -> Optional[int]:
    return None if value is None else to_minor(value)

def employee_from_record(rec: EmployeeRecord) -> Employee:
    return Employee(
        id=rec.id,
        company_id=rec.company_id,
        name=rec.full_name,
        basic_salary=_money(rec.basic_salary_minor),
        allowances=Allowances(
            housing=from_minor(rec.housing_allowance_minor),
            transport=from_minor(rec.transport_allowance_minor),
            other=from_minor(rec.other_allowances_minor),
        ),
        is_consultant=bool(rec.is_consultant),
        consultant_type=ConsultantType(rec.consultant_type) if rec.consultant_type else None,
        apply_paye=bool(rec.apply_paye),
        apply_napsa=bool(rec.apply_napsa),
        apply_nhima=bool(rec.apply_nhima),
        apply_wht=bool(rec.apply_wht),
        pension_enabled=bool(rec.pension_enabled),
        pension_employee_rate=_rate(rec.pension_employee_rate),
        pension_employer_rate=_rate(rec.pension_employer_rate),
        is_active=bool(rec.is_active),
    )

def employee_to_record(emp: Employee) -> EmployeeRecord:
    return EmployeeRecord(
        id=emp.id,
        company_id=emp.company_id,
        full_name=emp.name,
        basic_salary_minor=to_minor(emp.basic_salary),
        housing_allowance_minor=_opt_minor(emp.allowances.housing),
        transport_allowance_minor=_opt_minor(emp.allowances.transport),
        other_allowances_minor=_opt_minor(emp.allowances.other),
        is_consultant=emp.is_consultant,
        consultant_type=emp.consultant_type.value if emp.consultant_type else None,
        apply_paye=emp.apply_paye,
        apply_napsa=emp.apply_napsa,
        apply_nhima=emp.apply_nhima,
        apply_wht=emp.apply_wht,
        pension_enabled=emp.pension_enabled,
        pension_employee_rate=emp.pension_employee_rate,
        pension_employer_rate=emp.pension_employer_rate,
        is_active=emp.is_active,
    )

def band_from_record(rec: TaxBandRecord) -> TaxBand:
    return TaxBand(
        order=rec.band_order,
        min_amount=_money(rec.min_amount_minor),
        max_amount=from_minor(rec.max_amount_minor),
        rate=_rate(rec.rate),
    )

def rate_from_record(rec: StatutoryRateRecord) -> StatutoryRate:
    return StatutoryRate(
        type=RateType(rec.rate_type),
        employee_rate=_rate(rec.employee_rate),
        employer_rate=_rate(rec.employer_rate),
        cap_amount=from_minor(rec.cap_amount_minor),
        employee_base=ReferenceBase(rec.employee_base or "basic"),
        employer_base=ReferenceBase(rec.employer_base or "basic"),
    )

def advance_from_record(rec: AdvanceRecord) -> Advance:
    return Advance(
        id=rec.id,
        company_id=rec.company_id,
        employee_id=rec.employee_id,
        amount=_money(rec.amount_minor),
        months_to_repay=rec.months_to_repay,
        monthly_deduction=_money(rec.monthly_deduction_minor),
        remaining_balance=_money(rec.remaining_balance_minor),
        status=AdvanceStatus(rec.status),
        date_to_deduct=rec.date_to_deduct,
        months_deducted=rec.months_deducted or 0,
        source_run_id=rec.source_run_id,
    )

def addition_from_record(rec: PayrollAdditionRecord) -> PayrollAddition:
    return PayrollAddition(
        id=rec.id,
        employee_id=rec.employee_id,
        type=AdditionType(rec.type),
        name=rec.name,
        amount=_money(rec.amount_minor),
        total_amount=from_minor(rec.total_amount_minor),
        months_to_pay=rec.months_to_pay,
        monthly_deduction=from_minor(rec.monthly_deduction_minor),
        hourly_rate=from_minor(rec.hourly_rate_minor),
        hours_worked=None if rec.hours_worked is None else Decimal(str(rec.hours_worked)),
    )

def addition_to_record(run_id: str, add: PayrollAddition) -> PayrollAdditionRecord:
    rec = PayrollAdditionRecord(
        run_id=run_id,
        employee_id=add.employee_id,
        type=add.type.value,
        name=add.name,
        amount_minor=to_minor(add.amount),
        total_amount_minor=_opt_minor(add.total_amount),
        months_to_pay=add.months_to_pay,
        monthly_deduction_minor=_opt_minor(add.monthly_deduction),
        hourly_rate_minor=_opt_minor(add.hourly_rate),
        hours_worked=add.hours_worked,
    )
    if add.id:
        rec.id = add.id
    return rec

_ITEM_MONEY_FIELDS = (
    "basic_salary", "housing_allowance", "transport_allowance", "other_allowances", "additions",
    "gross_salary", "paye", "napsa_employee", "napsa_employer", "nhima_employee", "nhima_employer",
    "pension_employee", "pension_employer", "wht", "advances_deducted", "total_deductions", "net_salary",
)

def item_from_record(rec: PayrollItemRecord) -> PayrollItem:
    values = {name: _money(getattr(rec, f"{name}_minor")) for name in _ITEM_MONEY_FIELDS}
    allocations = [
        AdvanceAllocation(advance_id=a["advance_id"], amount=_money(a["amount_minor"]))
        for a in (rec.advance_allocations or [])
    ]
    return PayrollItem(
        employee_id=rec.employee_id,
        employee_name=rec.employee_name,
        advance_allocations=allocations,
        **values,
    )

def item_to_record(run_id: str, position: int, item: PayrollItem) -> PayrollItemRecord:
    values = {f"{name}_minor": to_minor(getattr(item, name)) for name in _ITEM_MONEY_FIELDS}
    return PayrollItemRecord(
        run_id=run_id,
        position=position,
        employee_id=item.employee_id,
        employee_name=item.employee_name,
        advance_allocations=[
            {"advance_id": a.advance_id, "amount_minor": to_minor(a.amount)}
            for a in item.advance_allocations
        ],
        **values,
    )

def run_from_record(rec: PayrollRunRecord, with_items: bool = True) -> PayrollRun:
    return PayrollRun(
        id=rec.id,
        company_id=rec.company_id,
        period_start=rec.period_start,
        period_end=rec.period_end,
        run_date=rec.run_date,
        status=RunStatus(rec.status),
        payroll_number=rec.payroll_number,
        totals=RunTotals(
            gross=_money(rec.total_gross_minor),
            deductions=_money(rec.total_deductions_minor),
            net=_money(rec.total_net_minor),
        ),
        is_locked=bool(rec.is_locked),
        items=[item_from_record(i) for i in rec.items] if with_items else [],
        notes=rec.notes,
        created_by=rec.created_by,
        trial_run_at=rec.trial_run_at,
        trial_run_by=rec.trial_run_by,
        finalized_at=rec.finalized_at,
        finalized_by=rec.finalized_by,
        gl_journal_id=rec.gl_journal_id,
    )

def journal_from_record(rec: JournalEntryRecord) -> JournalEntry:
    return JournalEntry(
        id=rec.id,
        company_id=rec.company_id,
        entry_date=rec.entry_date,
        reference_number=rec.reference_number,
        description=rec.description,
        reference_type=rec.reference_type,
        reference_id=rec.reference_id,
        is_posted=bool(rec.is_posted),
        is_locked=bool(rec.is_locked),
        created_by=rec.created_by,
        lines=[
            JournalLine(
                account_code=l.account_code,
                debit=_money(l.debit_minor),
                credit=_money(l.credit_minor),
                description=l.description,
            )
            for l in rec.lines
        ],
    )

# ---------------------------------------------------------------------------
# Abstract boundary
# ---------------------------------------------------------------------------

class EmployeeRepository(ABC):
    @abstractmethod
    def get_active_employees(self, company_id: str) -> List[Employee]:
        pass

class RateRepository(ABC):
    @abstractmethod
    def get_active_rates(self, company_id: str) -> Tuple[List[TaxBand], List[StatutoryRate]]:
        """Stored active bands and statutory rates, unvalidated."""
        pass

class AdvanceRepository(ABC):
    @abstractmethod
    def get_outstanding_advances(self, employee_id: str) -> List[Advance]:
        pass

    @abstractmethod
    def get(self, advance_id: str) -> Optional[Advance]:
        pass

    @abstractmethod
    def add(self, advance: Advance) -> Advance:
        pass

    @abstractmethod
    def decrement_if_sufficient(self, advance_id: str, amount: Decimal, run_id: Optional[str] = None,
                                period_start: Optional[date] = None, period_end: Optional[date] = None) -> Advance:
        """
        Atomically subtract ``amount``. Raises AdvanceAlreadySettledError if the
        balance is short or, when a period is given, if the advance was already
        recovered by a run whose period ends on or after ``period_start``.
        """
        pass

class PayrollRunRepository(ABC):
    @abstractmethod
    def add(self, run: PayrollRun) -> PayrollRun:
        pass

    @abstractmethod
    def get(self, run_id: str) -> PayrollRun:
        pass

    @abstractmethod
    def replace_items(self, run_id: str, items: List[PayrollItem], totals: RunTotals, actor: Optional[str] = None):
        pass

    @abstractmethod
    def transition(self, run_id: str, expected: RunStatus, target: RunStatus, **values: Any) -> bool:
        """Conditional status change; False if the stored status is not ``expected``."""
        pass

    @abstractmethod
    def delete(self, run_id: str):
        pass

    @abstractmethod
    def list_additions(self, run_id: str) -> List[PayrollAddition]:
        pass

    @abstractmethod
    def add_addition(self, run_id: str, addition: PayrollAddition) -> PayrollAddition:
        pass

    @abstractmethod
    def remove_addition(self, run_id: str, addition_id: str) -> bool:
        pass

    @abstractmethod
    def clear_additions(self, run_id: str):
        pass

    @abstractmethod
    def list_overlapping(self, company_id: str, period_start: date, period_end: date,
                         exclude_run_id: Optional[str] = None) -> List[PayrollRun]:
        """Runs of the company whose period shares at least one day with the given range."""
        pass

    @abstractmethod
    def count_final_runs(self, company_id: str) -> int:
        pass

class JournalRepository(ABC):
    @abstractmethod
    def append(self, entry: JournalEntry) -> JournalEntry:
        pass

    @abstractmethod
    def get(self, entry_id: str) -> Optional[JournalEntry]:
        pass

    @abstractmethod
    def list_posted(self, company_id: str) -> List[JournalEntry]:
        pass

class PeriodRepository(ABC):
    @abstractmethod
    def list_periods(self, company_id: str) -> List[FinancialPeriod]:
        pass

    @abstractmethod
    def list_locks(self, company_id: str) -> List[PeriodLock]:
        pass

class AccountRepository(ABC):
    @abstractmethod
    def get_by_code(self, company_id: str, code: str) -> Optional[Account]:
        pass

class SalaryPaymentRepository(ABC):
    @abstractmethod
    def get_for_run(self, run_id: str) -> Optional[SalaryPayment]:
        pass

    @abstractmethod
    def add(self, payment: SalaryPayment) -> SalaryPayment:
        pass

# ---------------------------------------------------------------------------
# SQLAlchemy implementations
# ---------------------------------------------------------------------------

class SqlEmployeeRepository(EmployeeRepository):
    def __init__(self, session):
        self.session = session

    def get_active_employees(self, company_id: str) -> List[Employee]:
        rows = (
            self.session.query(EmployeeRecord)
            .filter_by(company_id=company_id, is_active=True)
            .order_by(EmployeeRecord.full_name, EmployeeRecord.id)
            .all()
        )
        return [employee_from_record(r) for r in rows]

    def add(self, employee: Employee) -> Employee:
        self.session.add(employee_to_record(employee))
        self.session.flush()
        return employee

class SqlRateRepository(RateRepository):
    def __init__(self, session):
        self.session = session

    def get_active_rates(self, company_id: str) -> Tuple[List[TaxBand], List[StatutoryRate]]:
        bands = (
            self.session.query(TaxBandRecord)
            .filter_by(company_id=company_id, is_active=True)
            .order_by(TaxBandRecord.band_order)
            .all()
        )
        rates = (
            self.session.query(StatutoryRateRecord)
            .filter_by(company_id=company_id, is_active=True)
            .all()
        )
        return [band_from_record(b) for b in bands], [rate_from_record(r) for r in rates]

class SqlAdvanceRepository(AdvanceRepository):
    def __init__(self, session):
        self.session = session

    def get_outstanding_advances(self, employee_id: str) -> List[Advance]:
        rows = (
            self.session.query(AdvanceRecord)
            .filter(AdvanceRecord.employee_id == employee_id)
            .filter(AdvanceRecord.status.in_([AdvanceStatus.PENDING.value, AdvanceStatus.PARTIAL.value]))
            .order_by(AdvanceRecord.date_to_deduct, AdvanceRecord.created_at, AdvanceRecord.id)
            .all()
        )
        return [advance_from_record(r) for r in rows]

    def get(self, advance_id: str) -> Optional[Advance]:
        rec = self.session.get(AdvanceRecord, advance_id)
        return advance_from_record(rec) if rec else None

    def add(self, advance: Advance) -> Advance:
        rec = AdvanceRecord(
            company_id=advance.company_id,
            employee_id=advance.employee_id,
            amount_minor=to_minor(advance.amount),
            months_to_repay=advance.months_to_repay,
            monthly_deduction_minor=to_minor(advance.monthly_deduction),
            remaining_balance_minor=to_minor(advance.remaining_balance),
            months_deducted=advance.months_deducted,
            status=advance.status.value,
            date_to_deduct=advance.date_to_deduct,
            source_run_id=advance.source_run_id,
        )
        if advance.id:
            rec.id = advance.id
        self.session.add(rec)
        self.session.flush()
        return advance_from_record(rec)

    def decrement_if_sufficient(self, advance_id: str, amount: Decimal, run_id: Optional[str] = None,
                                period_start: Optional[date] = None, period_end: Optional[date] = None) -> Advance:
        amount_minor = to_minor(amount)
        new_balance = AdvanceRecord.remaining_balance_minor - amount_minor
        stmt = (
            update(AdvanceRecord)
            .where(AdvanceRecord.id == advance_id)
            .where(AdvanceRecord.status.in_([AdvanceStatus.PENDING.value, AdvanceStatus.PARTIAL.value]))
            .where(AdvanceRecord.remaining_balance_minor >= amount_minor)
        )
        values = dict(
            remaining_balance_minor=new_balance,
            months_deducted=AdvanceRecord.months_deducted + 1,
            status=case(
                (new_balance <= 0, AdvanceStatus.COMPLETED.value),
                else_=AdvanceStatus.PARTIAL.value,
            ),
            last_deducted_run_id=run_id,
            updated_at=datetime.utcnow(),
        )
        if period_start is not None:
            # at most one recovery per payroll period
            stmt = stmt.where(or_(
                AdvanceRecord.last_deducted_period_end.is_(None),
                AdvanceRecord.last_deducted_period_end < period_start,
            ))
            values["last_deducted_period_end"] = period_end or period_start
        result = self.session.execute(stmt.values(**values).execution_options(synchronize_session=False))
        if result.rowcount != 1:
            raise AdvanceAlreadySettledError(
                f"Advance {advance_id} no longer has {amount} outstanding for this period",
                {"advance_id": advance_id, "amount": str(amount),
                 "period_start": None if period_start is None else str(period_start)},
            )
        rec = self.session.get(AdvanceRecord, advance_id, populate_existing=True)
        return advance_from_record(rec)

class SqlPayrollRunRepository(PayrollRunRepository):
    def __init__(self, session):
        self.session = session

    def _record(self, run_id: str) -> PayrollRunRecord:
        rec = self.session.get(PayrollRunRecord, run_id, populate_existing=True)
        if rec is None:
            raise RunNotFoundError(f"Payroll run {run_id} not found", {"run_id": run_id})
        return rec

    def add(self, run: PayrollRun) -> PayrollRun:
        rec = PayrollRunRecord(
            company_id=run.company_id,
            period_start=run.period_start,
            period_end=run.period_end,
            run_date=run.run_date,
            status=run.status.value,
            payroll_number=run.payroll_number,
            total_gross_minor=to_minor(run.totals.gross),
            total_deductions_minor=to_minor(run.totals.deductions),
            total_net_minor=to_minor(run.totals.net),
            is_locked=run.is_locked,
            notes=run.notes,
            created_by=run.created_by,
            updated_by=run.created_by,
        )
        if run.id:
            rec.id = run.id
        self.session.add(rec)
        self.session.flush()
        for position, item in enumerate(run.items):
            self.session.add(item_to_record(rec.id, position, item))
        self.session.flush()
        return self.get(rec.id)

    def get(self, run_id: str) -> PayrollRun:
        rec = self._record(run_id)
        self.session.refresh(rec, attribute_names=["items"])
        return run_from_record(rec)

    def replace_items(self, run_id: str, items: List[PayrollItem], totals: RunTotals, actor: Optional[str] = None):
        rec = self._record(run_id)
        self.session.query(PayrollItemRecord).filter_by(run_id=run_id).delete(synchronize_session=False)
        for position, item in enumerate(items):
            self.session.add(item_to_record(run_id, position, item))
        rec.total_gross_minor = to_minor(totals.gross)
        rec.total_deductions_minor = to_minor(totals.deductions)
        rec.total_net_minor = to_minor(totals.net)
        rec.updated_by = actor
        self.session.flush()
        self.session.expire(rec, ["items"])

    def transition(self, run_id: str, expected: RunStatus, target: RunStatus, **values: Any) -> bool:
        stmt = (
            update(PayrollRunRecord)
            .where(PayrollRunRecord.id == run_id)
            .where(PayrollRunRecord.status == expected.value)
            .where(PayrollRunRecord.is_locked == False)  # noqa: E712
            .values(status=target.value, updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
        except IntegrityError as exc:
            raise InvalidTransitionError(
                f"Payroll run {run_id} could not move to {target.value}: {exc.orig}",
                {"run_id": run_id},
            ) from exc
        return result.rowcount == 1

    def delete(self, run_id: str):
        self.session.delete(self._record(run_id))
        self.session.flush()

    def list_additions(self, run_id: str) -> List[PayrollAddition]:
        rows = (
            self.session.query(PayrollAdditionRecord)
            .filter_by(run_id=run_id)
            .order_by(PayrollAdditionRecord.created_at, PayrollAdditionRecord.id)
            .all()
        )
        return [addition_from_record(r) for r in rows]

    def add_addition(self, run_id: str, addition: PayrollAddition) -> PayrollAddition:
        rec = addition_to_record(run_id, addition)
        self.session.add(rec)
        self.session.flush()
        return addition_from_record(rec)

    def remove_addition(self, run_id: str, addition_id: str) -> bool:
        deleted = (
            self.session.query(PayrollAdditionRecord)
            .filter_by(run_id=run_id, id=addition_id)
            .delete(synchronize_session=False)
        )
        return deleted > 0

    def clear_additions(self, run_id: str):
        self.session.query(PayrollAdditionRecord).filter_by(run_id=run_id).delete(synchronize_session=False)

    def list_overlapping(self, company_id: str, period_start: date, period_end: date,
                         exclude_run_id: Optional[str] = None) -> List[PayrollRun]:
        query = (
            self.session.query(PayrollRunRecord)
            .filter(PayrollRunRecord.company_id == company_id)
            .filter(PayrollRunRecord.period_start <= period_end)
            .filter(PayrollRunRecord.period_end >= period_start)
        )
        if exclude_run_id:
            query = query.filter(PayrollRunRecord.id != exclude_run_id)
        return [run_from_record(r, with_items=False) for r in query.order_by(PayrollRunRecord.period_start).all()]

    def count_final_runs(self, company_id: str) -> int:
        return (
            self.session.query(func.count(PayrollRunRecord.id))
            .filter_by(company_id=company_id, status=RunStatus.FINAL.value)
            .scalar()
        )

class SqlJournalRepository(JournalRepository):
    def __init__(self, session):
        self.session = session

    def append(self, entry: JournalEntry) -> JournalEntry:
        rec = JournalEntryRecord(
            company_id=entry.company_id,
            entry_date=entry.entry_date,
            reference_number=entry.reference_number,
            description=entry.description,
            reference_type=entry.reference_type,
            reference_id=entry.reference_id,
            total_debit_minor=to_minor(entry.total_debit),
            total_credit_minor=to_minor(entry.total_credit),
            is_posted=entry.is_posted,
            is_locked=entry.is_locked,
            created_by=entry.created_by,
        )
        rec.lines = [
            JournalLineRecord(
                line_number=n,
                account_code=line.account_code,
                debit_minor=to_minor(line.debit),
                credit_minor=to_minor(line.credit),
                description=line.description,
            )
            for n, line in enumerate(entry.lines, start=1)
        ]
        self.session.add(rec)
        self.session.flush()
        return journal_from_record(rec)

    def get(self, entry_id: str) -> Optional[JournalEntry]:
        rec = self.session.get(JournalEntryRecord, entry_id)
        return journal_from_record(rec) if rec else None

    def list_posted(self, company_id: str) -> List[JournalEntry]:
        rows = (
            self.session.query(JournalEntryRecord)
            .filter_by(company_id=company_id, is_posted=True)
            .order_by(JournalEntryRecord.entry_date, JournalEntryRecord.created_at)
            .all()
        )
        return [journal_from_record(r) for r in rows]

class SqlPeriodRepository(PeriodRepository):
    def __init__(self, session):
        self.session = session

    def list_periods(self, company_id: str) -> List[FinancialPeriod]:
        rows = self.session.query(FinancialPeriodRecord).filter_by(company_id=company_id).all()
        return [
            FinancialPeriod(
                id=r.id, company_id=r.company_id, name=r.name,
                start_date=r.start_date, end_date=r.end_date, status=PeriodStatus(r.status),
            )
            for r in rows
        ]

    def list_locks(self, company_id: str) -> List[PeriodLock]:
        rows = self.session.query(PeriodLockRecord).filter_by(company_id=company_id).all()
        return [
            PeriodLock(company_id=r.company_id, start_date=r.start_date, end_date=r.end_date, is_locked=bool(r.is_locked))
            for r in rows
        ]

class SqlAccountRepository(AccountRepository):
    def __init__(self, session):
        self.session = session

    def get_by_code(self, company_id: str, code: str) -> Optional[Account]:
        rec = self.session.query(AccountRecord).filter_by(company_id=company_id, code=code).one_or_none()
        if rec is None:
            return None
        return Account(code=rec.code, name=rec.name, account_type=AccountType(rec.account_type), is_active=bool(rec.is_active))

class SqlSalaryPaymentRepository(SalaryPaymentRepository):
    def __init__(self, session):
        self.session = session

    def _to_entity(self, rec: SalaryPaymentRecord) -> SalaryPayment:
        return SalaryPayment(
            id=rec.id, company_id=rec.company_id, run_id=rec.run_id, journal_id=rec.journal_id,
            payment_date=rec.payment_date, amount=_money(rec.amount_minor), paid_by=rec.paid_by,
        )

    def get_for_run(self, run_id: str) -> Optional[SalaryPayment]:
        rec = self.session.query(SalaryPaymentRecord).filter_by(run_id=run_id).one_or_none()
        return self._to_entity(rec) if rec else None

    def add(self, payment: SalaryPayment) -> SalaryPayment:
        rec = SalaryPaymentRecord(
            company_id=payment.company_id, run_id=payment.run_id, journal_id=payment.journal_id,
            payment_date=payment.payment_date, amount_minor=to_minor(payment.amount), paid_by=payment.paid_by,
        )
        self.session.add(rec)
        self.session.flush()
        return self._to_entity(rec)

# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------

class UnitOfWork(ABC):
    employees: EmployeeRepository
    rates: RateRepository
    advances: AdvanceRepository
    runs: PayrollRunRepository
    journals: JournalRepository
    periods: PeriodRepository
    accounts: AccountRepository
    payments: SalaryPaymentRepository

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        self.close()
        return False

    @abstractmethod
    def commit(self):
        pass

    @abstractmethod
    def rollback(self):
        pass

    def close(self):
        pass

class SqlUnitOfWork(UnitOfWork):
    """One database transaction shared by every repository it exposes."""

    def __init__(self, session_factory):
        self.session = session_factory()
        self.employees = SqlEmployeeRepository(self.session)
        self.rates = SqlRateRepository(self.session)
        self.advances = SqlAdvanceRepository(self.session)
        self.runs = SqlPayrollRunRepository(self.session)
        self.journals = SqlJournalRepository(self.session)
        self.periods = SqlPeriodRepository(self.session)
        self.accounts = SqlAccountRepository(self.session)
        self.payments = SqlSalaryPaymentRepository(self.session)

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    def close(self):
        self.session.close()
