"""
Payroll run lifecycle: draft -> trial -> final.

Each public method is one request: it opens a unit of work, applies the
transition and commits, or rolls everything back and re-raises. ``final`` is
terminal; once a run is locked every mutating call raises RunLockedError.

Runs of one company never overlap: creation refuses a period that shares a day
with any existing run, and finalize refuses one that overlaps a final run.

Finalize performs, inside a single transaction:
  1. period and overlap checks
  2. payroll number assignment
  3. advance recoveries (atomic decrement-if-sufficient, once per period)
  4. journal posting
  5. conditional trial -> final update
A failure at any step leaves no trace of the earlier ones.
"""
import functools
import logging
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List

from payledger.core.config import settings
from payledger.core.errors import (
    InvalidAdditionError, InvalidTransitionError, NegativeNetPayError, NoActiveEmployeesError, OverlappingRunError,
    PayrollEngineError, RunLockedError,
)
from payledger.core.repositories import UnitOfWork
from payledger.core.schemas import (
    PayrollAddition, PayrollItem, PayrollRun, RunStatus, RunTotals, SalaryPayment,
)
from payledger.core.utils import ZERO, audit_log, setup_logging
from payledger.ledger.periods import FinancialPeriodGuard
from payledger.ledger.posting import LedgerPoster
from payledger.payroll.additions import AdditionsBasket, BasketResolution
from payledger.payroll.advances import AdvanceLedger
from payledger.tax.payroll import PayrollCalculator
from payledger.tax.registry import TaxRateRegistry, build_registry

logger = logging.getLogger(__name__)

def _log_refusals(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except PayrollEngineError as exc:
            logger.warning("%s refused: %s %s", method.__name__, exc.code, exc.message)
            raise
    return wrapper

class PayrollRunWorkflow:
    def __init__(self, uow_factory: Callable[[], UnitOfWork], calculator: PayrollCalculator = None, cfg=None):
        self.uow_factory = uow_factory
        self.calculator = calculator or PayrollCalculator()
        self.cfg = cfg or settings

    # -- wiring -------------------------------------------------------------

    def _guard(self, uow: UnitOfWork) -> FinancialPeriodGuard:
        return FinancialPeriodGuard(uow.periods, require_open_period=self.cfg.REQUIRE_OPEN_PERIOD)

    def _poster(self, uow: UnitOfWork) -> LedgerPoster:
        return LedgerPoster(uow.journals, uow.accounts, guard=self._guard(uow), cfg=self.cfg)

    def _registry(self, uow: UnitOfWork, company_id: str) -> TaxRateRegistry:
        bands, rates = uow.rates.get_active_rates(company_id)
        return build_registry(company_id, bands, rates, self.cfg)

    def _record(self, company_id: str, actor: str, action: str, run_id: str, diff: dict = None):
        setup_logging(company_id).info("%s run=%s actor=%s %s", action, run_id, actor, diff or {})
        audit_log(company_id, actor, action, "payroll_run", run_id, diff)

    @staticmethod
    def _deduct_from(run: PayrollRun) -> date:
        return run.period_end + timedelta(days=1)

    @staticmethod
    def _mutable(run: PayrollRun) -> PayrollRun:
        if run.is_locked or run.status == RunStatus.FINAL:
            raise RunLockedError(f"Payroll run {run.id} is final and locked", {"run_id": run.id})
        return run

    @staticmethod
    def _require(run: PayrollRun, status: RunStatus, action: str):
        if run.status != status:
            raise InvalidTransitionError(
                f"Cannot {action} a {run.status.value} payroll run",
                {"run_id": run.id, "status": run.status.value, "required": status.value},
            )

    @staticmethod
    def _assert_no_overlap(uow: UnitOfWork, company_id: str, period_start: date, period_end: date,
                           exclude_run_id: str = None, statuses=None):
        clashes = [
            r for r in uow.runs.list_overlapping(company_id, period_start, period_end, exclude_run_id)
            if statuses is None or r.status in statuses
        ]
        if clashes:
            raise OverlappingRunError(
                f"{period_start} to {period_end} overlaps payroll run {clashes[0].payroll_number or clashes[0].id}",
                {"run_ids": [r.id for r in clashes]},
            )

    @staticmethod
    def _assert_payable(run_id: str, items: List[PayrollItem]):
        short = {i.employee_id: str(i.net_salary) for i in items if i.net_salary < 0}
        if short:
            raise NegativeNetPayError(
                f"Deductions exceed gross pay for {len(short)} employee(s) in run {run_id}",
                {"run_id": run_id, "net_salary": short},
            )

    # -- computation ----------------------------------------------------------

    def _compute_items(self, uow: UnitOfWork, run: PayrollRun, resolution: BasketResolution) -> List[PayrollItem]:
        registry = self._registry(uow, run.company_id)
        employees = uow.employees.get_active_employees(run.company_id)
        if not employees:
            raise NoActiveEmployeesError(f"No active employees for company {run.company_id}")

        roster = {e.id for e in employees}
        unknown = sorted(set(resolution.gross_additions) - roster)
        unknown += sorted({a.employee_id for a in resolution.new_advances} - roster - set(unknown))
        if unknown:
            raise InvalidAdditionError("Additions reference employees outside the active roster",
                                       {"employee_ids": unknown})

        advances = AdvanceLedger(uow.advances)
        items = []
        for employee in employees:
            plan = advances.consumption_plan(employee.id, run.period_end)
            due = sum((a.amount for a in plan), ZERO)
            extra = resolution.gross_additions.get(employee.id, ZERO)
            item = self.calculator.compute(employee, registry, due, extra_earnings=extra)
            items.append(item.with_allocations(plan))
        return items

    def _recompute(self, uow: UnitOfWork, run: PayrollRun, actor: str, payable: bool = False) -> RunTotals:
        resolution = AdditionsBasket(run.id, uow.runs).resolve(run.company_id, self._deduct_from(run))
        items = self._compute_items(uow, run, resolution)
        if payable:
            self._assert_payable(run.id, items)
        totals = RunTotals.from_items(items)
        uow.runs.replace_items(run.id, items, totals, actor)
        return totals

    # -- reads ------------------------------------------------------------------

    def get_active_rate_registry(self, company_id: str) -> TaxRateRegistry:
        with self.uow_factory() as uow:
            return self._registry(uow, company_id)

    def get_run(self, run_id: str) -> PayrollRun:
        with self.uow_factory() as uow:
            return uow.runs.get(run_id)

    def list_additions(self, run_id: str) -> List[PayrollAddition]:
        with self.uow_factory() as uow:
            return AdditionsBasket(run_id, uow.runs).entries()

    # -- transitions --------------------------------------------------------------

    @_log_refusals
    def create_draft_run(self, company_id: str, period_start: date, period_end: date, actor: str,
                         run_date: date = None, additions: Iterable[PayrollAddition] = (),
                         notes: str = None) -> PayrollRun:
        with self.uow_factory() as uow:
            self._guard(uow).assert_open(company_id, period_start, period_end)
            self._assert_no_overlap(uow, company_id, period_start, period_end)
            run = uow.runs.add(PayrollRun(
                id=None,
                company_id=company_id,
                period_start=period_start,
                period_end=period_end,
                run_date=run_date or date.today(),
                status=RunStatus.DRAFT,
                notes=notes,
                created_by=actor,
            ))
            basket = AdditionsBasket(run.id, uow.runs)
            for addition in additions:
                basket.add(addition)
            totals = self._recompute(uow, run, actor)
            run = uow.runs.get(run.id)

        self._record(company_id, actor, "payroll_draft_created", run.id, {
            "employees": len(run.items),
            "gross": totals.gross,
            "deductions": totals.deductions,
            "net": totals.net,
        })
        return run

    @_log_refusals
    def add_addition(self, run_id: str, addition: PayrollAddition, actor: str) -> PayrollAddition:
        with self.uow_factory() as uow:
            run = self._mutable(uow.runs.get(run_id))
            self._require(run, RunStatus.DRAFT, "edit additions of")
            stored = AdditionsBasket(run.id, uow.runs).add(addition)
        logger.info("addition %s (%s %s) added to run %s by %s", stored.id, stored.type.value, stored.amount, run_id, actor)
        return stored

    @_log_refusals
    def remove_addition(self, run_id: str, addition_id: str, actor: str) -> bool:
        with self.uow_factory() as uow:
            run = self._mutable(uow.runs.get(run_id))
            self._require(run, RunStatus.DRAFT, "edit additions of")
            removed = AdditionsBasket(run.id, uow.runs).remove(addition_id)
        logger.info("addition %s removed from run %s by %s: %s", addition_id, run_id, actor, removed)
        return removed

    @_log_refusals
    def recompute_draft(self, run_id: str, actor: str) -> PayrollRun:
        with self.uow_factory() as uow:
            run = self._mutable(uow.runs.get(run_id))
            self._require(run, RunStatus.DRAFT, "recompute")
            self._guard(uow).assert_open(run.company_id, run.period_start, run.period_end)
            totals = self._recompute(uow, run, actor)
            run = uow.runs.get(run_id)
        self._record(run.company_id, actor, "payroll_draft_recomputed", run_id, {"net": totals.net})
        return run

    @_log_refusals
    def run_trial(self, run_id: str, actor: str) -> PayrollRun:
        with self.uow_factory() as uow:
            run = self._mutable(uow.runs.get(run_id))
            self._require(run, RunStatus.DRAFT, "run a trial of")
            self._guard(uow).assert_open(run.company_id, run.period_start, run.period_end)
            totals = self._recompute(uow, run, actor, payable=True)
            moved = uow.runs.transition(
                run_id, RunStatus.DRAFT, RunStatus.TRIAL,
                trial_run_at=datetime.utcnow(), trial_run_by=actor, updated_by=actor,
            )
            if not moved:
                raise InvalidTransitionError(f"Payroll run {run_id} changed state during trial", {"run_id": run_id})
            run = uow.runs.get(run_id)
        self._record(run.company_id, actor, "payroll_trial_completed", run_id, {"net": totals.net})
        return run

    @_log_refusals
    def revert_to_draft(self, run_id: str, actor: str) -> PayrollRun:
        with self.uow_factory() as uow:
            run = self._mutable(uow.runs.get(run_id))
            self._require(run, RunStatus.TRIAL, "revert")
            moved = uow.runs.transition(
                run_id, RunStatus.TRIAL, RunStatus.DRAFT,
                trial_run_at=None, trial_run_by=None, updated_by=actor,
            )
            if not moved:
                raise InvalidTransitionError(f"Payroll run {run_id} changed state during revert", {"run_id": run_id})
            run = uow.runs.get(run_id)
        self._record(run.company_id, actor, "payroll_reverted", run_id)
        return run

    def _next_payroll_number(self, uow: UnitOfWork, run: PayrollRun) -> str:
        seq = uow.runs.count_final_runs(run.company_id) + 1
        return f"{self.cfg.PAYROLL_NUMBER_PREFIX}-{run.period_end:%Y%m}-{seq:04d}"

    @_log_refusals
    def finalize_run(self, run_id: str, actor: str) -> PayrollRun:
        with self.uow_factory() as uow:
            run = self._mutable(uow.runs.get(run_id))
            self._require(run, RunStatus.TRIAL, "finalize")

            self._guard(uow).assert_open(run.company_id, run.period_start, run.period_end)
            self._assert_no_overlap(uow, run.company_id, run.period_start, run.period_end,
                                    exclude_run_id=run_id, statuses={RunStatus.FINAL})
            self._assert_payable(run_id, run.items)

            number = self._next_payroll_number(uow, run)
            run = replace(run, payroll_number=number)

            advances = AdvanceLedger(uow.advances)
            for item in run.items:
                for allocation in item.advance_allocations:
                    advances.apply_deduction(allocation.advance_id, allocation.amount, run_id,
                                             run.period_start, run.period_end)
            basket = AdditionsBasket(run.id, uow.runs)
            created = [
                advances.create_advance(a)
                for a in basket.resolve(run.company_id, self._deduct_from(run)).new_advances
            ]

            journal = self._poster(uow).post_payroll(run, actor)

            moved = uow.runs.transition(
                run_id, RunStatus.TRIAL, RunStatus.FINAL,
                payroll_number=number,
                is_locked=True,
                finalized_at=datetime.utcnow(),
                finalized_by=actor,
                gl_journal_id=journal.id,
                updated_by=actor,
            )
            if not moved:
                raise InvalidTransitionError(f"Payroll run {run_id} was finalized concurrently", {"run_id": run_id})
            basket.clear()
            run = uow.runs.get(run_id)

        self._record(run.company_id, actor, "payroll_finalized", run_id, {
            "payroll_number": number,
            "journal_id": journal.id,
            "advances_created": [a.id for a in created],
        })
        return run

    @_log_refusals
    def cancel_run(self, run_id: str, actor: str):
        with self.uow_factory() as uow:
            run = self._mutable(uow.runs.get(run_id))
            uow.runs.delete(run_id)
        self._record(run.company_id, actor, "payroll_cancelled", run_id, {"status": run.status.value})

    @_log_refusals
    def pay_salaries(self, run_id: str, payment_account_code: str, payment_date: date, actor: str) -> SalaryPayment:
        with self.uow_factory() as uow:
            run = uow.runs.get(run_id)
            self._require(run, RunStatus.FINAL, "pay salaries for")
            if uow.payments.get_for_run(run_id) is not None:
                raise InvalidTransitionError(f"Salaries for payroll run {run_id} are already paid", {"run_id": run_id})
            journal = self._poster(uow).post_salary_payment(run, payment_account_code, payment_date, actor)
            payment = uow.payments.add(SalaryPayment(
                id=None,
                company_id=run.company_id,
                run_id=run_id,
                journal_id=journal.id,
                payment_date=payment_date,
                amount=run.totals.net,
                paid_by=actor,
            ))
        self._record(run.company_id, actor, "salaries_paid", run_id, {"journal_id": journal.id, "amount": payment.amount})
        return payment
