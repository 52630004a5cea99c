import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from payledger.core.config import settings
from payledger.core.errors import InvalidConfigurationError, NegativeNetPayError, UnbalancedEntryError, ValidationError
from payledger.core.repositories import AccountRepository, JournalRepository
from payledger.core.schemas import Account, AccountType, JournalEntry, JournalLine, PayrollRun
from payledger.core.utils import ZERO, to_money
from payledger.ledger.periods import FinancialPeriodGuard

logger = logging.getLogger(__name__)

def default_chart_of_accounts(cfg=None) -> List[Account]:
    """Accounts the payroll postings need, keyed by the configured codes."""
    cfg = cfg or settings
    return [
        Account(cfg.ACCOUNT_CASH, "Cash/Bank", AccountType.ASSET),
        Account(cfg.ACCOUNT_STAFF_ADVANCES, "Staff Advances", AccountType.ASSET),
        Account(cfg.ACCOUNT_SALARIES_PAYABLE, "Salaries Payable", AccountType.LIABILITY),
        Account(cfg.ACCOUNT_PAYE_PAYABLE, "PAYE Payable", AccountType.LIABILITY),
        Account(cfg.ACCOUNT_NAPSA_PAYABLE, "NAPSA Payable", AccountType.LIABILITY),
        Account(cfg.ACCOUNT_NHIMA_PAYABLE, "NHIMA Payable", AccountType.LIABILITY),
        Account(cfg.ACCOUNT_PENSION_PAYABLE, "Pension Payable", AccountType.LIABILITY),
        Account(cfg.ACCOUNT_WHT_PAYABLE, "Withholding Tax Payable", AccountType.LIABILITY),
        Account(cfg.ACCOUNT_RETAINED_EARNINGS, "Retained Earnings", AccountType.EQUITY),
        Account(cfg.ACCOUNT_SALARIES_EXPENSE, "Salaries Expense", AccountType.EXPENSE),
        Account(cfg.ACCOUNT_EMPLOYER_CONTRIBUTIONS, "Employer Statutory Contributions", AccountType.EXPENSE),
    ]

def validate_lines(lines: Iterable[JournalLine]) -> Tuple[List[JournalLine], Decimal, Decimal]:
    """
    Normalize amounts to cents and check the double-entry rules: at least two
    lines, each with exactly one positive side, and equal debit and credit
    totals. Raises ValidationError or UnbalancedEntryError.
    """
    normalized = []
    for n, line in enumerate(lines, start=1):
        debit, credit = to_money(line.debit), to_money(line.credit)
        if debit < 0 or credit < 0:
            raise ValidationError(f"Journal line {n} has a negative amount")
        if (debit > 0) == (credit > 0):
            raise ValidationError(f"Journal line {n} must have exactly one of debit or credit")
        if not line.account_code:
            raise ValidationError(f"Journal line {n} has no account")
        normalized.append(JournalLine(line.account_code, debit, credit, line.description))
    if len(normalized) < 2:
        raise ValidationError("Journal entry requires at least 2 lines")

    total_debit = sum((l.debit for l in normalized), ZERO)
    total_credit = sum((l.credit for l in normalized), ZERO)
    if total_debit != total_credit:
        raise UnbalancedEntryError(
            f"Journal entry is unbalanced. Debits: {total_debit}, Credits: {total_credit}",
            {"debits": str(total_debit), "credits": str(total_credit), "difference": str(total_debit - total_credit)},
        )
    return normalized, total_debit, total_credit

class LedgerPoster:
    def __init__(self, journals: JournalRepository, accounts: AccountRepository,
                 guard: Optional[FinancialPeriodGuard] = None, cfg=None):
        self.journals = journals
        self.accounts = accounts
        self.guard = guard
        self.cfg = cfg or settings

    def resolve_account(self, company_id: str, code: str, expected: Optional[AccountType] = None) -> Account:
        account = self.accounts.get_by_code(company_id, code)
        if account is None:
            raise InvalidConfigurationError(f"Required account missing: {code}", {"account_code": code})
        if not account.is_active:
            raise InvalidConfigurationError(f"Account {code} {account.name} is inactive", {"account_code": code})
        if expected and account.account_type != expected:
            raise InvalidConfigurationError(
                f"Account {account.name} must be of type {expected.value}",
                {"account_code": code, "account_type": account.account_type.value},
            )
        return account

    def post(self, company_id: str, lines: Iterable[JournalLine], entry_date: date, description: str,
             reference_number: str = None, reference_type: str = "manual", reference_id: str = None,
             actor: str = None) -> JournalEntry:
        """Validate and append a posted, locked journal entry."""
        normalized, total_debit, _ = validate_lines(lines)
        for line in normalized:
            self.resolve_account(company_id, line.account_code)
        if self.guard is not None:
            self.guard.assert_date_open(company_id, entry_date)

        entry = JournalEntry(
            id=None,
            company_id=company_id,
            entry_date=entry_date,
            reference_number=reference_number,
            description=description,
            lines=normalized,
            reference_type=reference_type,
            reference_id=reference_id,
            is_posted=True,
            is_locked=True,
            created_by=actor,
        )
        posted = self.journals.append(entry)
        logger.info(
            "journal %s posted for %s: %s lines, %s (%s %s)",
            posted.id, company_id, len(normalized), total_debit, reference_type, reference_number,
        )
        return posted

    def build_payroll_lines(self, run: PayrollRun) -> List[JournalLine]:
        cfg = self.cfg
        totals: Dict[str, Decimal] = {
            "gross": ZERO, "employer": ZERO, "paye": ZERO, "napsa": ZERO, "nhima": ZERO,
            "pension": ZERO, "wht": ZERO, "advances": ZERO, "net": ZERO,
        }
        for item in run.items:
            totals["gross"] += item.gross_salary
            totals["employer"] += item.employer_contributions
            totals["paye"] += item.paye
            totals["napsa"] += item.napsa_employee + item.napsa_employer
            totals["nhima"] += item.nhima_employee + item.nhima_employer
            totals["pension"] += item.pension_employee + item.pension_employer
            totals["wht"] += item.wht
            totals["advances"] += item.advances_deducted
            totals["net"] += item.net_salary

        short = [i.employee_id for i in run.items if i.net_salary < 0]
        if short:
            raise NegativeNetPayError(
                f"Payroll run {run.id} has negative net pay", {"run_id": run.id, "employee_ids": short}
            )

        label = run.payroll_number or f"{run.period_start} to {run.period_end}"
        debits = [
            (cfg.ACCOUNT_SALARIES_EXPENSE, AccountType.EXPENSE, totals["gross"], f"Salaries expense for {label}"),
            (cfg.ACCOUNT_EMPLOYER_CONTRIBUTIONS, AccountType.EXPENSE, totals["employer"], "Employer statutory contributions"),
        ]
        credits = [
            (cfg.ACCOUNT_PAYE_PAYABLE, AccountType.LIABILITY, totals["paye"], "PAYE payable"),
            (cfg.ACCOUNT_NAPSA_PAYABLE, AccountType.LIABILITY, totals["napsa"], "NAPSA payable"),
            (cfg.ACCOUNT_NHIMA_PAYABLE, AccountType.LIABILITY, totals["nhima"], "NHIMA payable"),
            (cfg.ACCOUNT_PENSION_PAYABLE, AccountType.LIABILITY, totals["pension"], "Pension payable"),
            (cfg.ACCOUNT_WHT_PAYABLE, AccountType.LIABILITY, totals["wht"], "Withholding tax payable"),
            (cfg.ACCOUNT_STAFF_ADVANCES, AccountType.ASSET, totals["advances"], "Salary advances recovered"),
            (cfg.ACCOUNT_SALARIES_PAYABLE, AccountType.LIABILITY, totals["net"], "Salaries payable to employees"),
        ]

        lines = []
        for code, kind, amount, text in debits:
            if amount > 0:
                self.resolve_account(run.company_id, code, kind)
                lines.append(JournalLine(code, debit=amount, description=text))
        for code, kind, amount, text in credits:
            if amount > 0:
                self.resolve_account(run.company_id, code, kind)
                lines.append(JournalLine(code, credit=amount, description=text))
        return lines

    def post_payroll(self, run: PayrollRun, actor: str = None) -> JournalEntry:
        return self.post(
            run.company_id,
            self.build_payroll_lines(run),
            entry_date=run.period_end,
            description=f"Payroll Finalization {run.payroll_number or run.id}",
            reference_number=run.payroll_number or run.id,
            reference_type="payroll",
            reference_id=run.id,
            actor=actor,
        )

    def post_salary_payment(self, run: PayrollRun, payment_account_code: str, payment_date: date,
                            actor: str = None) -> JournalEntry:
        self.resolve_account(run.company_id, payment_account_code, AccountType.ASSET)
        self.resolve_account(run.company_id, self.cfg.ACCOUNT_SALARIES_PAYABLE, AccountType.LIABILITY)
        amount = run.totals.net
        if amount <= 0:
            raise ValidationError("Payroll net amount must be greater than zero", {"run_id": run.id})
        return self.post(
            run.company_id,
            [
                JournalLine(self.cfg.ACCOUNT_SALARIES_PAYABLE, debit=amount, description="Salaries payable cleared"),
                JournalLine(payment_account_code, credit=amount, description="Salaries paid from cash/bank"),
            ],
            entry_date=payment_date,
            description=f"Salary Payment: {run.payroll_number}",
            reference_number=run.payroll_number,
            reference_type="payroll_payment",
            reference_id=run.id,
            actor=actor,
        )

    def post_opening_balances(self, company_id: str, lines: Iterable[JournalLine], entry_date: date,
                              actor: str = None, confirmed_imbalance=None) -> JournalEntry:
        """
        Post opening balances. An imbalance is only plugged to retained earnings
        when the caller passes ``confirmed_imbalance`` equal to the absolute
        difference it showed the user; otherwise UnbalancedEntryError is raised.
        """
        lines = list(lines)
        debits = sum((to_money(l.debit) for l in lines), ZERO)
        credits = sum((to_money(l.credit) for l in lines), ZERO)
        difference = debits - credits
        if difference != 0:
            if confirmed_imbalance is None or to_money(confirmed_imbalance) != abs(difference):
                raise UnbalancedEntryError(
                    f"Opening balances differ by {abs(difference)}; confirm the amount to post it to retained earnings",
                    {"difference": str(difference), "confirmed": None if confirmed_imbalance is None else str(confirmed_imbalance)},
                )
            code = self.cfg.ACCOUNT_RETAINED_EARNINGS
            self.resolve_account(company_id, code, AccountType.EQUITY)
            if difference > 0:
                lines.append(JournalLine(code, credit=difference, description="Opening balance adjustment"))
            else:
                lines.append(JournalLine(code, debit=-difference, description="Opening balance adjustment"))
            logger.warning("opening balances for %s auto-balanced by %s to retained earnings", company_id, difference)
        return self.post(
            company_id, lines, entry_date, "Opening balances",
            reference_type="opening_balance", actor=actor,
        )
