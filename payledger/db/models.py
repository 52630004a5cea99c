
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Numeric, ForeignKey, Date, DateTime, Boolean, JSON, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from payledger.db.session import Base

# Money columns hold integer minor units (cents); rates are fractions.

def _uuid():
    return str(uuid.uuid4())

class Company(Base):
    __tablename__ = "companies"
    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class EmployeeRecord(Base):
    __tablename__ = "employees"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    full_name = Column(String, nullable=False)
    basic_salary_minor = Column(Integer, nullable=False, default=0)
    housing_allowance_minor = Column(Integer, nullable=True)
    transport_allowance_minor = Column(Integer, nullable=True)
    other_allowances_minor = Column(Integer, nullable=True)
    is_consultant = Column(Boolean, default=False)
    consultant_type = Column(String, nullable=True)  # 'local' / 'non_resident'
    apply_paye = Column(Boolean, default=True)
    apply_napsa = Column(Boolean, default=True)
    apply_nhima = Column(Boolean, default=True)
    apply_wht = Column(Boolean, default=False)
    pension_enabled = Column(Boolean, default=False)
    pension_employee_rate = Column(Numeric(10, 6), nullable=True)
    pension_employer_rate = Column(Numeric(10, 6), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class TaxBandRecord(Base):
    __tablename__ = "paye_tax_bands"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    band_order = Column(Integer, nullable=False)
    min_amount_minor = Column(Integer, nullable=False, default=0)
    max_amount_minor = Column(Integer, nullable=True)
    rate = Column(Numeric(10, 6), nullable=False)
    is_active = Column(Boolean, default=True)

class StatutoryRateRecord(Base):
    __tablename__ = "payroll_statutory_rates"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    rate_type = Column(String, nullable=False)
    employee_rate = Column(Numeric(10, 6), nullable=False, default=0)
    employer_rate = Column(Numeric(10, 6), nullable=False, default=0)
    cap_amount_minor = Column(Integer, nullable=True)
    employee_base = Column(String, nullable=False, default="basic")
    employer_base = Column(String, nullable=False, default="basic")
    is_active = Column(Boolean, default=True)

class AdvanceRecord(Base):
    __tablename__ = "advances"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = Column(String, ForeignKey("employees.id"), nullable=False, index=True)
    amount_minor = Column(Integer, nullable=False)
    months_to_repay = Column(Integer, nullable=False, default=1)
    monthly_deduction_minor = Column(Integer, nullable=False)
    remaining_balance_minor = Column(Integer, nullable=False)
    months_deducted = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="pending")
    date_to_deduct = Column(Date, nullable=False)
    source_run_id = Column(String, nullable=True)
    last_deducted_run_id = Column(String, nullable=True)
    last_deducted_period_end = Column(Date, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class PayrollRunRecord(Base):
    __tablename__ = "payroll_runs"
    __table_args__ = (UniqueConstraint("company_id", "payroll_number", name="uq_payroll_number"),)
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    run_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="draft")
    payroll_number = Column(String, nullable=True)
    total_gross_minor = Column(Integer, default=0)
    total_deductions_minor = Column(Integer, default=0)
    total_net_minor = Column(Integer, default=0)
    is_locked = Column(Boolean, default=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String, nullable=True)
    updated_by = Column(String, nullable=True)
    trial_run_at = Column(DateTime, nullable=True)
    trial_run_by = Column(String, nullable=True)
    finalized_at = Column(DateTime, nullable=True)
    finalized_by = Column(String, nullable=True)
    gl_journal_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("PayrollItemRecord", cascade="all, delete-orphan", order_by="PayrollItemRecord.position")
    additions = relationship("PayrollAdditionRecord", cascade="all, delete-orphan")

class PayrollItemRecord(Base):
    __tablename__ = "payroll_items"
    id = Column(String, primary_key=True, default=_uuid)
    run_id = Column(String, ForeignKey("payroll_runs.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    employee_id = Column(String, nullable=False)
    employee_name = Column(String, nullable=True)
    basic_salary_minor = Column(Integer, default=0)
    housing_allowance_minor = Column(Integer, default=0)
    transport_allowance_minor = Column(Integer, default=0)
    other_allowances_minor = Column(Integer, default=0)
    additions_minor = Column(Integer, default=0)
    gross_salary_minor = Column(Integer, default=0)
    paye_minor = Column(Integer, default=0)
    napsa_employee_minor = Column(Integer, default=0)
    napsa_employer_minor = Column(Integer, default=0)
    nhima_employee_minor = Column(Integer, default=0)
    nhima_employer_minor = Column(Integer, default=0)
    pension_employee_minor = Column(Integer, default=0)
    pension_employer_minor = Column(Integer, default=0)
    wht_minor = Column(Integer, default=0)
    advances_deducted_minor = Column(Integer, default=0)
    total_deductions_minor = Column(Integer, default=0)
    net_salary_minor = Column(Integer, default=0)
    advance_allocations = Column(JSON, default=list)  # list of {advance_id, amount_minor}

class PayrollAdditionRecord(Base):
    __tablename__ = "payroll_additions"
    id = Column(String, primary_key=True, default=_uuid)
    run_id = Column(String, ForeignKey("payroll_runs.id"), nullable=False, index=True)
    employee_id = Column(String, nullable=False)
    type = Column(String, nullable=False)  # earning / bonus / overtime / advance
    name = Column(String, nullable=False)
    amount_minor = Column(Integer, nullable=False, default=0)
    total_amount_minor = Column(Integer, nullable=True)
    months_to_pay = Column(Integer, nullable=True)
    monthly_deduction_minor = Column(Integer, nullable=True)
    hourly_rate_minor = Column(Integer, nullable=True)
    hours_worked = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

class FinancialPeriodRecord(Base):
    __tablename__ = "financial_periods"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="open")

class PeriodLockRecord(Base):
    __tablename__ = "period_locks"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    is_locked = Column(Boolean, default=True)

class AccountRecord(Base):
    __tablename__ = "chart_of_accounts"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_account_code"),)
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    code = Column(String, nullable=False)
    name = Column(String, nullable=False)
    account_type = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)

class JournalEntryRecord(Base):
    __tablename__ = "journal_entries"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    entry_date = Column(Date, nullable=False)
    reference_number = Column(String, nullable=True)
    description = Column(String, nullable=True)
    reference_type = Column(String, nullable=False, default="manual")
    reference_id = Column(String, nullable=True)
    total_debit_minor = Column(Integer, default=0)
    total_credit_minor = Column(Integer, default=0)
    is_posted = Column(Boolean, default=False)
    is_locked = Column(Boolean, default=False)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lines = relationship("JournalLineRecord", cascade="all, delete-orphan", order_by="JournalLineRecord.line_number")

class JournalLineRecord(Base):
    __tablename__ = "journal_lines"
    id = Column(String, primary_key=True, default=_uuid)
    entry_id = Column(String, ForeignKey("journal_entries.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False)
    account_code = Column(String, nullable=False)
    debit_minor = Column(Integer, default=0)
    credit_minor = Column(Integer, default=0)
    description = Column(String, nullable=True)

class SalaryPaymentRecord(Base):
    __tablename__ = "salary_payments"
    id = Column(String, primary_key=True, default=_uuid)
    company_id = Column(String, ForeignKey("companies.id"), nullable=False, index=True)
    run_id = Column(String, ForeignKey("payroll_runs.id"), nullable=False, unique=True)
    journal_id = Column(String, ForeignKey("journal_entries.id"), nullable=False)
    payment_date = Column(Date, nullable=False)
    amount_minor = Column(Integer, nullable=False)
    paid_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
