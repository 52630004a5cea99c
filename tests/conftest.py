import uuid
from datetime import date
from decimal import Decimal

import pytest

from payledger.core.config import settings
from payledger.core.repositories import SqlUnitOfWork, employee_to_record
from payledger.core.schemas import Employee
from payledger.db.models import AccountRecord, Company, FinancialPeriodRecord
from payledger.db.session import init_db, make_engine, make_session_factory
from payledger.ledger.posting import default_chart_of_accounts
from payledger.payroll.workflow import PayrollRunWorkflow

@pytest.fixture(autouse=True)
def audit_dir(tmp_path, monkeypatch):
    path = tmp_path / "logs"
    monkeypatch.setattr(settings, "AUDIT_LOG_PATH", str(path))
    return path

@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'payledger.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()

@pytest.fixture
def uow_factory(session_factory):
    return lambda: SqlUnitOfWork(session_factory)

@pytest.fixture
def company(session_factory):
    """A company with the payroll chart of accounts and FY2025 open."""
    cid = str(uuid.uuid4())
    db = session_factory()
    db.add(Company(id=cid, name=f"Co-{cid[:8]}"))
    db.flush()
    for acct in default_chart_of_accounts():
        db.add(AccountRecord(company_id=cid, code=acct.code, name=acct.name, account_type=acct.account_type.value))
    db.add(FinancialPeriodRecord(company_id=cid, name="FY2025", start_date=date(2025, 1, 1),
                                 end_date=date(2025, 12, 31), status="open"))
    db.commit()
    db.close()
    return cid

@pytest.fixture
def hire(session_factory, company):
    def _hire(name, basic, **kwargs):
        emp = Employee(id=str(uuid.uuid4()), company_id=company, name=name,
                       basic_salary=Decimal(str(basic)), **kwargs)
        db = session_factory()
        db.add(employee_to_record(emp))
        db.commit()
        db.close()
        return emp
    return _hire

@pytest.fixture
def workflow(uow_factory):
    return PayrollRunWorkflow(uow_factory)
