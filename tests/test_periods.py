from datetime import date

import pytest

from payledger.core.errors import ClosedPeriodError, ValidationError
from payledger.core.repositories import PeriodRepository
from payledger.core.schemas import FinancialPeriod, PeriodLock, PeriodStatus
from payledger.ledger.periods import FinancialPeriodGuard

class MemoryPeriods(PeriodRepository):
    def __init__(self, periods=(), locks=()):
        self.periods = list(periods)
        self.locks = list(locks)

    def list_periods(self, company_id):
        return [p for p in self.periods if p.company_id == company_id]

    def list_locks(self, company_id):
        return [l for l in self.locks if l.company_id == company_id]

FY = FinancialPeriod("p1", "c1", "FY2025", date(2025, 1, 1), date(2025, 12, 31))

def test_open_period_accepted():
    FinancialPeriodGuard(MemoryPeriods([FY])).assert_open("c1", date(2025, 4, 1), date(2025, 4, 30))

def test_inverted_range_rejected():
    with pytest.raises(ValidationError):
        FinancialPeriodGuard(MemoryPeriods([FY])).assert_open("c1", date(2025, 4, 30), date(2025, 4, 1))

def test_lock_with_open_start():
    guard = FinancialPeriodGuard(MemoryPeriods([FY], [PeriodLock("c1", end_date=date(2025, 3, 31))]))
    with pytest.raises(ClosedPeriodError):
        guard.assert_open("c1", date(2025, 3, 1), date(2025, 3, 31))
    guard.assert_open("c1", date(2025, 4, 1), date(2025, 4, 30))

def test_released_lock_ignored():
    lock = PeriodLock("c1", date(2025, 4, 1), date(2025, 4, 30), is_locked=False)
    FinancialPeriodGuard(MemoryPeriods([FY], [lock])).assert_open("c1", date(2025, 4, 1), date(2025, 4, 30))

def test_closed_period_overlap():
    closed = FinancialPeriod("p0", "c1", "FY2024", date(2024, 1, 1), date(2024, 12, 31), PeriodStatus.CLOSED)
    guard = FinancialPeriodGuard(MemoryPeriods([closed, FY]))
    with pytest.raises(ClosedPeriodError) as exc:
        guard.assert_open("c1", date(2024, 12, 16), date(2025, 1, 15))
    assert exc.value.details["period"] == "FY2024"

def test_open_period_required_unless_disabled():
    with pytest.raises(ClosedPeriodError):
        FinancialPeriodGuard(MemoryPeriods(), require_open_period=True).assert_open("c1", date(2025, 4, 1), date(2025, 4, 30))
    FinancialPeriodGuard(MemoryPeriods(), require_open_period=False).assert_open("c1", date(2025, 4, 1), date(2025, 4, 30))

def test_other_company_locks_ignored():
    guard = FinancialPeriodGuard(MemoryPeriods([FY], [PeriodLock("c2")]))
    guard.assert_date_open("c1", date(2025, 6, 30))
