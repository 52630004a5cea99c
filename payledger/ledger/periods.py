
import logging
from datetime import date

from payledger.core.config import settings
from payledger.core.errors import ClosedPeriodError, ValidationError
from payledger.core.repositories import PeriodRepository
from payledger.core.schemas import PeriodStatus

logger = logging.getLogger(__name__)

class FinancialPeriodGuard:
    """Refuses payroll activity that touches closed or locked financial periods."""

    def __init__(self, periods: PeriodRepository, require_open_period: bool = None):
        self.periods = periods
        self.require_open_period = settings.REQUIRE_OPEN_PERIOD if require_open_period is None else require_open_period

    def assert_open(self, company_id: str, start: date, end: date):
        if start > end:
            raise ValidationError("Period start must be on or before period end",
                                  {"period_start": str(start), "period_end": str(end)})

        for lock in self.periods.list_locks(company_id):
            if lock.overlaps(start, end):
                raise ClosedPeriodError(
                    f"{start} to {end} falls in a locked financial period",
                    {"lock_start": str(lock.start_date), "lock_end": str(lock.end_date)},
                )

        periods = self.periods.list_periods(company_id)
        for period in periods:
            if period.status != PeriodStatus.OPEN and period.overlaps(start, end):
                raise ClosedPeriodError(
                    f"{start} to {end} overlaps {period.status.value} period {period.name}",
                    {"period_id": period.id, "period": period.name},
                )

        if self.require_open_period and not any(
            p.status == PeriodStatus.OPEN and p.covers(end) for p in periods
        ):
            raise ClosedPeriodError(f"No open financial period covers {end}", {"date": str(end)})

    def assert_date_open(self, company_id: str, day: date):
        self.assert_open(company_id, day, day)
