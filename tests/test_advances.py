from datetime import date
from decimal import Decimal

import pytest

from payledger.core.errors import AdvanceAlreadySettledError, ValidationError
from payledger.core.schemas import Advance, AdvanceStatus
from payledger.payroll.advances import AdvanceLedger, amortization_schedule

D = Decimal

def test_schedule_trims_last_installment():
    assert amortization_schedule(1000, 3) == [D("334.00"), D("334.00"), D("332.00")]
    assert amortization_schedule(3000, 3) == [D("1000.00")] * 3
    assert amortization_schedule(500, 0) == [D("500.00")]

@pytest.mark.parametrize("amount", ["1000", "3000", "2500.50", "7", "0.99"])
@pytest.mark.parametrize("months", [1, 2, 3, 7, 12])
def test_schedule_recovers_exact_amount(amount, months):
    schedule = amortization_schedule(D(amount), months)
    assert sum(schedule) == D(amount)
    assert all(s > 0 for s in schedule)

def test_due_waits_for_deduction_date():
    adv = Advance.new("c1", "e1", 3000, 3, date(2025, 2, 1))
    assert adv.monthly_deduction == D("1000.00")
    assert adv.due_on(date(2025, 1, 31)) == D("0.00")
    assert adv.due_on(date(2025, 2, 28)) == D("1000.00")

def seed_advance(uow_factory, employee, amount, months, start=date(2025, 1, 1)):
    with uow_factory() as uow:
        return AdvanceLedger(uow.advances).create_advance(
            Advance.new(employee.company_id, employee.id, amount, months, start)
        )

def test_advance_recovered_over_three_runs(uow_factory, hire):
    emp = hire("Mwila", 6000)
    adv = seed_advance(uow_factory, emp, 3000, 3)

    for n in range(2):
        with uow_factory() as uow:
            ledger = AdvanceLedger(uow.advances)
            assert ledger.due_deduction(emp.id, date(2025, 1 + n, 28)) == D("1000.00")
            ledger.apply_deduction(adv.id, D("1000"))
    with uow_factory() as uow:
        current = uow.advances.get(adv.id)
    assert current.remaining_balance == D("1000.00")
    assert current.status == AdvanceStatus.PARTIAL
    assert current.months_deducted == 2

    with uow_factory() as uow:
        done = AdvanceLedger(uow.advances).apply_deduction(adv.id, D("1000"))
    assert done.remaining_balance == D("0.00")
    assert done.status == AdvanceStatus.COMPLETED

    with uow_factory() as uow:
        ledger = AdvanceLedger(uow.advances)
        assert ledger.outstanding(emp.id) == []
        with pytest.raises(AdvanceAlreadySettledError):
            ledger.apply_deduction(adv.id, D("1"))

def test_stale_plan_cannot_overdraw(uow_factory, hire):
    emp = hire("Mwila", 6000)
    adv = seed_advance(uow_factory, emp, 1000, 1)

    with uow_factory() as uow:
        first = AdvanceLedger(uow.advances).consumption_plan(emp.id, date(2025, 1, 31))
    with uow_factory() as uow:
        second = AdvanceLedger(uow.advances).consumption_plan(emp.id, date(2025, 1, 31))
    assert first == second

    with uow_factory() as uow:
        AdvanceLedger(uow.advances).apply_deduction(first[0].advance_id, first[0].amount)
    with pytest.raises(AdvanceAlreadySettledError):
        with uow_factory() as uow:
            AdvanceLedger(uow.advances).apply_deduction(second[0].advance_id, second[0].amount)

    with uow_factory() as uow:
        assert uow.advances.get(adv.id).remaining_balance == D("0.00")

def test_deduction_must_be_positive(uow_factory, hire):
    emp = hire("Mwila", 6000)
    adv = seed_advance(uow_factory, emp, 1000, 2)
    with uow_factory() as uow:
        with pytest.raises(ValidationError):
            AdvanceLedger(uow.advances).apply_deduction(adv.id, 0)

def test_plan_orders_oldest_first(uow_factory, hire):
    emp = hire("Mwila", 6000)
    later = seed_advance(uow_factory, emp, 600, 2, start=date(2025, 3, 1))
    earlier = seed_advance(uow_factory, emp, 200, 1, start=date(2025, 1, 1))
    with uow_factory() as uow:
        plan = AdvanceLedger(uow.advances).consumption_plan(emp.id, date(2025, 3, 31))
    assert [p.advance_id for p in plan] == [earlier.id, later.id]
    assert [p.amount for p in plan] == [D("200.00"), D("300.00")]

def test_one_recovery_per_period(uow_factory, hire):
    emp = hire("Mwila", 6000)
    adv = seed_advance(uow_factory, emp, 3000, 3)

    with uow_factory() as uow:
        AdvanceLedger(uow.advances).apply_deduction(adv.id, D("1000"), "r1", date(2025, 1, 1), date(2025, 1, 31))
    with pytest.raises(AdvanceAlreadySettledError):
        with uow_factory() as uow:
            AdvanceLedger(uow.advances).apply_deduction(adv.id, D("1000"), "r2", date(2025, 1, 15), date(2025, 2, 14))
    with uow_factory() as uow:
        AdvanceLedger(uow.advances).apply_deduction(adv.id, D("1000"), "r3", date(2025, 2, 1), date(2025, 2, 28))

    with uow_factory() as uow:
        current = uow.advances.get(adv.id)
    assert current.remaining_balance == D("1000.00")
    assert current.months_deducted == 2
