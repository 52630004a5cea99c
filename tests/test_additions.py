from datetime import date
from decimal import Decimal

import pytest

from payledger.core.errors import InvalidAdditionError
from payledger.core.schemas import AdditionType, PayrollAddition
from payledger.payroll.additions import AdditionsBasket, normalize_addition

D = Decimal

def test_overtime_amount_from_rate_and_hours():
    add = normalize_addition(PayrollAddition("e1", AdditionType.OVERTIME, "", D("0"),
                                             hourly_rate=D("52.50"), hours_worked=D("10")))
    assert add.amount == D("525.00")
    assert add.name == "Overtime"

def test_advance_monthly_rounds_up():
    add = normalize_addition(PayrollAddition("e1", AdditionType.ADVANCE, "School fees", D("0"),
                                             total_amount=D("1000"), months_to_pay=3))
    assert add.monthly_deduction == D("334.00")
    assert add.amount == D("334.00")
    assert add.total_amount == D("1000.00")

@pytest.mark.parametrize("addition", [
    PayrollAddition("e1", AdditionType.BONUS, "Bonus", D("0")),
    PayrollAddition("e1", AdditionType.EARNING, "Commission", D("-5")),
    PayrollAddition("e1", AdditionType.OVERTIME, "OT", D("0"), hourly_rate=D("10")),
    PayrollAddition("e1", AdditionType.ADVANCE, "Advance", D("0")),
    PayrollAddition("e1", AdditionType.ADVANCE, "Advance", D("0"), total_amount=D("500"), months_to_pay=-2),
    PayrollAddition("", AdditionType.BONUS, "Bonus", D("100")),
])
def test_invalid_additions_rejected(addition):
    with pytest.raises(InvalidAdditionError):
        normalize_addition(addition)

def test_basket_resolution(workflow, uow_factory, company, hire):
    a = hire("Alice Banda", 6000)
    b = hire("Brian Phiri", 8000)
    run = workflow.create_draft_run(company, date(2025, 1, 1), date(2025, 1, 31), "alice")

    workflow.add_addition(run.id, PayrollAddition(a.id, AdditionType.BONUS, "Bonus", D("500")), "alice")
    workflow.add_addition(run.id, PayrollAddition(a.id, AdditionType.EARNING, "Commission", D("250")), "alice")
    workflow.add_addition(run.id, PayrollAddition(b.id, AdditionType.ADVANCE, "Advance", D("0"),
                                                  total_amount=D("900"), months_to_pay=3), "alice")

    with uow_factory() as uow:
        resolution = AdditionsBasket(run.id, uow.runs).resolve(company, date(2025, 2, 1))
    assert resolution.gross_additions == {a.id: D("750.00")}
    assert len(resolution.new_advances) == 1
    adv = resolution.new_advances[0]
    assert (adv.employee_id, adv.amount, adv.monthly_deduction) == (b.id, D("900.00"), D("300.00"))
    assert adv.date_to_deduct == date(2025, 2, 1)
    assert adv.source_run_id == run.id

def test_removed_addition_drops_out(workflow, company, hire):
    a = hire("Alice Banda", 6000)
    run = workflow.create_draft_run(company, date(2025, 1, 1), date(2025, 1, 31), "alice")
    bonus = workflow.add_addition(run.id, PayrollAddition(a.id, AdditionType.BONUS, "Bonus", D("500")), "alice")
    assert workflow.recompute_draft(run.id, "alice").items[0].gross_salary == D("6500.00")

    assert workflow.remove_addition(run.id, bonus.id, "alice") is True
    assert workflow.remove_addition(run.id, bonus.id, "alice") is False
    assert workflow.recompute_draft(run.id, "alice").items[0].gross_salary == D("6000.00")
