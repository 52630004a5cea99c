from dataclasses import replace
from decimal import Decimal

import pytest

from payledger.core.errors import InvalidConfigurationError
from payledger.core.schemas import (
    Allowances, ConsultantType, Employee, RateType, ReferenceBase, StatutoryRate,
)
from payledger.tax.payroll import PayrollCalculator
from payledger.tax.registry import TaxRateRegistry, default_bands, default_rates

D = Decimal

@pytest.fixture
def registry():
    return TaxRateRegistry("c1", default_bands(), default_rates())

def staff(basic, **kwargs):
    return Employee(id="e1", company_id="c1", name="Mwila", basic_salary=D(str(basic)), **kwargs)

def test_worked_example(registry):
    item = PayrollCalculator().compute(staff(6000), registry)
    assert item.gross_salary == D("6000.00")
    assert item.paye == D("180.00")
    assert item.napsa_employee == D("300.00")
    assert item.napsa_employer == D("300.00")
    assert item.nhima_employee == D("60.00")
    assert item.net_salary == D("5460.00")
    assert item.total_deductions == D("540.00")
    assert item.employer_contributions == D("360.00")

def test_paye_marginal_across_bands(registry):
    calc = PayrollCalculator()
    assert calc.compute_paye(D("5100"), registry.bands) == D("0.00")
    # 2000*0.2 + 2100*0.3 + 800*0.37
    assert calc.compute_paye(D("10000"), registry.bands) == D("1326.00")

def test_paye_never_decreases_with_gross(registry):
    calc = PayrollCalculator()
    taxes = [calc.compute_paye(D(g), registry.bands) for g in range(0, 20000, 250)]
    assert taxes == sorted(taxes)

def test_contributions_capped(registry):
    item = PayrollCalculator().compute(staff(40000), registry)
    assert item.napsa_employee == D("1342.00")
    assert item.napsa_employer == D("1342.00")
    assert item.nhima_employee == D("250.00")
    assert item.nhima_employer == D("250.00")

def test_napsa_reference_base_is_configurable():
    calc = PayrollCalculator()
    emp = staff(6000, allowances=Allowances(housing=D("2000")))
    on_basic = TaxRateRegistry("c1", default_bands(), default_rates())
    napsa_gross = StatutoryRate(RateType.NAPSA, D("0.05"), D("0.05"), D("1342"),
                                employee_base=ReferenceBase.BASIC, employer_base=ReferenceBase.GROSS)
    on_gross = TaxRateRegistry("c1", default_bands(), [napsa_gross])

    a = calc.compute(emp, on_basic)
    b = calc.compute(emp, on_gross)
    assert (a.napsa_employee, a.napsa_employer) == (D("300.00"), D("300.00"))
    assert (b.napsa_employee, b.napsa_employer) == (D("300.00"), D("400.00"))

@pytest.mark.parametrize("kind,expected", [(ConsultantType.LOCAL, D("1500.00")), (ConsultantType.NON_RESIDENT, D("2000.00"))])
def test_consultant_wht_replaces_statutory(registry, kind, expected):
    emp = staff(10000, is_consultant=True, consultant_type=kind, apply_wht=True, pension_enabled=True)
    item = PayrollCalculator().compute(emp, registry)
    assert item.wht == expected
    assert item.paye == item.napsa_employee == item.nhima_employee == item.pension_employee == D("0.00")
    assert item.net_salary == D("10000.00") - expected

def test_consultant_without_wht_skips_paye_and_napsa(registry):
    emp = staff(6000, is_consultant=True, consultant_type=ConsultantType.LOCAL)
    item = PayrollCalculator().compute(emp, registry)
    assert item.paye == item.napsa_employee == item.wht == D("0.00")
    assert item.nhima_employee == D("60.00")

def test_flags_switch_off_deductions(registry):
    item = PayrollCalculator().compute(staff(6000, apply_paye=False, apply_nhima=False), registry)
    assert item.paye == D("0.00")
    assert item.nhima_employee == item.nhima_employer == D("0.00")
    assert item.napsa_employee == D("300.00")

def test_pension_uses_employee_override(registry):
    calc = PayrollCalculator()
    default = calc.compute(staff(6000, pension_enabled=True), registry)
    custom = calc.compute(staff(6000, pension_enabled=True, pension_employee_rate=D("0.07")), registry)
    assert default.pension_employee == default.pension_employer == D("300.00")
    assert custom.pension_employee == D("420.00")
    assert custom.pension_employer == D("300.00")
    assert custom.net_salary == D("6000.00") - D("180.00") - D("300.00") - D("60.00") - D("420.00")

@pytest.mark.parametrize("override", [
    {"pension_employee_rate": D("1.5")},
    {"pension_employer_rate": D("-0.1")},
])
def test_pension_override_must_be_a_fraction(registry, override):
    with pytest.raises(InvalidConfigurationError):
        PayrollCalculator().compute(staff(6000, pension_enabled=True, **override), registry)
    item = PayrollCalculator().compute(staff(6000, **override), registry)
    assert item.pension_employee == item.pension_employer == D("0.00")

def test_advances_and_extra_earnings(registry):
    item = PayrollCalculator().compute(staff(6000), registry, advance_deduction_total=D("1000"), extra_earnings=D("500"))
    assert item.additions == D("500.00")
    assert item.gross_salary == D("6500.00")
    assert item.paye == D("280.00")
    assert item.advances_deducted == D("1000.00")
    assert item.net_salary == item.gross_salary - item.total_deductions

def test_negative_salary_rejected(registry):
    with pytest.raises(InvalidConfigurationError):
        PayrollCalculator().compute(staff(-1), registry)

def test_same_inputs_same_item(registry):
    emp = staff(7345.55, allowances=Allowances(transport=D("120.10")))
    calc = PayrollCalculator()
    assert calc.compute(emp, registry) == calc.compute(replace(emp), registry)
