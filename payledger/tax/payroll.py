from decimal import Decimal
from typing import Optional, Sequence, Tuple

from payledger.core.errors import InvalidConfigurationError
from payledger.core.schemas import Employee, PayrollItem, RateType, ReferenceBase, StatutoryRate, TaxBand
from payledger.core.utils import ZERO, to_money
from payledger.tax.registry import TaxRateRegistry, validate_fraction

def _capped(amount: Decimal, cap: Optional[Decimal]) -> Decimal:
    if cap is not None and amount > cap:
        return to_money(cap)
    return to_money(amount)

class PayrollCalculator:
    """Deterministic per-employee payroll breakdown. Holds no state."""

    def compute_paye(self, gross: Decimal, bands: Sequence[TaxBand]) -> Decimal:
        # marginal: each band taxes the slice of gross that falls inside it
        tax = ZERO
        for band in bands:
            if gross <= band.min_amount:
                break
            upper = gross if band.max_amount is None else min(gross, band.max_amount)
            tax += band.rate * (upper - band.min_amount)
        return to_money(max(tax, ZERO))

    def _base(self, which: ReferenceBase, basic: Decimal, gross: Decimal) -> Decimal:
        return gross if which == ReferenceBase.GROSS else basic

    def compute_contribution(self, rate: Optional[StatutoryRate], basic: Decimal, gross: Decimal,
                             employee_rate: Optional[Decimal] = None,
                             employer_rate: Optional[Decimal] = None) -> Tuple[Decimal, Decimal]:
        """Employee and employer shares, each computed on its own base and capped independently."""
        if rate is None:
            return ZERO, ZERO
        ee_rate = rate.employee_rate if employee_rate is None else employee_rate
        er_rate = rate.employer_rate if employer_rate is None else employer_rate
        employee = _capped(ee_rate * self._base(rate.employee_base, basic, gross), rate.cap_amount)
        employer = _capped(er_rate * self._base(rate.employer_base, basic, gross), rate.cap_amount)
        return employee, employer

    def compute_wht(self, gross: Decimal, rate: Optional[StatutoryRate]) -> Decimal:
        if rate is None:
            return ZERO
        return to_money(rate.employee_rate * gross)

    def compute(self, employee: Employee, registry: TaxRateRegistry,
                advance_deduction_total: Decimal = ZERO,
                extra_earnings: Decimal = ZERO) -> PayrollItem:
        basic = to_money(employee.basic_salary)
        allowances = employee.allowances
        housing = to_money(allowances.housing)
        transport = to_money(allowances.transport)
        other = to_money(allowances.other)
        extra = to_money(extra_earnings)
        gross = basic + housing + transport + other + extra
        if basic < 0 or gross < 0:
            raise InvalidConfigurationError(
                f"Negative gross salary for employee {employee.id}", {"gross": str(gross)}
            )

        paye = napsa_ee = napsa_er = nhima_ee = nhima_er = pension_ee = pension_er = wht = ZERO

        if employee.is_consultant and employee.apply_wht:
            # final tax: replaces every other statutory deduction
            wht = self.compute_wht(gross, registry.wht_rate(employee.consultant_type))
        else:
            if not employee.is_consultant:
                if employee.apply_paye:
                    paye = self.compute_paye(gross, registry.bands)
                if employee.apply_napsa:
                    napsa_ee, napsa_er = self.compute_contribution(
                        registry.rate(RateType.NAPSA), basic, gross)
            if employee.apply_nhima:
                nhima_ee, nhima_er = self.compute_contribution(
                    registry.rate(RateType.NHIMA), basic, gross)
            if employee.pension_enabled:
                for label, override in (("pension_employee_rate", employee.pension_employee_rate),
                                        ("pension_employer_rate", employee.pension_employer_rate)):
                    if override is not None:
                        validate_fraction(override, f"{label} of employee {employee.id}")
                pension_ee, pension_er = self.compute_contribution(
                    registry.rate(RateType.PENSION), basic, gross,
                    employee_rate=employee.pension_employee_rate,
                    employer_rate=employee.pension_employer_rate,
                )

        advances = to_money(advance_deduction_total)
        total_deductions = paye + napsa_ee + nhima_ee + pension_ee + wht + advances
        return PayrollItem(
            employee_id=employee.id,
            employee_name=employee.name,
            basic_salary=basic,
            housing_allowance=housing,
            transport_allowance=transport,
            other_allowances=other,
            additions=extra,
            gross_salary=gross,
            paye=paye,
            napsa_employee=napsa_ee,
            napsa_employer=napsa_er,
            nhima_employee=nhima_ee,
            nhima_employer=nhima_er,
            pension_employee=pension_ee,
            pension_employer=pension_er,
            wht=wht,
            advances_deducted=advances,
            total_deductions=total_deductions,
            net_salary=gross - total_deductions,
        )
