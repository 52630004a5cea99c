from decimal import Decimal

import pytest

from payledger.core.errors import InvalidConfigurationError
from payledger.core.schemas import ConsultantType, RateType, ReferenceBase, StatutoryRate, TaxBand
from payledger.db.models import StatutoryRateRecord, TaxBandRecord
from payledger.tax.registry import TaxRateRegistry, build_registry, default_bands, default_rates

def band(order, lo, hi, rate):
    return TaxBand(order, Decimal(lo), None if hi is None else Decimal(hi), Decimal(rate))

def test_default_registry_is_valid():
    reg = TaxRateRegistry("c1", default_bands(), default_rates())
    assert [b.rate for b in reg.bands] == [Decimal("0"), Decimal("0.2"), Decimal("0.3"), Decimal("0.37")]
    assert reg.rate(RateType.NAPSA).cap_amount == Decimal("1342.0")
    assert reg.wht_rate(ConsultantType.LOCAL).employee_rate == Decimal("0.15")
    assert reg.wht_rate(ConsultantType.NON_RESIDENT).employee_rate == Decimal("0.2")

def test_bands_are_sorted_by_order():
    reg = TaxRateRegistry("c1", [band(2, "100", None, "0.1"), band(1, "0", "100", "0")], [])
    assert [b.order for b in reg.bands] == [1, 2]

@pytest.mark.parametrize("bands", [
    [],
    [band(1, "0", "100", "0"), band(2, "150", None, "0.1")],             # gap
    [band(1, "0", "100", "0"), band(2, "90", None, "0.1")],              # overlap
    [band(1, "0", None, "0"), band(2, "100", None, "0.1")],              # two unbounded
    [band(1, "0", "100", "0"), band(2, "100", "200", "0.1")],            # no unbounded
    [band(1, "10", "100", "0"), band(2, "100", None, "0.1")],            # not from zero
    [band(1, "0", "100", "0"), band(2, "100", None, "1.5")],             # rate > 1
    [band(1, "0", "100", "0"), band(1, "100", None, "0.1")],             # duplicate order
])
def test_malformed_bands_rejected(bands):
    with pytest.raises(InvalidConfigurationError):
        TaxRateRegistry("c1", bands, [])

def test_duplicate_and_out_of_range_rates_rejected():
    napsa = StatutoryRate(RateType.NAPSA, Decimal("0.05"), Decimal("0.05"))
    with pytest.raises(InvalidConfigurationError):
        TaxRateRegistry("c1", default_bands(), [napsa, napsa])
    with pytest.raises(InvalidConfigurationError):
        TaxRateRegistry("c1", default_bands(), [StatutoryRate(RateType.NHIMA, Decimal("-0.01"), Decimal("0"))])

def test_build_registry_falls_back_to_defaults():
    reg = build_registry("c1", [], [StatutoryRate(RateType.NAPSA, Decimal("0.04"), Decimal("0.06"))])
    assert len(reg.bands) == 4
    assert reg.rate(RateType.NAPSA).employee_rate == Decimal("0.04")
    assert reg.rate(RateType.NHIMA) is not None

def test_build_registry_never_replaces_stored_bands():
    with pytest.raises(InvalidConfigurationError):
        build_registry("c1", [band(1, "0", "100", "0")], [])

def test_registry_loaded_from_database(session_factory, company, workflow):
    db = session_factory()
    for order, lo, hi, rate in [(1, 0, 400000, "0"), (2, 400000, None, "0.25")]:
        db.add(TaxBandRecord(company_id=company, band_order=order, min_amount_minor=lo,
                             max_amount_minor=hi, rate=Decimal(rate)))
    db.add(StatutoryRateRecord(company_id=company, rate_type="napsa", employee_rate=Decimal("0.05"),
                               employer_rate=Decimal("0.05"), cap_amount_minor=134200,
                               employee_base="basic", employer_base="gross"))
    db.add(StatutoryRateRecord(company_id=company, rate_type="nhima", employee_rate=Decimal("0.01"),
                               employer_rate=Decimal("0.01"), is_active=False))
    db.commit()
    db.close()

    reg = workflow.get_active_rate_registry(company)
    assert [b.max_amount for b in reg.bands] == [Decimal("4000.00"), None]
    napsa = reg.rate(RateType.NAPSA)
    assert napsa.employer_base == ReferenceBase.GROSS
    assert napsa.cap_amount == Decimal("1342.00")
    # inactive stored NHIMA row is ignored; the default fills the gap
    assert reg.rate(RateType.NHIMA).cap_amount == Decimal("250.0")
