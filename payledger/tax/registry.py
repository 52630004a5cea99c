"""
Active PAYE bands and statutory rates for one company.

A ``TaxRateRegistry`` is an immutable value: it is validated once when built
and then passed explicitly into every calculation. Refreshing rates means
building a new registry.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from payledger.core.config import settings as default_settings
from payledger.core.errors import InvalidConfigurationError
from payledger.core.schemas import ConsultantType, RateType, ReferenceBase, StatutoryRate, TaxBand

logger = logging.getLogger(__name__)

ONE = Decimal("1")

def validate_bands(bands: Iterable[TaxBand]) -> Tuple[TaxBand, ...]:
    """
    Sort bands by ``order`` and check they partition [0, inf).

    Raises InvalidConfigurationError on an empty set, duplicate orders, a first
    band not starting at zero, gaps or overlaps between neighbours, a band with
    max <= min, a rate outside [0, 1], or anything other than exactly one
    unbounded band in last position.
    """
    ordered = sorted(bands, key=lambda b: b.order)
    if not ordered:
        raise InvalidConfigurationError("No PAYE tax bands configured")

    orders = [b.order for b in ordered]
    if len(set(orders)) != len(orders):
        raise InvalidConfigurationError("Duplicate PAYE band order", {"orders": orders})

    unbounded = [b for b in ordered if b.max_amount is None]
    if len(unbounded) != 1:
        raise InvalidConfigurationError(
            "Exactly one PAYE band must have no upper limit",
            {"unbounded_bands": [b.order for b in unbounded]},
        )
    if ordered[-1].max_amount is not None:
        raise InvalidConfigurationError("The unbounded PAYE band must be the last band")

    if ordered[0].min_amount != 0:
        raise InvalidConfigurationError(
            "First PAYE band must start at zero", {"min_amount": str(ordered[0].min_amount)}
        )

    previous_max: Optional[Decimal] = None
    for band in ordered:
        if not (0 <= band.rate <= ONE):
            raise InvalidConfigurationError(
                f"PAYE band {band.order} rate must be between 0 and 1", {"rate": str(band.rate)}
            )
        if band.max_amount is not None and band.max_amount <= band.min_amount:
            raise InvalidConfigurationError(f"PAYE band {band.order} is empty or inverted")
        if previous_max is not None and band.min_amount != previous_max:
            kind = "gap" if band.min_amount > previous_max else "overlap"
            raise InvalidConfigurationError(
                f"PAYE bands have a {kind} before band {band.order}",
                {"expected_min": str(previous_max), "min_amount": str(band.min_amount)},
            )
        previous_max = band.max_amount
    return tuple(ordered)

def validate_fraction(value: Decimal, label: str) -> Decimal:
    if not (0 <= value <= ONE):
        raise InvalidConfigurationError(f"{label} must be between 0 and 1", {"field": label, "value": str(value)})
    return value

def validate_rate(rate: StatutoryRate) -> StatutoryRate:
    validate_fraction(rate.employee_rate, f"{rate.type.value} employee_rate")
    validate_fraction(rate.employer_rate, f"{rate.type.value} employer_rate")
    if rate.cap_amount is not None and rate.cap_amount < 0:
        raise InvalidConfigurationError(f"{rate.type.value} cap must not be negative")
    return rate

class TaxRateRegistry:
    def __init__(self, company_id: str, bands: Iterable[TaxBand], rates: Iterable[StatutoryRate]):
        self.company_id = company_id
        self.bands = validate_bands(bands)
        self._rates: Dict[RateType, StatutoryRate] = {}
        for rate in rates:
            if rate.type in self._rates:
                raise InvalidConfigurationError(f"More than one active {rate.type.value} rate")
            self._rates[rate.type] = validate_rate(rate)

    def rate(self, rate_type: RateType) -> Optional[StatutoryRate]:
        return self._rates.get(rate_type)

    def wht_rate(self, consultant_type: Optional[ConsultantType]) -> Optional[StatutoryRate]:
        if consultant_type == ConsultantType.NON_RESIDENT:
            return self.rate(RateType.WHT_NONRESIDENT)
        return self.rate(RateType.WHT_LOCAL)

    @property
    def rates(self) -> List[StatutoryRate]:
        return list(self._rates.values())

    def __repr__(self):
        return f"TaxRateRegistry(company_id={self.company_id!r}, bands={len(self.bands)}, rates={sorted(r.value for r in self._rates)})"

def default_bands(cfg=None) -> List[TaxBand]:
    cfg = cfg or default_settings
    return [
        TaxBand(
            order=i,
            min_amount=Decimal(str(lo)),
            max_amount=None if hi is None else Decimal(str(hi)),
            rate=Decimal(str(rate)),
        )
        for i, (lo, hi, rate) in enumerate(cfg.DEFAULT_PAYE_BANDS, start=1)
    ]

def default_rates(cfg=None) -> List[StatutoryRate]:
    cfg = cfg or default_settings
    rates = []
    for key, (ee, er, cap, ee_base, er_base) in cfg.DEFAULT_STATUTORY_RATES.items():
        rates.append(StatutoryRate(
            type=RateType(key),
            employee_rate=Decimal(str(ee)),
            employer_rate=Decimal(str(er)),
            cap_amount=None if cap is None else Decimal(str(cap)),
            employee_base=ReferenceBase(ee_base),
            employer_base=ReferenceBase(er_base),
        ))
    return rates

def build_registry(company_id: str, bands: List[TaxBand], rates: List[StatutoryRate], cfg=None) -> TaxRateRegistry:
    """
    Build a registry from stored rows, filling in configured defaults for
    anything the company has not set up. Stored rows are always validated;
    a malformed band set is never silently replaced by the defaults.
    """
    if not bands:
        logger.warning("company %s has no PAYE bands configured, using defaults", company_id)
        bands = default_bands(cfg)
    present = {r.type for r in rates}
    missing = [r for r in default_rates(cfg) if r.type not in present]
    if missing:
        logger.info("company %s using default rates for %s", company_id, [r.type.value for r in missing])
    return TaxRateRegistry(company_id, bands, list(rates) + missing)
