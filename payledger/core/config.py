from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Optional, Tuple

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PAYLEDGER_", env_file=".env", extra="ignore")

    APP_NAME: str = Field("PayLedger", description="Logger namespace")
    DB_URL: str = Field("sqlite:///./data/payledger.db", description="Database URL")
    LOG_LEVEL: str = "INFO"
    AUDIT_LOG_PATH: str = "./data/logs"

    PAYROLL_NUMBER_PREFIX: str = "PAY"
    # Refuse runs whose period end is not inside an open financial period
    REQUIRE_OPEN_PERIOD: bool = True

    # PAYE (Zambia 2025/26, monthly): (min, max, rate); max None => top band
    DEFAULT_PAYE_BANDS: List[Tuple[float, Optional[float], float]] = [
        (0, 5100, 0.0),
        (5100, 7100, 0.20),
        (7100, 9200, 0.30),
        (9200, None, 0.37),
    ]

    # type -> (employee_rate, employer_rate, cap, employee_base, employer_base)
    DEFAULT_STATUTORY_RATES: Dict[str, Tuple[float, float, Optional[float], str, str]] = {
        "napsa": (0.05, 0.05, 1342.0, "basic", "basic"),
        "nhima": (0.01, 0.01, 250.0, "basic", "basic"),
        "pension": (0.05, 0.05, None, "basic", "basic"),
        "wht_local": (0.15, 0.0, None, "gross", "gross"),
        "wht_nonresident": (0.20, 0.0, None, "gross", "gross"),
    }

    # Payroll chart of accounts
    ACCOUNT_CASH: str = "1000"
    ACCOUNT_STAFF_ADVANCES: str = "1300"
    ACCOUNT_SALARIES_PAYABLE: str = "2010"
    ACCOUNT_PAYE_PAYABLE: str = "2031"
    ACCOUNT_NAPSA_PAYABLE: str = "2032"
    ACCOUNT_NHIMA_PAYABLE: str = "2033"
    ACCOUNT_PENSION_PAYABLE: str = "2034"
    ACCOUNT_WHT_PAYABLE: str = "2035"
    ACCOUNT_RETAINED_EARNINGS: str = "3100"
    ACCOUNT_SALARIES_EXPENSE: str = "5040"
    ACCOUNT_EMPLOYER_CONTRIBUTIONS: str = "5050"

settings = Settings()
