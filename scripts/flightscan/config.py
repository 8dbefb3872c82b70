"""
Search configuration.

Settings are read from the environment / .env by the caller and handed to
the engine explicitly; nothing in the package looks them up on its own.
"""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings

from .schema import MileageAccount

# Airlines whose member credentials can be configured (CI_MEMBER_ID, ...)
MILEAGE_PROGRAMS = ("CI", "BR", "JX", "EK", "TK", "CX", "SQ")

# Every price is reported in TWD; exchange rates are TWD per unit of currency
REPORTING_CURRENCY = "TWD"

DEFAULT_EXCHANGE_RATES = {
    "TWD": 1.0,
    "USD": 32.0,
    "EUR": 35.0,
    "JPY": 0.21,
    "HKD": 4.1,
    "SGD": 24.0,
    "KRW": 0.024,
}


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    browser_headless: bool = True
    browser_max_pages: int = Field(3, ge=1)
    pool_acquire_timeout: float = Field(60.0, gt=0)
    task_timeout: float = Field(90.0, gt=0)
    search_deadline: float = Field(180.0, gt=0)

    miles_value_rate: float = Field(0.4, gt=0)
    exchange_rates: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_EXCHANGE_RATES))

    amadeus_client_id: str = ""
    amadeus_client_secret: str = ""
    amadeus_production: bool = False
    amadeus_timeout: float = Field(15.0, gt=0)

    log_level: str = "INFO"

    ci_member_id: str = ""
    ci_member_password: str = ""
    br_member_id: str = ""
    br_member_password: str = ""
    jx_member_id: str = ""
    jx_member_password: str = ""
    ek_member_id: str = ""
    ek_member_password: str = ""
    tk_member_id: str = ""
    tk_member_password: str = ""
    cx_member_id: str = ""
    cx_member_password: str = ""
    sq_member_id: str = ""
    sq_member_password: str = ""

    @property
    def amadeus_configured(self) -> bool:
        return bool(self.amadeus_client_id and self.amadeus_client_secret)

    def mileage_accounts(self) -> dict[str, MileageAccount]:
        """Accounts with both a member id and a password; others are left out."""
        accounts = {}
        for code in MILEAGE_PROGRAMS:
            member_id = getattr(self, f"{code.lower()}_member_id")
            password = getattr(self, f"{code.lower()}_member_password")
            if member_id and password:
                accounts[code] = MileageAccount(airline=code, member_id=member_id, password=password)
        return accounts


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
