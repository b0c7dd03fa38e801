from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache


ENV_PREFIX = "MARKETPLACE_"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./marketplace.db"
    log_level: str = "INFO"
    # Share of monthly income a repayment may take before an applicant is ineligible
    max_payment_to_income: Decimal = Decimal("0.4")


def _env(name: str, default: str) -> str:
    return os.environ.get(ENV_PREFIX + name, default)


def load_settings() -> Settings:
    defaults = Settings()
    return Settings(
        database_url=_env("DATABASE_URL", defaults.database_url),
        log_level=_env("LOG_LEVEL", defaults.log_level).upper(),
        max_payment_to_income=Decimal(
            _env("MAX_PAYMENT_TO_INCOME", str(defaults.max_payment_to_income))
        ),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
