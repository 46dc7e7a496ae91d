"""
Rate calculation configuration

All values are read once from the environment (or a .env file) and the
resulting Settings object is frozen. Calculators receive a Settings instance
at construction; nothing reads configuration from a mutable global.

Weights:
- Line item weights are multiplied by UNIT_MULTIPLIER before packing
- With UNITS=imperial the packed weights are ounces, with UNITS=metric grams
- MAX_WEIGHT_BY_COUNTRY caps a single package per destination country
  (missing country or 0 = no cap)

Money:
- Carrier prices are in minor units (cents)
- HANDLING_FEE is in minor units and is added before dividing by 100
"""
import json
import logging
from decimal import Decimal
from typing import Dict, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

VALID_UNIT_SYSTEMS = ("imperial", "metric")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        frozen=True,
        extra="ignore",
    )

    # Packing
    UNITS: str = "imperial"
    UNIT_MULTIPLIER: float = 16.0  # pounds -> ounces
    DEFAULT_WEIGHT: float = 0.0  # used when a variant has no weight recorded

    # Accepts a JSON object or comma-separated "US=2400,CA=1050"
    # Using a str union so pydantic-settings does not insist on JSON
    MAX_WEIGHT_BY_COUNTRY: Union[str, Dict[str, float]] = {}

    # Pricing
    HANDLING_FEE: Decimal = Decimal("0")  # minor units (cents)

    # Origin (ship-from) location
    ORIGIN_COUNTRY: str = "US"
    ORIGIN_STATE: str = ""
    ORIGIN_CITY: str = ""
    ORIGIN_ZIP: str = ""

    # Locale used in cache keys when the order does not carry one
    LOCALE: str = "en"

    # Prefix for carrier failure messages
    SHIPPING_ERROR_PREFIX: str = "Shipping Error"

    # Carrier calls
    CARRIER_TIMEOUT_SECONDS: float = 30.0

    # Rate cache (Redis is optional, in-memory is used when unset)
    REDIS_URL: str = ""
    RATE_CACHE_PREFIX: str = "shipping:rates:"
    RATE_CACHE_TTL_SECONDS: int = 0  # 0 = entries live until invalidated/evicted
    RATE_CACHE_MAX_SIZE: int = 10000  # in-memory store only

    # UPS
    UPS_CLIENT_ID: str = ""
    UPS_CLIENT_SECRET: str = ""
    UPS_ACCOUNT_NUMBER: str = ""
    UPS_USE_SANDBOX: bool = False

    @field_validator("UNITS", mode="before")
    @classmethod
    def normalize_units(cls, v):
        v = str(v).strip().lower()
        if v not in VALID_UNIT_SYSTEMS:
            raise ValueError(f"UNITS must be one of {VALID_UNIT_SYSTEMS}, got {v!r}")
        return v

    @field_validator("UNIT_MULTIPLIER")
    @classmethod
    def check_multiplier(cls, v):
        if v <= 0:
            raise ValueError("UNIT_MULTIPLIER must be positive")
        return v

    @field_validator("DEFAULT_WEIGHT")
    @classmethod
    def check_default_weight(cls, v):
        if v < 0:
            raise ValueError("DEFAULT_WEIGHT must not be negative")
        return v

    @field_validator("ORIGIN_COUNTRY", mode="before")
    @classmethod
    def upper_country(cls, v):
        return str(v).strip().upper()

    @field_validator("MAX_WEIGHT_BY_COUNTRY", mode="before")
    @classmethod
    def parse_max_weights(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return {}
            # Try JSON first
            if v.strip().startswith("{"):
                try:
                    v = json.loads(v)
                except json.JSONDecodeError:
                    raise ValueError("MAX_WEIGHT_BY_COUNTRY is not valid JSON")
            else:
                # Fallback to comma-separated COUNTRY=WEIGHT pairs
                pairs = {}
                for part in v.split(","):
                    if not part.strip():
                        continue
                    country, sep, weight = part.partition("=")
                    if not sep:
                        raise ValueError(f"Invalid MAX_WEIGHT_BY_COUNTRY entry: {part!r}")
                    pairs[country] = weight
                v = pairs
        if isinstance(v, dict):
            return {str(k).strip().upper(): float(w) for k, w in v.items()}
        return v

    def max_weight_for_country(self, country_code: str) -> float:
        """Per-package weight cap for a destination country, 0 when uncapped."""
        if not country_code or not isinstance(self.MAX_WEIGHT_BY_COUNTRY, dict):
            return 0.0
        return self.MAX_WEIGHT_BY_COUNTRY.get(country_code.upper(), 0.0)


settings = Settings()
