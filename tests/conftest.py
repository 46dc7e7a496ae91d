"""
Pytest configuration and fixtures for shipping rate tests.
"""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from shipping_rates.core.config import Settings
from shipping_rates.core.rate_cache import InMemoryCacheStore, RateCache
from shipping_rates.models.order import LineItem, Order, ShipAddress
from shipping_rates.modules.shipping.carriers.base import BaseCarrier, Rate, RateQuote


@pytest.fixture
def test_settings() -> Settings:
    """Settings with round numbers: weights are used as-is, fee is 50 cents."""
    return Settings(
        UNITS="imperial",
        UNIT_MULTIPLIER=1.0,
        DEFAULT_WEIGHT=1.0,
        HANDLING_FEE=Decimal("50"),
        ORIGIN_COUNTRY="US",
        ORIGIN_STATE="NY",
        ORIGIN_CITY="New York",
        ORIGIN_ZIP="10001",
        LOCALE="en",
        MAX_WEIGHT_BY_COUNTRY={"CA": 10},
        CARRIER_TIMEOUT_SECONDS=5.0,
        REDIS_URL="",
    )


@pytest.fixture
def us_address() -> ShipAddress:
    return ShipAddress(
        country_code="US",
        state_code="CA",
        city="San Francisco",
        zipcode="94105",
    )


@pytest.fixture
def sample_order(us_address) -> Order:
    """Two line items weighing 5 and 7, shipped to an uncapped country."""
    return Order(
        number="R123456789",
        ship_address=us_address,
        line_items=[
            LineItem(variant_id=1, quantity=1, weight=5.0),
            LineItem(variant_id=2, quantity=1, weight=7.0),
        ],
        locale="en",
    )


@pytest.fixture
def sample_quote() -> RateQuote:
    """Carrier quote with Ground at $5.00 and Express at $15.00."""
    return RateQuote(
        carrier="UPS",
        rates=[
            Rate(
                service_name="Ground",
                service_code="03",
                price=500,
                delivery_date=datetime(2026, 10, 23, 18, 0, tzinfo=timezone.utc),
                delivery_days=5,
            ),
            Rate(
                service_name="Express",
                service_code="01",
                price=1500,
                delivery_date=datetime(2026, 10, 19, 10, 30, tzinfo=timezone.utc),
                delivery_days=1,
            ),
        ],
    )


@pytest.fixture
def mock_carrier(sample_quote) -> MagicMock:
    """Carrier whose find_rates returns sample_quote."""
    carrier = MagicMock(spec=BaseCarrier)
    carrier.name = "UPS"
    carrier.find_rates = AsyncMock(return_value=sample_quote)
    carrier.close = AsyncMock()
    return carrier


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def rate_cache(cache_store) -> RateCache:
    return RateCache(cache_store)
