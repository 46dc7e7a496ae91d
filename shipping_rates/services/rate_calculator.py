"""
Rate Calculator

Computes the price (or delivery date) of one carrier service for an order:

1. Resolve the order (order, shipment or list of shipments)
2. Split line items into packages under the destination's weight cap
3. Look the quote up in the rate cache, asking the carrier on a miss
4. Pick the configured service out of the carrier's multi-service quote
5. Price only: add the handling fee and convert cents to currency units

Results are returned as a RateResult rather than raised, so callers branch on
RateResult.outcome:
- SUCCESS: value is a Decimal price or a delivery datetime
- NO_RATE: the carrier does not offer the service for this destination/packages
- FATAL: the order cannot be packed (OverweightUnitError, MissingWeightError)
- RECOVERABLE: the carrier failed (ShippingError, memoized until invalidated)

Usage:
    calculator = RateCalculator(carrier, rate_cache, service_name="UPS Ground", settings=settings)
    result = await calculator.compute_price(order)
    if result.ok:
        shipping_cost = result.value
"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple

from shipping_rates.core.config import Settings, settings as default_settings
from shipping_rates.core.exceptions import (
    ConfigurationError,
    PackingError,
    ShippingError,
    ShippingRatesError,
)
from shipping_rates.core.rate_cache import RateCache
from shipping_rates.models.order import Order, OrderLike, retrieve_order
from shipping_rates.modules.shipping.carriers.base import (
    BaseCarrier,
    CarrierError,
    Location,
    Package,
    RateQuote,
)
from shipping_rates.services.cache_key import derive_cache_key
from shipping_rates.services.packaging import packages_for_order
from shipping_rates.services.rate_extractor import extract_rates, select_service_rate

logger = logging.getLogger(__name__)

# Carrier prices are expressed in cents
MINOR_UNITS = Decimal(100)

# Where carriers put a human readable error description, most specific first
ERROR_DESCRIPTION_PATHS: Tuple[Sequence[Any], ...] = (
    ("Response", "Error", "ErrorDescription"),  # UPS (legacy)
    ("eparcel", "error", "statusMessage"),  # Canada Post
    ("response", "errors", 0, "message"),  # UPS REST
)


class RateOutcome(str, enum.Enum):
    SUCCESS = "success"
    NO_RATE = "no_rate"
    FATAL = "fatal"
    RECOVERABLE = "recoverable"


@dataclass
class RateResult:
    outcome: RateOutcome
    value: Any = None
    error: Optional[ShippingRatesError] = None

    @classmethod
    def success(cls, value: Any) -> "RateResult":
        return cls(RateOutcome.SUCCESS, value=value)

    @classmethod
    def no_rate(cls) -> "RateResult":
        return cls(RateOutcome.NO_RATE)

    @classmethod
    def fatal(cls, error: ShippingRatesError) -> "RateResult":
        return cls(RateOutcome.FATAL, error=error)

    @classmethod
    def recoverable(cls, error: ShippingError) -> "RateResult":
        return cls(RateOutcome.RECOVERABLE, error=error)

    @property
    def ok(self) -> bool:
        return self.outcome == RateOutcome.SUCCESS

    def unwrap(self) -> Any:
        """Value on success, None for NO_RATE; raises the error otherwise."""
        if self.error is not None:
            raise self.error
        return self.value


def _dig(params: Any, path: Sequence[Any]) -> Optional[Any]:
    node = params
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return None
        elif not isinstance(node, dict) or step not in node:
            return None
        node = node[step]
    return node


def classify_carrier_error(error: Exception, prefix: str = "Shipping Error") -> ShippingError:
    """
    Normalize a carrier failure into a ShippingError.

    Prefers a structured description from the carrier response; falls back
    to the carrier error's own message.
    """
    message = None
    params = getattr(error, "params", None)

    if isinstance(params, dict):
        for path in ERROR_DESCRIPTION_PATHS:
            description = _dig(params, path)
            if description:
                message = str(description)
                break

    if message is None:
        if isinstance(error, asyncio.TimeoutError):
            message = "Carrier did not respond in time"
        else:
            message = getattr(error, "message", None) or str(error) or error.__class__.__name__

    return ShippingError(
        f"{prefix}: {message}",
        details={
            "carrier_error": error.__class__.__name__,
            "carrier_code": getattr(error, "code", None),
        },
    )


class RateCalculator:
    """
    Rates one carrier service for orders.

    Subclasses may set service_name as a class attribute and override
    max_weight_for_country() for carrier-specific package limits.
    """

    service_name: str = ""

    def __init__(
        self,
        carrier: BaseCarrier,
        rate_cache: RateCache,
        service_name: Optional[str] = None,
        settings: Settings = default_settings,
    ):
        self.carrier = carrier
        self.rate_cache = rate_cache
        self.settings = settings
        if service_name:
            self.service_name = service_name
        if not self.service_name:
            raise ConfigurationError("A rate calculator needs the carrier service name it rates")

    def max_weight_for_country(self, country_code: str) -> float:
        """Weight limit per package (in packed units) or zero if there is no limit."""
        return self.settings.max_weight_for_country(country_code)

    def packages(self, order: Order) -> List[Package]:
        max_weight = self.max_weight_for_country(order.ship_address.country_code)
        return packages_for_order(order, max_weight, self.settings)

    def cache_key(self, order: Order) -> str:
        return derive_cache_key(self.carrier.name, order, order.locale or self.settings.LOCALE)

    async def retrieve_rates(
        self,
        origin: Location,
        destination: Location,
        packages: List[Package],
    ) -> RateQuote:
        """
        Ask the carrier, bounded by CARRIER_TIMEOUT_SECONDS.

        Raises:
            ShippingError: classified carrier failure
        """
        try:
            return await asyncio.wait_for(
                self.carrier.find_rates(origin, destination, packages),
                timeout=self.settings.CARRIER_TIMEOUT_SECONDS,
            )
        except (CarrierError, asyncio.TimeoutError) as e:
            error = classify_carrier_error(e, self.settings.SHIPPING_ERROR_PREFIX)
            logger.warning(f"[RATE_CALC] {self.carrier.name} rate lookup failed: {error.message}")
            raise error from e

    async def _service_rate(self, order_like: OrderLike, rate_attribute: str) -> RateResult:
        order = retrieve_order(order_like)

        origin = Location.from_settings(self.settings)
        destination = Location.from_address(order.ship_address)

        try:
            packages = self.packages(order)
        except PackingError as e:
            logger.warning(f"[RATE_CALC] Order {order.number} cannot be packed: {e.message}")
            return RateResult.fatal(e)

        if not packages:
            return RateResult.no_rate()

        key = self.cache_key(order)
        try:
            quote = await self.rate_cache.get_or_compute(
                key, lambda: self.retrieve_rates(origin, destination, packages)
            )
        except ShippingError as e:
            return RateResult.recoverable(e)

        value = select_service_rate(extract_rates(quote, rate_attribute), self.service_name)
        if value is None:
            logger.debug(f"[RATE_CALC] No {self.service_name!r} {rate_attribute} for order {order.number}")
            return RateResult.no_rate()

        return RateResult.success(value)

    async def compute_price(self, order_like: OrderLike) -> RateResult:
        """Service price plus handling fee, in currency units (Decimal)."""
        result = await self._service_rate(order_like, "price")
        if not result.ok:
            return result

        price = (Decimal(str(result.value)) + self.settings.HANDLING_FEE) / MINOR_UNITS
        return RateResult.success(price)

    async def compute_delivery_date(self, order_like: OrderLike) -> RateResult:
        """Carrier's delivery estimate for the service."""
        return await self._service_rate(order_like, "delivery_date")
