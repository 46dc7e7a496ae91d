"""
Base Carrier Interface

- All carriers implement find_rates()
- Carriers raise CarrierError (with the parsed response body when there is one);
  rate calculators classify it into a ShippingError
- RateQuote/Rate serialize to plain dicts so they can be stored in Redis
"""
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from shipping_rates.core.config import Settings


class CarrierCode(str, enum.Enum):
    """Supported shipping carriers."""
    UPS = "UPS"


class UnitSystem(str, enum.Enum):
    """Weight unit system of a Package: ounces (imperial) or grams (metric)."""
    IMPERIAL = "imperial"
    METRIC = "metric"


# =============================================================================
# Carrier-Agnostic Data Classes
# =============================================================================

@dataclass(frozen=True)
class Location:
    """Origin or destination of a shipment."""
    country: str
    state: str = ""
    city: str = ""
    zip: str = ""

    @classmethod
    def from_address(cls, address) -> "Location":
        """Build from a ShipAddress; state falls back to the state name."""
        return cls(
            country=address.country_code,
            state=address.state,
            city=address.city,
            zip=address.zipcode,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Location":
        """Build the ship-from location from configuration."""
        return cls(
            country=settings.ORIGIN_COUNTRY,
            state=settings.ORIGIN_STATE,
            city=settings.ORIGIN_CITY,
            zip=settings.ORIGIN_ZIP,
        )


@dataclass
class Package:
    """A parcel as the carrier rates it."""
    weight: float  # ounces (imperial) or grams (metric)
    units: UnitSystem = UnitSystem.IMPERIAL

    @property
    def pounds(self) -> float:
        if self.units == UnitSystem.METRIC:
            return self.weight / 453.59237
        return self.weight / 16.0

    @property
    def kilograms(self) -> float:
        if self.units == UnitSystem.METRIC:
            return self.weight / 1000.0
        return self.weight * 0.028349523125


@dataclass
class Rate:
    """One service offered by the carrier for the requested packages."""
    service_name: str
    price: int  # minor units (cents)
    service_code: str = ""
    currency: str = "USD"
    delivery_date: Optional[datetime] = None
    delivery_days: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "service_code": self.service_code,
            "price": self.price,
            "currency": self.currency,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "delivery_days": self.delivery_days,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rate":
        delivery_date = data.get("delivery_date")
        return cls(
            service_name=data["service_name"],
            service_code=data.get("service_code", ""),
            price=data["price"],
            currency=data.get("currency", "USD"),
            delivery_date=datetime.fromisoformat(delivery_date) if delivery_date else None,
            delivery_days=data.get("delivery_days"),
        )


@dataclass
class RateQuote:
    """A carrier's answer for one origin/destination/packages request."""
    carrier: str
    rates: List[Rate] = field(default_factory=list)
    params: Dict[str, Any] = field(default_factory=dict)  # raw carrier response

    def to_dict(self) -> Dict[str, Any]:
        return {
            "carrier": self.carrier,
            "rates": [rate.to_dict() for rate in self.rates],
            "params": self.params,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateQuote":
        return cls(
            carrier=data["carrier"],
            rates=[Rate.from_dict(r) for r in data.get("rates", [])],
            params=data.get("params") or {},
        )


class CarrierError(Exception):
    """
    Raw carrier failure.

    Attributes:
        message: Carrier library's generic message
        params: Parsed carrier response body, when the carrier answered at all
        code: Carrier or HTTP error code
    """

    def __init__(self, message: str, params: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.message = message
        self.params = params
        self.code = code
        super().__init__(message)


# =============================================================================
# Base Carrier Interface
# =============================================================================

class BaseCarrier(ABC):
    """
    Abstract base class for all rate carriers.

    Carriers are stateless apart from connection and token reuse.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    @abstractmethod
    def carrier_code(self) -> CarrierCode:
        """Return the carrier code enum value."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Carrier name, also the first component of rate cache keys."""
        pass

    @abstractmethod
    async def find_rates(
        self,
        origin: Location,
        destination: Location,
        packages: List[Package],
    ) -> RateQuote:
        """
        Get rates for every service the carrier offers between two locations.

        Raises:
            CarrierError: the carrier rejected the request or could not be reached
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass
