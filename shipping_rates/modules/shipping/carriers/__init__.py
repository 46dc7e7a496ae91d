"""
Carrier Registry and Factory

- Carrier implementations register themselves with @register_carrier
- CarrierFactory builds carrier instances from a CarrierCode and Settings
"""
from typing import Dict, List, Type
import logging

from shipping_rates.core.config import Settings
from shipping_rates.modules.shipping.carriers.base import BaseCarrier, CarrierCode

logger = logging.getLogger(__name__)

# Registry of carrier implementations
_CARRIER_REGISTRY: Dict[CarrierCode, Type[BaseCarrier]] = {}


def register_carrier(carrier_code: CarrierCode):
    """
    Decorator to register a carrier implementation.

    Usage:
        @register_carrier(CarrierCode.UPS)
        class UPSCarrier(BaseCarrier):
            ...
    """
    def decorator(cls: Type[BaseCarrier]):
        _CARRIER_REGISTRY[carrier_code] = cls
        logger.debug(f"Registered carrier: {carrier_code.value} -> {cls.__name__}")
        return cls
    return decorator


class CarrierFactory:
    """Factory for creating carrier instances."""

    @classmethod
    def get_carrier(cls, carrier_code: CarrierCode, settings: Settings) -> BaseCarrier:
        """
        Get a carrier instance.

        Raises:
            ValueError: no implementation registered for carrier_code
        """
        carrier_cls = _CARRIER_REGISTRY.get(CarrierCode(carrier_code))
        if not carrier_cls:
            raise ValueError(f"No implementation registered for carrier: {carrier_code}")
        return carrier_cls(settings)

    @classmethod
    def get_registered_carriers(cls) -> List[CarrierCode]:
        """Get list of all registered carrier codes."""
        return list(_CARRIER_REGISTRY.keys())


def get_carrier(carrier_code: CarrierCode, settings: Settings) -> BaseCarrier:
    """Equivalent to CarrierFactory.get_carrier()."""
    return CarrierFactory.get_carrier(carrier_code, settings)


# Import carriers to trigger registration
# These imports must be at the bottom to avoid circular imports
from shipping_rates.modules.shipping.carriers.ups import UPSCarrier  # noqa: E402, F401
