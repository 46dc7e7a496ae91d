"""
Shipping Module

- BaseCarrier interface for all carrier implementations
- CarrierFactory for building registered carriers from settings
"""
from shipping_rates.modules.shipping.carriers import CarrierFactory, get_carrier
from shipping_rates.modules.shipping.carriers.base import BaseCarrier

__all__ = [
    "CarrierFactory",
    "get_carrier",
    "BaseCarrier",
]
