"""
Shipping Rates Exception Hierarchy

All exceptions include code, message, and details so they can be logged,
serialized into the rate cache and rebuilt later.

Exception Hierarchy:
    ShippingRatesError
    ├── ShippingError          (carrier failure, memoized in the rate cache)
    ├── PackingError           (order cannot be packed, never cached)
    │   ├── OverweightUnitError  (single unit heavier than the package cap)
    │   └── MissingWeightError   (unit has no usable weight)
    └── ConfigurationError
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class ShippingRatesError(Exception):
    """
    Base exception for all rate calculation errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging
        severity: P0-P3 severity level
    """

    default_code: str = "SHIPPING_RATES_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ShippingError(ShippingRatesError):
    """
    Carrier lookup failed.

    Stored in the rate cache under the request key so identical requests fail
    fast until the entry is invalidated.
    """
    default_code = "SHIPPING_ERROR"
    default_severity = "P1"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShippingError":
        """Rebuild an error serialized with to_dict()."""
        return cls(
            message=data["message"],
            code=data.get("code"),
            details=data.get("details"),
            severity=data.get("severity"),
        )

    def __eq__(self, other):
        if not isinstance(other, ShippingError):
            return NotImplemented
        return (self.message, self.code, self.details) == (other.message, other.code, other.details)

    def __hash__(self):
        return hash((self.__class__, self.message, self.code))


class PackingError(ShippingRatesError):
    """An order's line items cannot be turned into packages."""
    default_code = "PACKING_ERROR"
    default_severity = "P2"


class OverweightUnitError(PackingError):
    """A single unit of a line item exceeds the destination's max package weight."""
    default_code = "OVERWEIGHT_UNIT"

    def __init__(
        self,
        message: str,
        max_weight: Optional[float] = None,
        unit_weight: Optional[float] = None,
        variant_id: Optional[Any] = None,
        **kwargs
    ):
        details = dict(kwargs.pop("details", None) or {})
        details.update({
            "max_weight": max_weight,
            "unit_weight": unit_weight,
            "variant_id": variant_id,
        })
        super().__init__(message, details=details, **kwargs)


class MissingWeightError(PackingError):
    """A line item unit weighs nothing even after the default weight is applied."""
    default_code = "MISSING_WEIGHT"

    def __init__(self, message: str, variant_id: Optional[Any] = None, **kwargs):
        details = dict(kwargs.pop("details", None) or {})
        details["variant_id"] = variant_id
        super().__init__(message, details=details, **kwargs)


class ConfigurationError(ShippingRatesError):
    """Calculator or carrier is missing required configuration."""
    default_code = "CONFIGURATION_ERROR"
    default_severity = "P1"
