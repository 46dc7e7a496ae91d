"""
Order model consumed by rate calculators.

Orders are supplied by the caller (storefront, OMS, tests); this package only
reads them. Line item order is significant: it feeds the cache key digest.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Union


@dataclass
class LineItem:
    """One order line: a variant and how many units of it."""
    variant_id: Any
    quantity: int
    weight: Optional[float] = None  # per unit, in the store's weight unit


@dataclass
class ShipAddress:
    """Ship-to address fields that matter for rating."""
    country_code: str
    city: str
    zipcode: str
    state_code: Optional[str] = None  # e.g. "NY"
    state_name: Optional[str] = None  # used when the country has no state codes

    @property
    def state(self) -> str:
        return self.state_code or self.state_name or ""


@dataclass
class Order:
    number: str
    ship_address: ShipAddress
    line_items: List[LineItem] = field(default_factory=list)
    locale: Optional[str] = None


@dataclass
class Shipment:
    order: Order
    number: Optional[str] = None


OrderLike = Union[Order, Shipment, Sequence[Shipment]]


def retrieve_order(order_like: OrderLike) -> Order:
    """
    Resolve the order behind an order, a shipment or a list of shipments.

    Raises:
        ValueError: empty shipment list
        TypeError: anything else
    """
    if isinstance(order_like, Order):
        return order_like

    if isinstance(order_like, Shipment):
        return order_like.order

    if isinstance(order_like, (list, tuple)):
        if not order_like:
            raise ValueError("Cannot resolve an order from an empty shipment list")
        return retrieve_order(order_like[0])

    raise TypeError(f"Expected Order, Shipment or list of shipments, got {type(order_like).__name__}")
