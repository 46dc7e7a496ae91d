from shipping_rates.models.order import (
    LineItem,
    Order,
    OrderLike,
    ShipAddress,
    Shipment,
    retrieve_order,
)

__all__ = [
    "LineItem",
    "Order",
    "OrderLike",
    "ShipAddress",
    "Shipment",
    "retrieve_order",
]
