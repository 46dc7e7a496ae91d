"""
Rate cache key derivation.

Keys are per order: two orders with the same items and destination get
separate entries.
"""
import hashlib
import re
from typing import Iterable

from shipping_rates.models.order import LineItem, Order

_WHITESPACE = re.compile(r"\s+")


def line_items_digest(line_items: Iterable[LineItem]) -> str:
    """MD5 of variant/quantity pairs in line item order."""
    composition = "|".join(f"{li.variant_id}_{li.quantity}" for li in line_items)
    return hashlib.md5(composition.encode()).hexdigest()


def derive_cache_key(carrier_name: str, order: Order, locale: str) -> str:
    """
    Cache key for an order's rate request.

    carrier-order-country-state-city-zip-digest-locale, whitespace removed.
    """
    address = order.ship_address
    parts = [
        carrier_name,
        order.number,
        address.country_code,
        address.state,
        address.city,
        address.zipcode,
        line_items_digest(order.line_items),
        locale,
    ]
    key = "-".join("" if part is None else str(part) for part in parts)
    return _WHITESPACE.sub("", key)
