"""
Carrier quote normalization.

XML-based carrier APIs return service names with HTML entities
("Priority&#8482;", "Exp&eacute;dition"); names are decoded before being
used as lookup keys.
"""
import html
import unicodedata
from typing import Any, Dict, Optional, Union

from shipping_rates.modules.shipping.carriers.base import RateQuote

RATE_ATTRIBUTES = ("price", "delivery_date")


def normalize_service_name(name: Union[str, bytes]) -> str:
    """UTF-8 text, entities unescaped, NFC normalized."""
    if isinstance(name, bytes):
        name = name.decode("utf-8", errors="ignore")
    else:
        # Drop lone surrogates and other unencodable characters
        name = name.encode("utf-8", errors="ignore").decode("utf-8")
    return unicodedata.normalize("NFC", html.unescape(name))


def extract_rates(quote: RateQuote, rate_attribute: str = "price") -> Dict[str, Any]:
    """
    Map each service in the quote to one of its attributes.

    Raises:
        ValueError: rate_attribute is not "price" or "delivery_date"
    """
    if rate_attribute not in RATE_ATTRIBUTES:
        raise ValueError(f"rate_attribute must be one of {RATE_ATTRIBUTES}, got {rate_attribute!r}")

    return {
        normalize_service_name(rate.service_name): getattr(rate, rate_attribute)
        for rate in quote.rates
    }


def select_service_rate(rates: Dict[str, Any], service_name: str) -> Optional[Any]:
    """Value for service_name, or None when the carrier did not offer it."""
    if not rates:
        return None
    return rates.get(normalize_service_name(service_name))
