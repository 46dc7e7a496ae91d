"""
UPS Carrier Implementation

Implements UPS OAuth 2.0 authentication and the Rating API ("Shop" option,
all available services in one call).

- Package weights are converted from the configured unit system to LBS/KGS
- Prices are returned in minor units (cents)
- Every failure is raised as CarrierError carrying the parsed response body
"""
import base64
import logging
from datetime import datetime, timezone, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

import httpx

from shipping_rates.core.config import Settings
from shipping_rates.core.exceptions import ConfigurationError
from shipping_rates.modules.shipping.carriers.base import (
    BaseCarrier,
    CarrierCode,
    CarrierError,
    Location,
    Package,
    Rate,
    RateQuote,
)
from shipping_rates.modules.shipping.carriers import register_carrier

logger = logging.getLogger(__name__)

# UPS API URLs
UPS_PRODUCTION_URL = "https://onlinetools.ups.com"
UPS_SANDBOX_URL = "https://wwwcie.ups.com"

OAUTH_TOKEN_PATH = "/security/v1/oauth/token"
RATING_PATH = "/api/rating/v2403/Shop"

UPS_SERVICE_CODES = {
    # Domestic US
    "01": "UPS Next Day Air",
    "02": "UPS 2nd Day Air",
    "03": "UPS Ground",
    "12": "UPS 3 Day Select",
    "13": "UPS Next Day Air Saver",
    "14": "UPS Next Day Air Early",
    "59": "UPS 2nd Day Air A.M.",
    # International
    "07": "UPS Worldwide Express",
    "08": "UPS Worldwide Expedited",
    "11": "UPS Standard",
    "54": "UPS Worldwide Express Plus",
    "65": "UPS Saver",
}

# UPS expects LBS from these origins, KGS everywhere else
IMPERIAL_ORIGIN_COUNTRIES = {"US", "PR"}


@dataclass
class UPSCredentials:
    """UPS API credentials."""
    client_id: str
    client_secret: str
    account_number: str
    use_sandbox: bool = False

    @property
    def base_url(self) -> str:
        return UPS_SANDBOX_URL if self.use_sandbox else UPS_PRODUCTION_URL

    @classmethod
    def from_settings(cls, settings: Settings) -> "UPSCredentials":
        if not settings.UPS_CLIENT_ID or not settings.UPS_CLIENT_SECRET:
            raise ConfigurationError(
                "UPS_CLIENT_ID and UPS_CLIENT_SECRET must be set to rate with UPS",
                code="UPS_NOT_CONFIGURED",
            )
        return cls(
            client_id=settings.UPS_CLIENT_ID,
            client_secret=settings.UPS_CLIENT_SECRET,
            account_number=settings.UPS_ACCOUNT_NUMBER,
            use_sandbox=settings.UPS_USE_SANDBOX,
        )


def _to_cents(value: Any) -> int:
    try:
        return int((Decimal(str(value)) * 100).quantize(Decimal("1")))
    except (InvalidOperation, ValueError):
        raise CarrierError(f"UPS returned an invalid amount: {value!r}", code="INVALID_RESPONSE")


@register_carrier(CarrierCode.UPS)
class UPSCarrier(BaseCarrier):
    """
    UPS rating client with OAuth 2.0 token reuse.

    The HTTP client and token are created lazily and reused across calls.
    """

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self._credentials: Optional[UPSCredentials] = None
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def carrier_code(self) -> CarrierCode:
        return CarrierCode.UPS

    @property
    def name(self) -> str:
        return "UPS"

    @property
    def credentials(self) -> UPSCredentials:
        if self._credentials is None:
            self._credentials = UPSCredentials.from_settings(self.settings)
        return self._credentials

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.settings.CARRIER_TIMEOUT_SECONDS,
                headers={"Content-Type": "application/json"},
            )
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ==================== Transport ====================

    async def _send(self, url: str, action: str, **kwargs) -> httpx.Response:
        """POST to UPS, turning transport failures into CarrierError."""
        client = await self._get_http_client()
        try:
            return await client.post(url, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"[UPS] {action} request failed: {e}")
            raise CarrierError(f"Network error during {action}: {e}", code="NETWORK_ERROR")

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict:
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text[:500]}

    @staticmethod
    def _json_object(response: httpx.Response, action: str) -> Dict:
        """Body of a successful reply; UPS answers with HTML during maintenance."""
        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            logger.warning(f"[UPS] {action} returned a non-JSON body ({response.status_code})")
            raise CarrierError(
                f"UPS returned an unreadable {action} response",
                params={"raw": response.text[:500]},
                code="INVALID_RESPONSE",
            )
        return body

    def _token_is_fresh(self) -> bool:
        # Refresh 5 minutes before expiry
        return bool(
            self._access_token
            and self._token_expires_at
            and datetime.now(timezone.utc) < self._token_expires_at - timedelta(minutes=5)
        )

    async def _ensure_token(self) -> str:
        """Return a cached OAuth token, fetching a new one when it is missing or stale."""
        if self._token_is_fresh():
            return self._access_token

        credentials = self.credentials
        basic = base64.b64encode(f"{credentials.client_id}:{credentials.client_secret}".encode()).decode()

        response = await self._send(
            f"{credentials.base_url}{OAUTH_TOKEN_PATH}",
            "authentication",
            headers={
                "Authorization": f"Basic {basic}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={"grant_type": "client_credentials"},
        )

        if response.status_code != 200:
            logger.error(f"[UPS] OAuth failed: {response.status_code} - {response.text[:500]}")
            raise CarrierError(
                "Failed to authenticate with UPS",
                params=self._error_body(response),
                code="AUTH_FAILED",
            )

        data = self._json_object(response, "authentication")
        token = data.get("access_token")
        try:
            expires_in = int(data.get("expires_in", 3600))
        except (TypeError, ValueError):
            token = None
        if not token:
            raise CarrierError(
                "UPS authentication response has no usable access token",
                params=data,
                code="INVALID_RESPONSE",
            )

        self._access_token = token
        self._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        logger.info(f"[UPS] OAuth token obtained, expires in {expires_in}s")
        return token

    async def _post(self, path: str, data: Dict) -> Dict:
        """Authenticated JSON POST; any non-success reply becomes CarrierError."""
        token = await self._ensure_token()

        response = await self._send(
            f"{self.credentials.base_url}{path}",
            f"POST {path}",
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "transId": f"rate_{datetime.now().strftime('%Y%m%d%H%M%S%f')}",
                "transactionSrc": "shipping-rates",
            },
            json=data,
        )
        logger.debug(f"[UPS] POST {path} -> {response.status_code}")

        if response.status_code >= 400:
            body = self._error_body(response)
            errors = body.get("response", {}).get("errors", []) if isinstance(body, dict) else []
            first = errors[0] if errors and isinstance(errors[0], dict) else {}
            message = first.get("message") or "UPS API error"
            code = first.get("code") or str(response.status_code)

            logger.warning(f"[UPS] API error: {code} - {message}")
            raise CarrierError(message, params=body, code=code)

        return self._json_object(response, "rate")

    # ==================== Request building ====================

    @staticmethod
    def _location_to_ups(location: Location) -> Dict:
        return {
            "Address": {
                "City": location.city,
                "StateProvinceCode": location.state[:5] if location.state else "",
                "PostalCode": location.zip,
                "CountryCode": location.country,
            }
        }

    @staticmethod
    def _package_to_ups(package: Package, origin_country: str) -> Dict:
        if origin_country in IMPERIAL_ORIGIN_COUNTRIES:
            unit, weight = "LBS", package.pounds
        else:
            unit, weight = "KGS", package.kilograms

        return {
            "PackagingType": {"Code": "02"},  # Customer Supplied Package
            "PackageWeight": {
                "UnitOfMeasurement": {"Code": unit},
                # UPS rejects zero weights
                "Weight": str(max(round(weight, 1), 0.1)),
            },
        }

    # ==================== Response parsing ====================

    @staticmethod
    def _parse_delivery(rated_shipment: Dict):
        delivery_date = None
        delivery_days = None

        guaranteed = rated_shipment.get("GuaranteedDelivery") or {}
        if guaranteed.get("BusinessDaysInTransit"):
            delivery_days = int(guaranteed["BusinessDaysInTransit"])

        arrival = (
            (rated_shipment.get("TimeInTransit") or {})
            .get("ServiceSummary", {})
            .get("EstimatedArrival", {})
        )
        if arrival:
            date_str = (arrival.get("Arrival") or {}).get("Date") or arrival.get("Date", "")
            time_str = (arrival.get("Arrival") or {}).get("Time") or arrival.get("Time", "")
            if date_str:
                try:
                    delivery_date = datetime.strptime(
                        f"{date_str} {(time_str or '180000')[:4]}",
                        "%Y%m%d %H%M"
                    ).replace(tzinfo=timezone.utc)
                except ValueError:
                    logger.debug(f"Unparseable UPS arrival date: {date_str!r}")
            if arrival.get("BusinessDaysInTransit"):
                delivery_days = int(arrival["BusinessDaysInTransit"])

        return delivery_date, delivery_days

    def _parse_rates(self, response: Dict) -> List[Rate]:
        rated_shipments = response.get("RateResponse", {}).get("RatedShipment", [])
        if isinstance(rated_shipments, dict):
            rated_shipments = [rated_shipments]

        rates = []
        for rs in rated_shipments:
            service = rs.get("Service", {})
            code = service.get("Code", "")
            total = rs.get("TotalCharges", {})
            delivery_date, delivery_days = self._parse_delivery(rs)

            rates.append(Rate(
                service_name=UPS_SERVICE_CODES.get(
                    code, service.get("Description") or f"UPS Service {code or 'Unknown'}"
                ),
                service_code=code,
                price=_to_cents(total.get("MonetaryValue", 0)),
                currency=total.get("CurrencyCode", "USD"),
                delivery_date=delivery_date,
                delivery_days=delivery_days,
            ))
        return rates

    async def find_rates(
        self,
        origin: Location,
        destination: Location,
        packages: List[Package],
    ) -> RateQuote:
        if not packages:
            raise ValueError("At least one package is required to request UPS rates")

        shipper = self._location_to_ups(origin)
        shipper["ShipperNumber"] = self.credentials.account_number

        package_list = [self._package_to_ups(pkg, origin.country) for pkg in packages]

        request_data = {
            "RateRequest": {
                "Request": {
                    "RequestOption": "Shop",
                    "SubVersion": "2403",
                },
                "Shipment": {
                    "Shipper": shipper,
                    "ShipTo": self._location_to_ups(destination),
                    "ShipFrom": self._location_to_ups(origin),
                    "Package": package_list if len(package_list) > 1 else package_list[0],
                },
            }
        }

        response = await self._post(RATING_PATH, request_data)

        try:
            rates = self._parse_rates(response)
        except CarrierError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CarrierError(f"Unexpected UPS rate response: {e}", params=response, code="INVALID_RESPONSE")

        logger.info(f"[UPS] Returned {len(rates)} rates for {len(packages)} package(s) to {destination.country}")
        return RateQuote(carrier=self.name, rates=rates, params=response)
