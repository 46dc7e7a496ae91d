import json

import httpx
import pytest

from shipping_rates.core.config import Settings
from shipping_rates.core.exceptions import ConfigurationError
from shipping_rates.core.rate_cache import InMemoryCacheStore, RateCache
from shipping_rates.models.order import LineItem, Order, ShipAddress
from shipping_rates.modules.shipping import CarrierFactory, get_carrier
from shipping_rates.modules.shipping.carriers.base import (
    CarrierCode,
    CarrierError,
    Location,
    Package,
    UnitSystem,
)
from shipping_rates.modules.shipping.carriers.ups import (
    OAUTH_TOKEN_PATH,
    RATING_PATH,
    UPS_SANDBOX_URL,
    UPSCarrier,
)
from shipping_rates.services.rate_calculator import RateCalculator, RateOutcome

ORIGIN = Location(country="US", state="NY", city="New York", zip="10001")
DESTINATION = Location(country="US", state="CA", city="San Francisco", zip="94105")

SHOP_RESPONSE = {
    "RateResponse": {
        "Response": {"ResponseStatus": {"Code": "1", "Description": "Success"}},
        "RatedShipment": [
            {
                "Service": {"Code": "03"},
                "TotalCharges": {"CurrencyCode": "USD", "MonetaryValue": "12.34"},
                "GuaranteedDelivery": {"BusinessDaysInTransit": "5"},
            },
            {
                "Service": {"Code": "01"},
                "TotalCharges": {"CurrencyCode": "USD", "MonetaryValue": "45.10"},
                "TimeInTransit": {
                    "ServiceSummary": {
                        "EstimatedArrival": {
                            "Arrival": {"Date": "20261019", "Time": "103000"},
                            "BusinessDaysInTransit": "1",
                        }
                    }
                },
            },
        ],
    }
}


@pytest.fixture
def ups_settings():
    return Settings(
        UPS_CLIENT_ID="client",
        UPS_CLIENT_SECRET="secret",
        UPS_ACCOUNT_NUMBER="A1B2C3",
        UPS_USE_SANDBOX=True,
        CARRIER_TIMEOUT_SECONDS=5.0,
    )


def make_carrier(settings, handler):
    carrier = UPSCarrier(settings)
    carrier._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=5.0)
    return carrier


def token_response():
    return httpx.Response(200, json={"access_token": "tok-123", "expires_in": "14399"})


@pytest.mark.asyncio
async def test_find_rates_parses_shop_response(ups_settings):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == OAUTH_TOKEN_PATH:
            return token_response()
        return httpx.Response(200, json=SHOP_RESPONSE)

    carrier = make_carrier(ups_settings, handler)
    quote = await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=32.0)])
    await carrier.close()

    assert quote.carrier == "UPS"
    assert quote.params == SHOP_RESPONSE

    ground, next_day = quote.rates
    assert ground.service_name == "UPS Ground"
    assert ground.price == 1234
    assert ground.delivery_days == 5
    assert ground.delivery_date is None
    assert next_day.service_name == "UPS Next Day Air"
    assert next_day.price == 4510
    assert next_day.delivery_days == 1
    assert next_day.delivery_date.isoformat() == "2026-10-19T10:30:00+00:00"

    assert str(requests[0].url) == f"{UPS_SANDBOX_URL}{OAUTH_TOKEN_PATH}"
    rate_request = requests[1]
    assert rate_request.url.path == RATING_PATH
    assert rate_request.headers["Authorization"] == "Bearer tok-123"

    shipment = json.loads(rate_request.content)["RateRequest"]["Shipment"]
    assert shipment["Shipper"]["ShipperNumber"] == "A1B2C3"
    assert shipment["ShipTo"]["Address"]["PostalCode"] == "94105"
    # A single package is sent as an object; 32 oz = 2 lbs
    assert shipment["Package"]["PackageWeight"] == {
        "UnitOfMeasurement": {"Code": "LBS"},
        "Weight": "2.0",
    }


@pytest.mark.asyncio
async def test_token_is_reused(ups_settings):
    token_calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal token_calls
        if request.url.path == OAUTH_TOKEN_PATH:
            token_calls += 1
            return token_response()
        return httpx.Response(200, json=SHOP_RESPONSE)

    carrier = make_carrier(ups_settings, handler)
    await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])
    await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])
    await carrier.close()

    assert token_calls == 1


@pytest.mark.asyncio
async def test_metric_origin_sends_kilograms_and_package_list():
    settings = Settings(UPS_CLIENT_ID="client", UPS_CLIENT_SECRET="secret", UNITS="metric")
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == OAUTH_TOKEN_PATH:
            return token_response()
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=SHOP_RESPONSE)

    carrier = make_carrier(settings, handler)
    origin = Location(country="CA", state="ON", city="Toronto", zip="M5V 2T6")
    packages = [Package(weight=1500.0, units=UnitSystem.METRIC), Package(weight=20.0, units=UnitSystem.METRIC)]
    await carrier.find_rates(origin, DESTINATION, packages)
    await carrier.close()

    sent = bodies[0]["RateRequest"]["Shipment"]["Package"]
    assert [p["PackageWeight"]["UnitOfMeasurement"]["Code"] for p in sent] == ["KGS", "KGS"]
    # 20 g rounds to zero; UPS gets its minimum
    assert [p["PackageWeight"]["Weight"] for p in sent] == ["1.5", "0.1"]


@pytest.mark.asyncio
async def test_api_error_carries_response_body(ups_settings):
    error_body = {"response": {"errors": [{"code": "111285", "message": "The postal code is invalid"}]}}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == OAUTH_TOKEN_PATH:
            return token_response()
        return httpx.Response(400, json=error_body)

    carrier = make_carrier(ups_settings, handler)
    with pytest.raises(CarrierError) as exc_info:
        await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])
    await carrier.close()

    assert exc_info.value.message == "The postal code is invalid"
    assert exc_info.value.code == "111285"
    assert exc_info.value.params == error_body


@pytest.mark.asyncio
async def test_auth_failure(ups_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="unauthorized")

    carrier = make_carrier(ups_settings, handler)
    with pytest.raises(CarrierError) as exc_info:
        await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])
    await carrier.close()

    assert exc_info.value.code == "AUTH_FAILED"
    assert exc_info.value.params == {"raw": "unauthorized"}


@pytest.mark.asyncio
async def test_network_error(ups_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    carrier = make_carrier(ups_settings, handler)
    with pytest.raises(CarrierError) as exc_info:
        await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])
    await carrier.close()

    assert exc_info.value.code == "NETWORK_ERROR"
    assert exc_info.value.params is None


@pytest.mark.asyncio
async def test_invalid_amount_is_carrier_error(ups_settings):
    response = {
        "RateResponse": {
            "RatedShipment": {"Service": {"Code": "03"}, "TotalCharges": {"MonetaryValue": "n/a"}},
        }
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == OAUTH_TOKEN_PATH:
            return token_response()
        return httpx.Response(200, json=response)

    carrier = make_carrier(ups_settings, handler)
    with pytest.raises(CarrierError) as exc_info:
        await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])
    await carrier.close()

    assert exc_info.value.code == "INVALID_RESPONSE"


@pytest.mark.asyncio
async def test_maintenance_page_is_carrier_error(ups_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == OAUTH_TOKEN_PATH:
            return token_response()
        return httpx.Response(200, text="<html>maintenance</html>")

    carrier = make_carrier(ups_settings, handler)
    with pytest.raises(CarrierError) as exc_info:
        await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])
    await carrier.close()

    assert exc_info.value.code == "INVALID_RESPONSE"
    assert exc_info.value.params == {"raw": "<html>maintenance</html>"}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"token_type": "Bearer"}, {"access_token": "tok", "expires_in": "soon"}])
async def test_unusable_token_reply(ups_settings, body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    carrier = make_carrier(ups_settings, handler)
    with pytest.raises(CarrierError) as exc_info:
        await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])
    await carrier.close()

    assert exc_info.value.code == "INVALID_RESPONSE"
    assert exc_info.value.params == body


@pytest.mark.asyncio
async def test_unreadable_reply_is_a_memoized_shipping_error(ups_settings):
    rating_calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal rating_calls
        if request.url.path == OAUTH_TOKEN_PATH:
            return token_response()
        rating_calls += 1
        return httpx.Response(200, text="<html>maintenance</html>")

    carrier = make_carrier(ups_settings, handler)
    calculator = RateCalculator(
        carrier, RateCache(InMemoryCacheStore()), service_name="UPS Ground", settings=ups_settings
    )
    order = Order(
        number="R100",
        ship_address=ShipAddress(country_code="US", state_code="CA", city="San Francisco", zipcode="94105"),
        line_items=[LineItem(variant_id=1, quantity=1, weight=2.0)],
    )

    first = await calculator.compute_price(order)
    second = await calculator.compute_price(order)
    await carrier.close()

    assert first.outcome == second.outcome == RateOutcome.RECOVERABLE
    assert first.error.message == "Shipping Error: UPS returned an unreadable rate response"
    assert rating_calls == 1


@pytest.mark.asyncio
async def test_missing_credentials():
    carrier = UPSCarrier(Settings(UPS_CLIENT_ID="", UPS_CLIENT_SECRET=""))

    with pytest.raises(ConfigurationError) as exc_info:
        await carrier.find_rates(ORIGIN, DESTINATION, [Package(weight=16.0)])

    assert exc_info.value.code == "UPS_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_no_packages_rejected(ups_settings):
    with pytest.raises(ValueError):
        await UPSCarrier(ups_settings).find_rates(ORIGIN, DESTINATION, [])


def test_factory_builds_ups(ups_settings):
    carrier = CarrierFactory.get_carrier(CarrierCode.UPS, ups_settings)

    assert isinstance(carrier, UPSCarrier)
    assert carrier.name == "UPS"
    assert CarrierCode.UPS in CarrierFactory.get_registered_carriers()
    assert isinstance(get_carrier("UPS", ups_settings), UPSCarrier)


def test_factory_rejects_unknown_code(ups_settings):
    with pytest.raises(ValueError):
        CarrierFactory.get_carrier("FEDEX", ups_settings)
