# energy_super/tests/test_amber_client.py

import pytest
import requests

from energy_super.config import AmberConfig
from energy_super.models.prices import PriceRecord
from energy_super.services.amber_client import AmberClient
from energy_super.services.errors import PricingError
from energy_super.logging import get_logger
from energy_super.tests.fakes import FakeSession


LOG = get_logger("amber-test")
PRICES_URL = "https://api.test/v1/sites/SITE/prices/current"
SITES_URL = "https://api.test/v1/sites"


def _cfg(**overrides):
    cfg = AmberConfig(token="TOKEN", site_id="SITE", url="https://api.test/v1/", timeout=3)
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


def test_current_prices_parsed_into_records():
    payload = [
        {"type": "CurrentInterval", "channelType": "general", "perKwh": 24.87},
        {"type": "CurrentInterval", "channelType": "feedIn", "perKwh": -4.1},
        {"type": "ForecastInterval", "channelType": "general", "perKwh": 30},
        {"type": "ForecastInterval", "channelType": "feedIn"},
    ]
    session = FakeSession({("GET", PRICES_URL): (200, payload, {"RateLimit-Remaining": "48"})})
    client = AmberClient(_cfg(), LOG, session=session)

    records = client.get_current_prices()

    assert records == [
        PriceRecord("general", "CurrentInterval", 24.87),
        PriceRecord("feedIn", "CurrentInterval", -4.1),
        PriceRecord("general", "ForecastInterval", 30.0),
    ]
    assert client.rate_limit_remaining == 48
    call = session.calls[0]
    assert call["headers"]["Authorization"] == "Bearer TOKEN"
    assert call["params"] == {"next": 1, "previous": 0}
    assert call["timeout"] == 3


def test_http_error_raises():
    session = FakeSession({("GET", PRICES_URL): (429, {})})
    with pytest.raises(PricingError, match="HTTP 429"):
        AmberClient(_cfg(), LOG, session=session).get_current_prices()


def test_transport_error_raises():
    session = FakeSession({("GET", PRICES_URL): requests.ConnectionError("no route")})
    with pytest.raises(PricingError, match="no route"):
        AmberClient(_cfg(), LOG, session=session).get_current_prices()


def test_non_list_payload_raises():
    session = FakeSession({("GET", PRICES_URL): (200, {"message": "nope"})})
    with pytest.raises(PricingError):
        AmberClient(_cfg(), LOG, session=session).get_current_prices()


def test_check_connection_requires_configured_site():
    session = FakeSession({("GET", SITES_URL): (200, [{"id": "OTHER"}, {"id": "SITE"}])})
    assert AmberClient(_cfg(), LOG, session=session).check_connection() is True

    session = FakeSession({("GET", SITES_URL): (200, [{"id": "OTHER"}])})
    assert AmberClient(_cfg(), LOG, session=session).check_connection() is False


def test_check_connection_failure_is_false():
    session = FakeSession({("GET", SITES_URL): (401, {})})
    assert AmberClient(_cfg(), LOG, session=session).check_connection() is False
