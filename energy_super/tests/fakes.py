# energy_super/tests/fakes.py

from energy_super.config import (
    AmberConfig,
    AppConfig,
    LoggingConfig,
    MqttConfig,
    PowerwallConfig,
    PublishConfig,
)
from energy_super.models.power import PowerReading
from energy_super.models.prices import PriceRecord


def make_app_config(
    *,
    price_interval=60,
    battery_interval=30,
    publish_interval=10,
    device_name="Energy Super",
    power_feed_topic="homeassistant/power/feed",
    time_feed_topic=None,
) -> AppConfig:
    return AppConfig(
        mqtt=MqttConfig(
            broker="broker.test",
            device_name=device_name,
            power_feed_topic=power_feed_topic,
            time_feed_topic=time_feed_topic,
        ),
        amber=AmberConfig(token="TOKEN", site_id="SITE", poll_interval_seconds=price_interval),
        powerwall=PowerwallConfig(
            url="https://pw.test",
            email="me@example.com",
            password="secret",
            poll_interval_seconds=battery_interval,
        ),
        publish=PublishConfig(interval_seconds=publish_interval, tick_seconds=0.01),
        logging=LoggingConfig(),
    )


class FakePricingClient:
    def __init__(self, records=None, error=None, reachable=True):
        self.records = records if records is not None else [
            PriceRecord("general", "CurrentInterval", 25.0),
            PriceRecord("feedIn", "CurrentInterval", -3.0),
        ]
        self.error = error
        self.reachable = reachable
        self.rate_limit_remaining = None
        self.calls = 0

    def check_connection(self):
        return self.reachable

    def get_current_prices(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.records


class FakeBatteryClient:
    def __init__(self, readings=None, error=None, reachable=True):
        self.readings = list(readings or [])
        self.error = error
        self.reachable = reachable
        self.calls = 0

    def check_connection(self):
        return self.reachable

    def read_power(self):
        self.calls += 1
        if self.error:
            raise self.error
        if self.readings:
            return self.readings.pop(0)
        return PowerReading(load_kw=1.5, solar_kw=4.0, battery_kw=-2.0, grid_kw=-0.5, charge_percent=55.0)


class FakeConnection:
    """Records every MQTT call; failing_topics never transmit."""

    def __init__(self, connect_ok=True, failing_topics=None, fail_all=False):
        self.connect_ok = connect_ok
        self.failing_topics = set(failing_topics or [])
        self.fail_all = fail_all
        self.sent = []
        self.subscribed = []
        self.handlers = []
        self.connected = False
        self.disconnect_calls = 0

    def connect(self):
        self.connected = self.connect_ok
        return self.connect_ok

    def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False

    def subscribe(self, topic):
        self.subscribed.append(topic)
        return True

    def add_message_handler(self, handler):
        self.handlers.append(handler)

    def send_message(self, topic, payload, retain=False, qos=None):
        if self.fail_all or topic in self.failing_topics:
            return False
        self.sent.append((topic, payload, retain))
        return True


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Maps (method, url) to (status, payload[, headers]) or an exception."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def _respond(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        entry = self.responses.get((method, url), (404, {}))
        if isinstance(entry, Exception):
            raise entry
        return FakeResponse(*entry)

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)
