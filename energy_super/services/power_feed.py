# energy_super/services/power_feed.py

from __future__ import annotations

import json
from typing import Any, List, Optional

from energy_super.models.power import FeedValue, PowerFeedMessage


def _feed_values(raw: Any) -> List[FeedValue]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("expected a list of name/units/value records")
    values: List[FeedValue] = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValueError("feed record is not an object")
        values.append(
            FeedValue(
                name=str(entry.get("name", "")),
                units=str(entry.get("units", "")),
                value=float(entry["value"]),
            )
        )
    return values


def parse_power_feed(payload: str) -> PowerFeedMessage:
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("power feed payload is not a JSON object")
    return PowerFeedMessage(
        battery_level=float(data.get("batteryLevel", 0.0)),
        current_prices=_feed_values(data.get("currentPrices")),
        forecast_prices=_feed_values(data.get("forecastPrices")),
        power_values=_feed_values(data.get("powerValues")),
    )


class PowerFeedHandler:
    """Receives inbound MQTT messages; never raises back into the client."""

    def __init__(self, power_feed_topic: Optional[str], time_feed_topic: Optional[str], log):
        self.power_feed_topic = power_feed_topic
        self.time_feed_topic = time_feed_topic
        self.log = log
        self.latest: Optional[PowerFeedMessage] = None

    def topics(self) -> List[str]:
        return [t for t in (self.power_feed_topic, self.time_feed_topic) if t]

    def __call__(self, topic: str, payload: str) -> None:
        if self.time_feed_topic and topic == self.time_feed_topic:
            self.log.debug("Time feed message received: %s", payload)
            return

        if not self.power_feed_topic or topic != self.power_feed_topic:
            self.log.debug("Ignoring message on unexpected topic %s", topic)
            return

        try:
            message = parse_power_feed(payload)
        except (ValueError, TypeError, KeyError) as exc:
            self.log.error("Exception decoding MQTT power message: %s", exc)
            return

        self.latest = message
        self.log.debug("Power feed message received; battery level %.1f%%", message.battery_level)
