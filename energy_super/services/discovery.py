# energy_super/services/discovery.py

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Callable, List, Tuple

from energy_super.config import MqttConfig
from energy_super.models.snapshot import Snapshot


AVAILABLE = "online"
UNAVAILABLE = "offline"


@dataclass(frozen=True)
class EntitySpec:
    name: str
    device_class: str
    unit: str
    min: float
    max: float
    step: float
    precision: int
    value: Callable[[Snapshot], float]


# Order matters: discovery and state publishing both walk this list.
ENTITIES: Tuple[EntitySpec, ...] = (
    EntitySpec("Battery Charge", "battery", "%", 0.0, 100.0, 0.01, 2, lambda s: s.battery_charge_percent),
    EntitySpec("Grid Power", "power", "kW", -1000.0, 1000.0, 0.001, 3, lambda s: s.grid_power_kw),
    EntitySpec("House Power", "power", "kW", -1000.0, 1000.0, 0.001, 3, lambda s: s.load_power_kw),
    EntitySpec("Solar Power", "power", "kW", -1000.0, 1000.0, 0.001, 3, lambda s: s.solar_power_kw),
    EntitySpec("Battery Power", "power", "kW", -1000.0, 1000.0, 0.001, 3, lambda s: s.battery_power_kw),
)


def compact(name: str) -> str:
    return "".join(name.split())


class TopicLayout:
    """Home Assistant MQTT topic names for one device."""

    def __init__(self, prefix: str, device_name: str):
        self.prefix = prefix.rstrip("/")
        self.device_name = device_name
        self.device_key = compact(device_name)

    @property
    def device_id(self) -> str:
        return f"{self.device_key}-id"

    @property
    def availability(self) -> str:
        return f"{self.prefix}/number/{self.device_key}/availability"

    def entity_base(self, entity: EntitySpec) -> str:
        return f"{self.prefix}/number/{self.device_key}/{compact(entity.name)}"

    def config(self, entity: EntitySpec) -> str:
        return f"{self.entity_base(entity)}/config"

    def state(self, entity: EntitySpec) -> str:
        return f"{self.entity_base(entity)}/state"

    def unique_id(self, entity: EntitySpec) -> str:
        return f"{self.device_key}{compact(entity.name)}-id"


@dataclass
class DiscoveryOutcome:
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return not self.failed

    @property
    def total_failure(self) -> bool:
        return not self.sent


class DiscoveryPublisher:
    """Announces the published entities using Home Assistant MQTT discovery."""

    def __init__(self, connection, mqtt_cfg: MqttConfig, log):
        self.connection = connection
        self.cfg = mqtt_cfg
        self.log = log

    # ------------------------------------------------------------------
    def build_payload(self, layout: TopicLayout, entity: EntitySpec) -> dict:
        state_topic = layout.state(entity)
        return {
            "name": entity.name,
            "unique_id": layout.unique_id(entity),
            "device": {
                "identifiers": [layout.device_id],
                "name": layout.device_name,
            },
            "availability": {
                "topic": layout.availability,
                "payload_available": AVAILABLE,
                "payload_not_available": UNAVAILABLE,
            },
            "device_class": entity.device_class,
            "command_topic": state_topic,
            "state_topic": state_topic,
            "unit_of_measurement": entity.unit,
            "min": entity.min,
            "max": entity.max,
            "step": entity.step,
            "mode": "box",
            "retain": self.cfg.discovery_retain,
        }

    def build_messages(self, device_name: str) -> List[Tuple[str, str]]:
        layout = TopicLayout(self.cfg.discovery_prefix, device_name)
        return [
            (layout.config(entity), json.dumps(self.build_payload(layout, entity)))
            for entity in ENTITIES
        ]

    # ------------------------------------------------------------------
    def publish_discovery_config(self, device_name: str) -> DiscoveryOutcome:
        outcome = DiscoveryOutcome()
        for topic, payload in self.build_messages(device_name):
            if self._send(topic, payload, retain=self.cfg.discovery_retain):
                self.log.info("Discovery config sent: %s", topic)
                outcome.sent.append(topic)
            else:
                self.log.error("Discovery config failed: %s", topic)
                outcome.failed.append(topic)

        availability = TopicLayout(self.cfg.discovery_prefix, device_name).availability
        if self._send(availability, AVAILABLE):
            self.log.info("Availability '%s' sent to %s", AVAILABLE, availability)
        else:
            self.log.error("Availability message failed: %s", availability)
            outcome.failed.append(availability)
        return outcome

    def _send(self, topic: str, payload: str, retain: bool = False) -> bool:
        try:
            return bool(self.connection.send_message(topic, payload, retain=retain))
        except Exception as exc:
            self.log.error("MQTT send to %s raised: %s", topic, exc)
            return False
