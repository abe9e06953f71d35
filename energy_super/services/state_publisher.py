# energy_super/services/state_publisher.py

from __future__ import annotations

from datetime import datetime

from energy_super.config import MqttConfig
from energy_super.models.snapshot import Snapshot
from energy_super.services.discovery import AVAILABLE, ENTITIES, TopicLayout
from energy_super.services.pollers import PollerState


class StatePublisher:
    """Pushes the snapshot's published values to MQTT on its own cadence."""

    def __init__(self, snapshot: Snapshot, connection, mqtt_cfg: MqttConfig, interval_seconds: int, log):
        self.snapshot = snapshot
        self.connection = connection
        self.layout = TopicLayout(mqtt_cfg.discovery_prefix, mqtt_cfg.device_name)
        self.state = PollerState(interval_seconds=interval_seconds)
        self.log = log

    def format_values(self) -> list[tuple[str, str]]:
        return [
            (self.layout.state(entity), f"{entity.value(self.snapshot):.{entity.precision}f}")
            for entity in ENTITIES
        ]

    def maybe_publish(self, now: datetime) -> bool:
        if not self.state.is_due(now):
            return False
        self.state.last_poll_time = now

        self._send(self.layout.availability, AVAILABLE)
        failures = 0
        for topic, payload in self.format_values():
            if not self._send(topic, payload):
                failures += 1
        if failures:
            self.log.error("%d of %d state values failed to publish", failures, len(ENTITIES))
        else:
            self.log.debug("Published %d state values", len(ENTITIES))
        return True

    def _send(self, topic: str, payload: str) -> bool:
        try:
            ok = self.connection.send_message(topic, payload)
        except Exception as exc:
            self.log.error("MQTT send to %s raised: %s", topic, exc)
            return False
        if not ok:
            self.log.error("MQTT send to %s failed", topic)
        return bool(ok)
