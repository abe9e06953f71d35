# energy_super/services/worker.py

from __future__ import annotations

import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from energy_super.config import AppConfig
from energy_super.logging import StructuredLog
from energy_super.models.snapshot import Snapshot
from energy_super.services.discovery import UNAVAILABLE, DiscoveryPublisher
from energy_super.services.errors import StartupError
from energy_super.services.pollers import BatteryPoller, PricePoller, SourcePoller
from energy_super.services.power_feed import PowerFeedHandler
from energy_super.services.state_publisher import StatePublisher


class WorkerState(Enum):
    BOOTSTRAPPING = "bootstrapping"
    CONNECTED = "connected"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EnergyWorker:
    """
    Single-threaded tick loop tying the pollers and publishers together.

    Startup: verify sources -> connect MQTT -> discovery -> subscribe.
    Each tick runs every due poller, then the state publisher if due.
    Shutdown: announce offline and disconnect, best effort.
    """

    def __init__(
        self,
        app_cfg: AppConfig,
        pricing_client,
        battery_client,
        connection,
        log,
        *,
        snapshot: Optional[Snapshot] = None,
        structured_log: Optional[StructuredLog] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.cfg = app_cfg
        self.pricing_client = pricing_client
        self.battery_client = battery_client
        self.connection = connection
        self.log = log
        self.clock = clock
        self.state = WorkerState.BOOTSTRAPPING

        self.snapshot = snapshot if snapshot is not None else Snapshot()

        self.price_poller = PricePoller(
            self.snapshot,
            pricing_client,
            app_cfg.amber.poll_interval_seconds,
            log,
            rate_limit_warning_threshold=app_cfg.amber.rate_limit_warning_threshold,
            structured_log=structured_log,
        )
        self.battery_poller = BatteryPoller(
            self.snapshot,
            battery_client,
            app_cfg.powerwall.poll_interval_seconds,
            log,
            structured_log=structured_log,
        )
        self.pollers: List[SourcePoller] = [self.price_poller, self.battery_poller]

        self.discovery = DiscoveryPublisher(connection, app_cfg.mqtt, log)
        self.publisher = StatePublisher(
            self.snapshot,
            connection,
            app_cfg.mqtt,
            app_cfg.publish.interval_seconds,
            log,
        )
        self.feed_handler = PowerFeedHandler(
            app_cfg.mqtt.power_feed_topic,
            app_cfg.mqtt.time_feed_topic,
            log,
        )

    # ------------------------------------------------------------------
    def verify_sources(self) -> None:
        if not self.pricing_client.check_connection():
            raise StartupError("Pricing API is not reachable")
        if not self.battery_client.check_connection():
            raise StartupError("Battery gateway is not reachable")

    def connect(self) -> None:
        if not self.connection.connect():
            raise StartupError(
                f"Could not connect to MQTT broker {self.cfg.mqtt.broker}:{self.cfg.mqtt.port}"
            )
        self.state = WorkerState.CONNECTED

        outcome = self.discovery.publish_discovery_config(self.cfg.mqtt.device_name)
        if outcome.total_failure:
            self._disconnect()
            raise StartupError("Could not send any discovery configuration messages")
        if not outcome.all_ok:
            self.log.warning("%d discovery messages failed; continuing", len(outcome.failed))

        self.connection.add_message_handler(self.feed_handler)
        for topic in self.feed_handler.topics():
            if not self.connection.subscribe(topic):
                self.log.error("Subscription to %s failed; inbound messages will be missed", topic)

    def start(self) -> None:
        self.log.info("Energy worker starting")
        self.verify_sources()
        self.connect()
        self.state = WorkerState.RUNNING
        self.log.info("Energy worker running")

    # ------------------------------------------------------------------
    def tick(self, now: Optional[datetime] = None) -> None:
        now = now or self.clock()
        for poller in self.pollers:
            poller.maybe_poll(now)
        self.publisher.maybe_publish(now)

    def run(self, stop_event: threading.Event) -> None:
        self.start()
        try:
            while not stop_event.is_set():
                self.tick()
                stop_event.wait(self.cfg.publish.tick_seconds)
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        if self.state is WorkerState.STOPPED:
            return
        self.state = WorkerState.DRAINING
        self.log.info("Energy worker stopping")
        try:
            self.connection.send_message(self.publisher.layout.availability, UNAVAILABLE)
        except Exception as exc:
            self.log.error("Could not announce offline state: %s", exc)
        self._disconnect()
        self.state = WorkerState.STOPPED
        self.log.info("Energy worker stopped")

    def _disconnect(self) -> None:
        try:
            self.connection.disconnect()
        except Exception as exc:
            self.log.error("MQTT disconnect failed: %s", exc)
