from __future__ import annotations

import threading
import uuid
from typing import Callable, List, Optional

import paho.mqtt.client as mqtt

from energy_super.config import MqttConfig


MessageHandler = Callable[[str, str], None]


class MqttConnection:
    """
    paho-mqtt wrapper exposing a small result-based API.

    Methods return True/False instead of raising so callers can decide
    whether a failure is fatal.
    """

    def __init__(self, cfg: MqttConfig, log, client: Optional[mqtt.Client] = None):
        self.cfg = cfg
        self.log = log
        self._handlers: List[MessageHandler] = []
        self._connected = threading.Event()
        self._connect_reason: str | None = None

        if client is None:
            client = mqtt.Client(
                mqtt.CallbackAPIVersion.VERSION2,
                client_id=str(uuid.uuid4()),
                clean_session=True,
            )
            if cfg.username:
                client.username_pw_set(cfg.username, cfg.password or "")
        self.client = client
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    # ------------------------------------------------------------------
    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def add_message_handler(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    # ------------------------------------------------------------------
    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._connect_reason = str(reason_code)
            self.log.error("MQTT broker refused connection: %s", reason_code)
            return
        self._connect_reason = None
        self._connected.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected.clear()
        self.log.info("MQTT disconnected (%s)", reason_code)

    def _on_message(self, client, userdata, message):
        topic = message.topic
        payload = message.payload.decode("utf-8", errors="replace")
        for handler in list(self._handlers):
            try:
                handler(topic, payload)
            except Exception as exc:
                self.log.error("MQTT handler failed for topic %s: %s", topic, exc)

    # ------------------------------------------------------------------
    def connect(self) -> bool:
        try:
            self.client.connect(self.cfg.broker, self.cfg.port, keepalive=self.cfg.keepalive)
        except (OSError, ValueError) as exc:
            self.log.error("MQTT connect to %s:%s failed: %s", self.cfg.broker, self.cfg.port, exc)
            return False

        self.client.loop_start()
        if not self._connected.wait(self.cfg.connect_timeout):
            self.log.error(
                "MQTT broker %s:%s did not accept the connection (%s)",
                self.cfg.broker,
                self.cfg.port,
                self._connect_reason or "timed out",
            )
            self.client.loop_stop()
            return False

        self.log.info("Connected to MQTT at %s:%s", self.cfg.broker, self.cfg.port)
        return True

    def disconnect(self) -> None:
        try:
            self.client.disconnect()
        finally:
            self.client.loop_stop()

    def subscribe(self, topic: str) -> bool:
        try:
            result, _mid = self.client.subscribe(topic, qos=self.cfg.qos)
        except ValueError as exc:
            self.log.error("MQTT subscribe to '%s' rejected: %s", topic, exc)
            return False
        if result != mqtt.MQTT_ERR_SUCCESS:
            self.log.error("MQTT subscribe to '%s' failed: %s", topic, mqtt.error_string(result))
            return False
        self.log.info("Subscribed to %s", topic)
        return True

    def send_message(self, topic: str, payload: str, retain: bool = False, qos: int | None = None) -> bool:
        qos = self.cfg.qos if qos is None else qos
        try:
            info = self.client.publish(topic, payload, qos=qos, retain=retain)
        except ValueError as exc:
            self.log.error("MQTT publish to %s rejected: %s", topic, exc)
            return False
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.log.error("MQTT transmit failure on %s: %s", topic, mqtt.error_string(info.rc))
            return False
        return True
