# energy_super/config.py
from dataclasses import dataclass, field
from pathlib import Path
import configparser


@dataclass
class MqttConfig:
    broker: str
    device_name: str
    port: int = 1883
    username: str | None = None
    password: str | None = None
    power_feed_topic: str | None = None
    time_feed_topic: str | None = None
    discovery_prefix: str = "homeassistant"
    discovery_retain: bool = True
    qos: int = 1
    keepalive: int = 30
    connect_timeout: float = 10.0


@dataclass
class AmberConfig:
    token: str
    site_id: str
    url: str = "https://api.amber.com.au/v1"
    poll_interval_seconds: int = 60
    timeout: float = 5.0
    rate_limit_warning_threshold: int = 5


@dataclass
class PowerwallConfig:
    url: str
    email: str
    password: str
    poll_interval_seconds: int = 60
    timeout: float = 5.0
    verify_ssl: bool = False


@dataclass
class PublishConfig:
    interval_seconds: int = 10
    tick_seconds: float = 1.0


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None


@dataclass
class AppConfig:
    mqtt: MqttConfig
    amber: AmberConfig
    powerwall: PowerwallConfig
    publish: PublishConfig
    logging: LoggingConfig


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",))
        read = self.parser.read(self.path)
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        cfg = cls(path)

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _required(section: str, key: str) -> str:
            if section not in p:
                raise ValueError(f"[{section}] section missing from config")
            raw = p[section].get(key, "").strip()
            if not raw:
                raise ValueError(f"Missing required setting '{key}' in [{section}]")
            return raw

        def _optional(sec, key: str) -> str | None:
            raw = sec.get(key)
            if raw is None:
                return None
            raw = raw.strip()
            return raw or None

        def _interval(sec, key: str, section: str) -> int:
            value = int(sec[key])
            if value <= 0:
                raise ValueError(f"[{section}] {key} must be a positive number of seconds")
            return value

        # --- MQTT ---
        mqtt_kwargs = {
            "broker": _required("mqtt", "broker"),
            "device_name": _required("mqtt", "device_name"),
        }
        mqtt_sec = p["mqtt"]
        if "port" in mqtt_sec:
            mqtt_kwargs["port"] = int(mqtt_sec["port"])
        for key in ("username", "password", "power_feed_topic", "time_feed_topic"):
            if (value := _optional(mqtt_sec, key)) is not None:
                mqtt_kwargs[key] = value
        if "discovery_prefix" in mqtt_sec:
            mqtt_kwargs["discovery_prefix"] = mqtt_sec["discovery_prefix"].strip().rstrip("/")
        if "discovery_retain" in mqtt_sec:
            mqtt_kwargs["discovery_retain"] = _as_bool(mqtt_sec["discovery_retain"])
        if "qos" in mqtt_sec:
            qos = int(mqtt_sec["qos"])
            if qos not in (0, 1, 2):
                raise ValueError("[mqtt] qos must be 0, 1 or 2")
            mqtt_kwargs["qos"] = qos
        if "keepalive" in mqtt_sec:
            mqtt_kwargs["keepalive"] = int(mqtt_sec["keepalive"])
        if "connect_timeout" in mqtt_sec:
            mqtt_kwargs["connect_timeout"] = float(mqtt_sec["connect_timeout"])
        mqtt = MqttConfig(**mqtt_kwargs)

        # --- Amber ---
        amber_kwargs = {
            "token": _required("amber", "token"),
            "site_id": _required("amber", "site_id"),
        }
        amber_sec = p["amber"]
        if "url" in amber_sec:
            amber_kwargs["url"] = amber_sec["url"].strip()
        if "poll_interval_seconds" in amber_sec:
            amber_kwargs["poll_interval_seconds"] = _interval(amber_sec, "poll_interval_seconds", "amber")
        if "timeout" in amber_sec:
            amber_kwargs["timeout"] = float(amber_sec["timeout"])
        if "rate_limit_warning_threshold" in amber_sec:
            amber_kwargs["rate_limit_warning_threshold"] = int(amber_sec["rate_limit_warning_threshold"])
        amber = AmberConfig(**amber_kwargs)

        # --- Powerwall ---
        powerwall_kwargs = {
            "url": _required("powerwall", "url"),
            "email": _required("powerwall", "email"),
            "password": _required("powerwall", "password"),
        }
        pw_sec = p["powerwall"]
        if "poll_interval_seconds" in pw_sec:
            powerwall_kwargs["poll_interval_seconds"] = _interval(pw_sec, "poll_interval_seconds", "powerwall")
        if "timeout" in pw_sec:
            powerwall_kwargs["timeout"] = float(pw_sec["timeout"])
        if "verify_ssl" in pw_sec:
            powerwall_kwargs["verify_ssl"] = _as_bool(pw_sec["verify_ssl"])
        powerwall = PowerwallConfig(**powerwall_kwargs)

        # --- Publish ---
        publish_kwargs = {}
        if "publish" in p:
            publish_sec = p["publish"]
            if "interval_seconds" in publish_sec:
                publish_kwargs["interval_seconds"] = _interval(publish_sec, "interval_seconds", "publish")
            if "tick_seconds" in publish_sec:
                tick = float(publish_sec["tick_seconds"])
                if tick <= 0:
                    raise ValueError("[publish] tick_seconds must be positive")
                publish_kwargs["tick_seconds"] = tick
        publish = PublishConfig(**publish_kwargs)

        logging_kwargs = {}
        if "logging" in p:
            logging_sec = p["logging"]
            if "console_level" in logging_sec:
                logging_kwargs["console_level"] = logging_sec["console_level"]
            if "console_quiet" in logging_sec:
                logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
            if "debug_modules" in logging_sec:
                raw = logging_sec["debug_modules"]
                logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
            if "structured_enabled" in logging_sec:
                logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
            if "structured_path" in logging_sec:
                logging_kwargs["structured_path"] = logging_sec["structured_path"]
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            mqtt=mqtt,
            amber=amber,
            powerwall=powerwall,
            publish=publish,
            logging=logging_cfg,
        )
