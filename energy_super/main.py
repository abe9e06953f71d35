# energy_super/main.py

import configparser
import logging
import signal
import sys
import threading

from .cli import build_parser
from .config import Config
from .logging import ConsoleLog, StructuredLog

from .models.snapshot import Snapshot
from .services.amber_client import AmberClient
from .services.discovery import DiscoveryPublisher
from .services.errors import StartupError
from .services.mqtt_connection import MqttConnection
from .services.output_formatter import emit_human, emit_json
from .services.pollers import BatteryPoller, PricePoller
from .services.powerwall_client import PowerwallClient
from .services.worker import EnergyWorker, utc_now


def run_check(app_cfg, pricing, battery, log, as_json: bool) -> int:
    """Diagnostic one-shot: no MQTT, one poll per source into a fresh snapshot."""
    ok = True
    if not pricing.check_connection():
        log.error("Pricing API check failed")
        ok = False
    if not battery.check_connection():
        log.error("Battery gateway check failed")
        ok = False

    snapshot = Snapshot()
    now = utc_now()
    PricePoller(snapshot, pricing, app_cfg.amber.poll_interval_seconds, log).maybe_poll(now)
    battery_poller = BatteryPoller(snapshot, battery, app_cfg.powerwall.poll_interval_seconds, log)
    battery_poller.maybe_poll(now)

    if as_json:
        emit_json(snapshot, battery_poller.seconds_to_full)
    else:
        emit_human(snapshot, battery_poller.seconds_to_full)
    return 0 if ok else 1


def run_discovery(app_cfg, connection, log) -> int:
    if not connection.connect():
        log.critical("Could not connect to MQTT broker %s:%s", app_cfg.mqtt.broker, app_cfg.mqtt.port)
        return 1
    try:
        outcome = DiscoveryPublisher(connection, app_cfg.mqtt, log).publish_discovery_config(
            app_cfg.mqtt.device_name
        )
    finally:
        connection.disconnect()
    if outcome.total_failure:
        log.critical("No discovery configuration messages could be sent")
        return 1
    log.info("Discovery complete: %d sent, %d failed", len(outcome.sent), len(outcome.failed))
    return 0


def run_bridge(worker: EnergyWorker, log) -> int:
    stop = threading.Event()

    def _request_stop(signum, frame):
        log.info("Received signal %s; shutting down", signum)
        stop.set()

    previous = {
        sig: signal.signal(sig, _request_stop) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        worker.run(stop)
    except StartupError as exc:
        log.critical("Startup failed: %s", exc)
        return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_cfg = Config.load(args.config)
    except (FileNotFoundError, ValueError, configparser.Error) as exc:
        log = ConsoleLog(level="DEBUG" if args.debug else "INFO", quiet=args.quiet).setup()
        log.critical("Configuration error: %s", exc)
        return 1

    console_logger = ConsoleLog(
        level="DEBUG" if args.debug else app_cfg.logging.console_level,
        quiet=args.quiet or app_cfg.logging.console_quiet,
        debug_modules=app_cfg.logging.debug_modules,
    )
    log = console_logger.setup()
    structured_logger = StructuredLog(
        app_cfg.logging.structured_path,
        app_cfg.logging.structured_enabled,
    )
    if not args.debug:
        logging.getLogger("urllib3").setLevel(logging.WARNING)

    pricing = AmberClient(app_cfg.amber, log)
    battery = PowerwallClient(app_cfg.powerwall, log)

    if args.command == "check":
        return run_check(app_cfg, pricing, battery, log, args.json)

    connection = MqttConnection(app_cfg.mqtt, log)

    if args.command == "discovery":
        return run_discovery(app_cfg, connection, log)
    if args.command == "run":
        worker = EnergyWorker(
            app_cfg,
            pricing,
            battery,
            connection,
            log,
            structured_log=structured_logger,
        )
        return run_bridge(worker, log)

    raise ValueError(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    sys.exit(main())
