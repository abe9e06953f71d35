# energy_super/cli.py
import argparse

def build_parser():
    parser = argparse.ArgumentParser(
        prog="energy-super",
        description="Amber / Powerwall to Home Assistant MQTT bridge"
    )

    parser.add_argument(
        "--config",
        default="energy_super.conf",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress console log output"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of human-readable text (check command)"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # Long-running bridge
    sub.add_parser("run", help="Poll sources and publish to MQTT until stopped")

    # Diagnostics
    sub.add_parser(
        "check",
        help="Verify both sources, poll each once and print the snapshot",
    )

    # Discovery only
    sub.add_parser(
        "discovery",
        help="Publish Home Assistant discovery config once and exit",
    )

    return parser
