# energy_super/services/output_formatter.py

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

from energy_super.models.snapshot import NEVER, Snapshot


def _timestamp(value) -> Optional[str]:
    if value is None or value == NEVER:
        return None
    return value.isoformat()


def snapshot_to_dict(snapshot: Snapshot, seconds_to_full: float | None = None) -> dict:
    payload = asdict(snapshot)
    payload["last_power_update"] = _timestamp(snapshot.last_power_update)
    payload["last_price_update"] = _timestamp(snapshot.last_price_update)
    payload["seconds_to_full"] = seconds_to_full
    return payload


def emit_json(snapshot: Snapshot, seconds_to_full: float | None = None) -> None:
    print(json.dumps(snapshot_to_dict(snapshot, seconds_to_full), indent=2))


def emit_human(snapshot: Snapshot, seconds_to_full: float | None = None) -> None:
    power_ts = _timestamp(snapshot.last_power_update) or "never"
    price_ts = _timestamp(snapshot.last_price_update) or "never"

    print(f"Power (updated {power_ts})")
    print(f"  House:   {snapshot.load_power_kw:8.3f} kW")
    print(f"  Solar:   {snapshot.solar_power_kw:8.3f} kW")
    print(f"  Battery: {snapshot.battery_power_kw:8.3f} kW")
    print(f"  Grid:    {snapshot.grid_power_kw:8.3f} kW")
    print(f"  Charge:  {snapshot.battery_charge_percent:8.2f} %")
    if seconds_to_full is not None:
        print(f"  Full in: {seconds_to_full / 60.0:8.0f} min")

    print(f"Prices (updated {price_ts})")
    print(f"  {'':16}{'current':>10}{'forecast':>10}")
    print(f"  {'Buy':16}{snapshot.current_price_buy:10.2f}{snapshot.forecast_price_buy:10.2f}")
    print(f"  {'Sell':16}{snapshot.current_price_sell:10.2f}{snapshot.forecast_price_sell:10.2f}")
    print(
        f"  {'Controlled load':16}"
        f"{snapshot.current_price_controlled_load:10.2f}"
        f"{snapshot.forecast_price_controlled_load:10.2f}"
    )
