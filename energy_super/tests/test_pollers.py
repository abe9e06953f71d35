# energy_super/tests/test_pollers.py

import json
import logging
from dataclasses import asdict
from datetime import datetime, timedelta, timezone

import pytest

from energy_super.logging import StructuredLog, get_logger
from energy_super.models.power import PowerReading
from energy_super.models.prices import PriceRecord, PriceSet
from energy_super.models.snapshot import NEVER, Snapshot
from energy_super.services.errors import PricingError
from energy_super.services.pollers import (
    BatteryPoller,
    PollerState,
    PricePoller,
    merge_price_records,
)
from energy_super.tests.fakes import FakeBatteryClient, FakePricingClient


LOG = get_logger("pollers-test")
T0 = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _seeded_snapshot() -> Snapshot:
    snap = Snapshot()
    snap.apply_prices(
        PriceSet(
            current_buy=1.0,
            current_sell=2.0,
            current_controlled_load=3.0,
            forecast_buy=4.0,
            forecast_sell=5.0,
            forecast_controlled_load=6.0,
        ),
        T0 - timedelta(minutes=10),
    )
    snap.apply_power(
        PowerReading(load_kw=1.0, solar_kw=2.0, battery_kw=3.0, grid_kw=4.0, charge_percent=50.0),
        T0 - timedelta(minutes=10),
    )
    return snap


# ---------------------------------------------------------------------------
# Due-check
# ---------------------------------------------------------------------------

def test_never_polled_state_is_due():
    assert PollerState(interval_seconds=60).is_due(T0)


def test_due_boundary_is_inclusive():
    state = PollerState(interval_seconds=60, last_poll_time=T0)
    assert not state.is_due(T0 + timedelta(seconds=59.999))
    assert state.is_due(T0 + timedelta(seconds=60))


def test_not_due_poll_is_a_noop():
    snap = _seeded_snapshot()
    before = asdict(snap)
    client = FakePricingClient()
    poller = PricePoller(snap, client, 60, LOG)
    poller.state.last_poll_time = T0

    for offset in (0, 1, 30, 59):
        assert poller.maybe_poll(T0 + timedelta(seconds=offset)) is False

    assert client.calls == 0
    assert asdict(snap) == before
    assert poller.state.last_poll_time == T0


def test_poll_time_is_stamped_even_when_call_fails():
    client = FakePricingClient(error=PricingError("boom"))
    poller = PricePoller(Snapshot(), client, 60, LOG)

    assert poller.maybe_poll(T0) is True
    assert poller.state.last_poll_time == T0
    # No immediate retry on the next tick.
    assert poller.maybe_poll(T0 + timedelta(seconds=1)) is False
    assert client.calls == 1


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "client",
    [
        FakePricingClient(error=PricingError("network down")),
        FakePricingClient(error=ValueError("malformed")),
        FakePricingClient(records=[]),
    ],
)
def test_failed_price_poll_leaves_snapshot_untouched(client, caplog):
    caplog.set_level(logging.DEBUG)
    snap = _seeded_snapshot()
    before = asdict(snap)

    PricePoller(snap, client, 60, LOG).maybe_poll(T0)

    assert asdict(snap) == before
    assert any(r.levelno == logging.ERROR and "prices poll failed" in r.getMessage() for r in caplog.records)


def test_failed_battery_poll_leaves_snapshot_untouched():
    snap = _seeded_snapshot()
    before = asdict(snap)

    poller = BatteryPoller(snap, FakeBatteryClient(error=RuntimeError("login refused")), 30, LOG)
    assert poller.maybe_poll(T0) is True

    assert asdict(snap) == before
    assert poller.seconds_to_full is None


def test_battery_poll_replaces_power_group_only():
    snap = _seeded_snapshot()
    prices_before = snap.prices()
    reading = PowerReading(load_kw=0.8, solar_kw=5.1, battery_kw=-3.2, grid_kw=-1.1, charge_percent=61.5)

    BatteryPoller(snap, FakeBatteryClient(readings=[reading]), 30, LOG).maybe_poll(T0)

    assert snap.power() == reading
    assert snap.last_power_update == T0
    assert snap.prices() == prices_before


# ---------------------------------------------------------------------------
# Price merge
# ---------------------------------------------------------------------------

def test_price_merge_example(caplog):
    caplog.set_level(logging.DEBUG)
    snap = _seeded_snapshot()
    records = [
        PriceRecord("general", "CurrentInterval", 25.0),
        PriceRecord("feedIn", "CurrentInterval", -3.0),
        PriceRecord("controlledLoad", "ForecastInterval", 20.0),
        PriceRecord("unknown", "CurrentInterval", 0.0),
    ]

    PricePoller(snap, FakePricingClient(records=records), 60, LOG).maybe_poll(T0)

    assert snap.current_price_buy == 25.0
    assert snap.current_price_sell == -3.0
    assert snap.forecast_price_controlled_load == 20.0
    assert snap.forecast_price_buy == 4.0
    assert snap.forecast_price_sell == 5.0
    assert snap.current_price_controlled_load == 3.0
    assert snap.last_price_update == T0

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "unknown" in errors[0].getMessage()


def test_unknown_interval_kind_is_silently_ignored(caplog):
    caplog.set_level(logging.DEBUG)
    previous = _seeded_snapshot().prices()

    merged = merge_price_records(
        previous,
        [PriceRecord("general", "ActualInterval", 99.0)],
        LOG,
    )

    assert merged == previous
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_rate_limit_warning_below_threshold(caplog):
    caplog.set_level(logging.DEBUG)
    client = FakePricingClient()
    client.rate_limit_remaining = 2

    PricePoller(Snapshot(), client, 60, LOG, rate_limit_warning_threshold=5).maybe_poll(T0)

    assert any(
        r.levelno == logging.WARNING and "rate limit" in r.getMessage() for r in caplog.records
    )


# ---------------------------------------------------------------------------
# Structured log
# ---------------------------------------------------------------------------

def test_poll_attempts_written_to_structured_log(tmp_path):
    path = tmp_path / "polls.jsonl"
    structured = StructuredLog(str(path), enabled=True)
    snap = Snapshot()

    PricePoller(snap, FakePricingClient(), 60, LOG, structured_log=structured).maybe_poll(T0)
    BatteryPoller(
        snap, FakeBatteryClient(error=RuntimeError("offline")), 30, LOG, structured_log=structured
    ).maybe_poll(T0)

    lines = [json.loads(line) for line in path.read_text().splitlines()]
    assert [(e["source"], e["success"]) for e in lines] == [("prices", True), ("battery", False)]
    assert lines[0]["values"]["current_buy"] == 25.0
    assert lines[1]["error"] == "offline"


def test_fresh_snapshot_defaults():
    snap = Snapshot()
    assert snap.last_power_update == NEVER
    assert snap.last_price_update == NEVER
    assert snap.battery_charge_percent == 0.0
    assert snap.forecast_price_controlled_load == 0.0
