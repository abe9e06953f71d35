# energy_super/services/pollers.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from energy_super.logging import PollLogEntry, StructuredLog
from energy_super.models.power import PowerReading
from energy_super.models.prices import (
    CHANNEL_CONTROLLED_LOAD,
    CHANNEL_FEED_IN,
    CHANNEL_GENERAL,
    INTERVAL_CURRENT,
    INTERVAL_FORECAST,
    PriceRecord,
    PriceSet,
)
from energy_super.models.snapshot import Snapshot
from energy_super.services.errors import UpstreamError


# A charge-rate baseline older than this is not used for extrapolation.
CHARGE_ESTIMATE_MAX_AGE_SECONDS = 300.0
FULL_CHARGE_PERCENT = 99.99


@dataclass
class PollerState:
    interval_seconds: int
    last_poll_time: Optional[datetime] = None   # None means never polled

    def is_due(self, now: datetime) -> bool:
        if self.last_poll_time is None:
            return True
        return (now - self.last_poll_time).total_seconds() >= self.interval_seconds


# ============================================================================
# Pure merge helpers
# ============================================================================

_CHANNEL_FIELDS = {
    CHANNEL_GENERAL: "buy",
    CHANNEL_FEED_IN: "sell",
    CHANNEL_CONTROLLED_LOAD: "controlled_load",
}

_INTERVAL_PREFIX = {
    INTERVAL_CURRENT: "current",
    INTERVAL_FORECAST: "forecast",
}


def merge_price_records(previous: PriceSet, records: Iterable[PriceRecord], log) -> PriceSet:
    """
    Apply price records on top of the previous price group.

    Unknown channel kinds are logged as errors and skipped. Records with an
    interval kind other than current/forecast are ignored without comment.
    """
    values = asdict(previous)
    for record in records:
        suffix = _CHANNEL_FIELDS.get(record.channel_kind)
        if suffix is None:
            log.error("Unknown price channel type '%s'; record skipped", record.channel_kind)
            continue
        prefix = _INTERVAL_PREFIX.get(record.interval_kind)
        if prefix is None:
            continue
        values[f"{prefix}_{suffix}"] = float(record.cents_per_kwh)
    return PriceSet(**values)


def estimate_seconds_to_full(
    previous_percent: float,
    previous_update: datetime,
    new_percent: float,
    battery_power_kw: float,
    now: datetime,
) -> Optional[float]:
    """
    Seconds until the battery reaches 100% at the observed charge rate.

    Returns None when the battery is full, not charging, the baseline is
    stale, or the observed rate is not positive.
    """
    if new_percent >= FULL_CHARGE_PERCENT or battery_power_kw >= 0:
        return None

    elapsed = (now - previous_update).total_seconds()
    if elapsed <= 0 or elapsed >= CHARGE_ESTIMATE_MAX_AGE_SECONDS:
        return None

    percent_per_second = (new_percent - previous_percent) / elapsed
    if percent_per_second <= 0:
        return None
    return (100.0 - new_percent) / percent_per_second


# ============================================================================
# Pollers
# ============================================================================

class SourcePoller:
    """
    Interval-gated refresh of one snapshot field group from one upstream.

    Subclasses implement fetch() (may block on the network) and merge()
    (writes the whole field group and returns the values for logging).
    """

    source = "source"

    def __init__(
        self,
        snapshot: Snapshot,
        interval_seconds: int,
        log,
        structured_log: StructuredLog | None = None,
    ):
        self.snapshot = snapshot
        self.state = PollerState(interval_seconds=interval_seconds)
        self.log = log
        self.structured_log = structured_log

    # ------------------------------------------------------------------
    def fetch(self) -> Any:
        raise NotImplementedError

    def merge(self, result: Any, now: datetime) -> Dict[str, Any]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    def maybe_poll(self, now: datetime) -> bool:
        """Poll if due. Returns True when an attempt was made."""
        if not self.state.is_due(now):
            return False

        # Stamp before the call so a failing source waits a full interval.
        self.state.last_poll_time = now

        try:
            result = self.fetch()
            if not result:
                raise UpstreamError("empty result")
            values = self.merge(result, now)
        except Exception as exc:
            self.log.error("%s poll failed: %s", self.source, exc)
            self._record(now, success=False, error=str(exc))
            return True

        self._record(now, success=True, values=values)
        return True

    def _record(self, now: datetime, *, success: bool, error: str | None = None, values=None) -> None:
        if self.structured_log is None:
            return
        self.structured_log.write(
            PollLogEntry(
                timestamp=now.isoformat(),
                source=self.source,
                success=success,
                error=error,
                values=values,
            )
        )


class PricePoller(SourcePoller):
    source = "prices"

    def __init__(
        self,
        snapshot: Snapshot,
        client,
        interval_seconds: int,
        log,
        *,
        rate_limit_warning_threshold: int = 0,
        structured_log: StructuredLog | None = None,
    ):
        super().__init__(snapshot, interval_seconds, log, structured_log)
        self.client = client
        self.rate_limit_warning_threshold = rate_limit_warning_threshold

    def fetch(self):
        records = self.client.get_current_prices()
        remaining = getattr(self.client, "rate_limit_remaining", None)
        if remaining is not None and remaining < self.rate_limit_warning_threshold:
            self.log.warning("Amber API rate limit nearly exhausted: %s requests remaining", remaining)
        return records

    def merge(self, result, now: datetime) -> Dict[str, Any]:
        prices = merge_price_records(self.snapshot.prices(), result, self.log)
        self.snapshot.apply_prices(prices, now)
        self.log.info(
            "Prices c/kWh: buy %.2f (next %.2f), sell %.2f (next %.2f), controlled load %.2f (next %.2f)",
            prices.current_buy,
            prices.forecast_buy,
            prices.current_sell,
            prices.forecast_sell,
            prices.current_controlled_load,
            prices.forecast_controlled_load,
        )
        return asdict(prices)


class BatteryPoller(SourcePoller):
    source = "battery"

    def __init__(
        self,
        snapshot: Snapshot,
        client,
        interval_seconds: int,
        log,
        *,
        structured_log: StructuredLog | None = None,
    ):
        super().__init__(snapshot, interval_seconds, log, structured_log)
        self.client = client
        self.seconds_to_full: Optional[float] = None

    def fetch(self) -> PowerReading:
        return self.client.read_power()

    def merge(self, result: PowerReading, now: datetime) -> Dict[str, Any]:
        self.seconds_to_full = estimate_seconds_to_full(
            previous_percent=self.snapshot.battery_charge_percent,
            previous_update=self.snapshot.last_power_update,
            new_percent=result.charge_percent,
            battery_power_kw=result.battery_kw,
            now=now,
        )
        self.snapshot.apply_power(result, now)

        self.log.info(
            "Power kW: house %.3f, solar %.3f, battery %.3f, grid %.3f; charge %.2f%%",
            result.load_kw,
            result.solar_kw,
            result.battery_kw,
            result.grid_kw,
            result.charge_percent,
        )
        if self.seconds_to_full is not None:
            self.log.info("Battery full in about %.0f minutes", self.seconds_to_full / 60.0)

        values = asdict(result)
        values["seconds_to_full"] = self.seconds_to_full
        return values
