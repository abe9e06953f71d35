# energy_super/models/snapshot.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from energy_super.models.power import PowerReading
from energy_super.models.prices import PriceSet


# Timestamp used for "never updated".
NEVER = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class Snapshot:
    """
    Current household energy state shared by the pollers and the publisher.

    Two field groups exist: power (written by the battery poller) and prices
    (written by the price poller). Each group is only ever replaced as a
    whole through apply_power / apply_prices.
    """

    last_power_update: datetime = NEVER
    load_power_kw: float = 0.0
    solar_power_kw: float = 0.0
    battery_power_kw: float = 0.0
    grid_power_kw: float = 0.0
    battery_charge_percent: float = 0.0

    last_price_update: datetime = NEVER
    current_price_buy: float = 0.0
    current_price_sell: float = 0.0
    current_price_controlled_load: float = 0.0
    forecast_price_buy: float = 0.0
    forecast_price_sell: float = 0.0
    forecast_price_controlled_load: float = 0.0

    # ------------------------------------------------------------------
    def power(self) -> PowerReading:
        return PowerReading(
            load_kw=self.load_power_kw,
            solar_kw=self.solar_power_kw,
            battery_kw=self.battery_power_kw,
            grid_kw=self.grid_power_kw,
            charge_percent=self.battery_charge_percent,
        )

    def prices(self) -> PriceSet:
        return PriceSet(
            current_buy=self.current_price_buy,
            current_sell=self.current_price_sell,
            current_controlled_load=self.current_price_controlled_load,
            forecast_buy=self.forecast_price_buy,
            forecast_sell=self.forecast_price_sell,
            forecast_controlled_load=self.forecast_price_controlled_load,
        )

    # ------------------------------------------------------------------
    def apply_power(self, reading: PowerReading, at: datetime) -> None:
        self.load_power_kw = reading.load_kw
        self.solar_power_kw = reading.solar_kw
        self.battery_power_kw = reading.battery_kw
        self.grid_power_kw = reading.grid_kw
        self.battery_charge_percent = reading.charge_percent
        self.last_power_update = at

    def apply_prices(self, prices: PriceSet, at: datetime) -> None:
        self.current_price_buy = prices.current_buy
        self.current_price_sell = prices.current_sell
        self.current_price_controlled_load = prices.current_controlled_load
        self.forecast_price_buy = prices.forecast_buy
        self.forecast_price_sell = prices.forecast_sell
        self.forecast_price_controlled_load = prices.forecast_controlled_load
        self.last_price_update = at
