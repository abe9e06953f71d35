# energy_super/models/prices.py
from dataclasses import dataclass


CHANNEL_GENERAL = "general"
CHANNEL_FEED_IN = "feedIn"
CHANNEL_CONTROLLED_LOAD = "controlledLoad"

INTERVAL_CURRENT = "CurrentInterval"
INTERVAL_FORECAST = "ForecastInterval"


@dataclass(frozen=True)
class PriceRecord:
    channel_kind: str
    interval_kind: str
    cents_per_kwh: float


@dataclass(frozen=True)
class PriceSet:
    current_buy: float
    current_sell: float
    current_controlled_load: float
    forecast_buy: float
    forecast_sell: float
    forecast_controlled_load: float
