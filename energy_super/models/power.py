# energy_super/models/power.py
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PowerReading:
    load_kw: float
    solar_kw: float
    battery_kw: float         # negative while charging
    grid_kw: float            # negative while exporting
    charge_percent: float


@dataclass
class FeedValue:
    name: str
    units: str
    value: float


@dataclass
class PowerFeedMessage:
    battery_level: float
    current_prices: list[FeedValue] = field(default_factory=list)
    forecast_prices: list[FeedValue] = field(default_factory=list)
    power_values: list[FeedValue] = field(default_factory=list)
