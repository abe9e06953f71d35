# energy_super/services/errors.py


class UpstreamError(Exception):
    """An upstream source could not deliver a usable result."""


class PricingError(UpstreamError):
    pass


class BatteryError(UpstreamError):
    pass


class StartupError(Exception):
    """Bootstrap could not complete; the process should exit."""
