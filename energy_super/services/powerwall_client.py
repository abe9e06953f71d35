from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import urllib3

from energy_super.config import PowerwallConfig
from energy_super.models.power import PowerReading
from energy_super.services.errors import BatteryError


@dataclass
class LoginResult:
    success: bool
    response_code: int | None


def _instant_power_kw(meters: Dict[str, Any], name: str) -> float:
    meter = meters.get(name)
    if not isinstance(meter, dict):
        raise BatteryError(f"Powerwall aggregates missing '{name}' meter")
    try:
        return float(meter["instant_power"]) / 1000.0
    except (KeyError, TypeError, ValueError) as exc:
        raise BatteryError(f"Powerwall '{name}' meter has no usable instant_power") from exc


class PowerwallClient:
    """
    Thin wrapper over the Powerwall 2 gateway local API.

    Every read is a full login -> read -> logout sequence; no session is kept
    between polls.
    """

    def __init__(self, cfg: PowerwallConfig, log, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.log = log
        self.session = session or requests.Session()
        self.base_url = cfg.url.rstrip("/")
        self._token: str | None = None
        if not cfg.verify_ssl:
            # Gateways ship with a self-signed certificate.
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    # ------------------------------------------------------------------
    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_json(self, path: str) -> Dict[str, Any]:
        try:
            resp = self.session.get(
                self._build_url(path),
                headers=self._headers(),
                timeout=self.cfg.timeout,
                verify=self.cfg.verify_ssl,
            )
        except requests.RequestException as exc:
            raise BatteryError(f"Powerwall request failed for {path}: {exc}") from exc

        if resp.status_code != 200:
            raise BatteryError(f"Powerwall {path} returned HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise BatteryError(f"Powerwall {path} returned non-JSON payload") from exc

        if not isinstance(data, dict):
            raise BatteryError(f"Powerwall {path} response was not an object")
        return data

    # ------------------------------------------------------------------
    def login(self) -> LoginResult:
        body = {
            "username": "customer",
            "email": self.cfg.email,
            "password": self.cfg.password,
        }
        try:
            resp = self.session.post(
                self._build_url("/api/login/Basic"),
                json=body,
                headers={"Accept": "application/json"},
                timeout=self.cfg.timeout,
                verify=self.cfg.verify_ssl,
            )
        except requests.RequestException as exc:
            self.log.debug("Powerwall login request failed: %s", exc)
            return LoginResult(success=False, response_code=None)

        if resp.status_code != 200:
            return LoginResult(success=False, response_code=resp.status_code)

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        self._token = payload.get("token") if isinstance(payload, dict) else None
        return LoginResult(success=True, response_code=resp.status_code)

    def logout(self) -> LoginResult:
        try:
            resp = self.session.get(
                self._build_url("/api/logout"),
                headers=self._headers(),
                timeout=self.cfg.timeout,
                verify=self.cfg.verify_ssl,
            )
        except requests.RequestException as exc:
            self.log.debug("Powerwall logout request failed: %s", exc)
            return LoginResult(success=False, response_code=None)
        finally:
            self._token = None

        return LoginResult(success=resp.status_code in (200, 204), response_code=resp.status_code)

    def aggregate_meters(self) -> Dict[str, Any]:
        return self._get_json("/api/meters/aggregates")

    def get_state_of_energy(self) -> Dict[str, Any]:
        return self._get_json("/api/system_status/soe")

    # ------------------------------------------------------------------
    def read_power(self) -> PowerReading:
        """Log in, read meters and charge level, then log out."""
        result = self.login()
        if not result.success:
            raise BatteryError(f"Powerwall login failed (response code {result.response_code})")

        try:
            meters = self.aggregate_meters()
            soe = self.get_state_of_energy()
        finally:
            logout = self.logout()
            if not logout.success:
                self.log.warning("Powerwall logout failed (response code %s)", logout.response_code)

        try:
            percentage = float(soe["percentage"])
        except (KeyError, TypeError, ValueError) as exc:
            raise BatteryError("Powerwall state of energy has no usable percentage") from exc

        return PowerReading(
            load_kw=_instant_power_kw(meters, "load"),
            solar_kw=_instant_power_kw(meters, "solar"),
            battery_kw=_instant_power_kw(meters, "battery"),
            grid_kw=_instant_power_kw(meters, "site"),
            charge_percent=percentage,
        )

    # ------------------------------------------------------------------
    def check_connection(self) -> bool:
        """One diagnostic login/logout used at startup."""
        result = self.login()
        if not result.success:
            self.log.warning(
                "Powerwall login failed at %s (response code %s)",
                self.base_url,
                result.response_code,
            )
            return False
        logout = self.logout()
        if not logout.success:
            self.log.warning("Powerwall logout failed (response code %s)", logout.response_code)
        self.log.info("Powerwall gateway reachable at %s", self.base_url)
        return True
