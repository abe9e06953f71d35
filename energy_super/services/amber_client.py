from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from energy_super.config import AmberConfig
from energy_super.models.prices import PriceRecord
from energy_super.services.errors import PricingError


class AmberClient:
    """Thin Amber Electric REST wrapper returning typed price records."""

    API_BASE_DEFAULT = "https://api.amber.com.au/v1"

    def __init__(self, cfg: AmberConfig, log, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.log = log
        self.session = session or requests.Session()
        self.base_url = (cfg.url or self.API_BASE_DEFAULT).rstrip("/")
        self.rate_limit_remaining: int | None = None
        self.rate_limit_limit: int | None = None

    # ------------------------------------------------------------------
    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def _record_rate_limit(self, headers: Any) -> None:
        if not headers:
            return
        for header, attr in (
            ("RateLimit-Remaining", "rate_limit_remaining"),
            ("RateLimit-Limit", "rate_limit_limit"),
        ):
            raw = headers.get(header)
            if raw is None:
                continue
            try:
                setattr(self, attr, int(raw))
            except (TypeError, ValueError):
                self.log.debug("Amber API sent unparseable %s header: %r", header, raw)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = self._build_url(path)
        headers = {
            "Authorization": f"Bearer {self.cfg.token}",
            "Accept": "application/json",
        }

        try:
            resp = self.session.get(url, headers=headers, params=params or {}, timeout=self.cfg.timeout)
        except requests.RequestException as exc:
            raise PricingError(f"Amber API request failed for {path}: {exc}") from exc

        self._record_rate_limit(getattr(resp, "headers", None))

        if resp.status_code != 200:
            raise PricingError(f"Amber API {path} returned HTTP {resp.status_code}")

        try:
            return resp.json()
        except ValueError as exc:
            raise PricingError(f"Amber API {path} returned non-JSON payload") from exc

    # ------------------------------------------------------------------
    def check_connection(self) -> bool:
        """One diagnostic call used at startup to confirm the API is usable."""
        try:
            sites = self._get("/sites")
        except PricingError as exc:
            self.log.warning("%s", exc)
            return False

        if not isinstance(sites, list):
            self.log.warning("Amber API /sites response was not a list")
            return False

        site_ids = {str(site.get("id")) for site in sites if isinstance(site, dict)}
        if self.cfg.site_id not in site_ids:
            self.log.warning(
                "Amber site %s not found for this token (available: %s)",
                self.cfg.site_id,
                ", ".join(sorted(site_ids)) or "none",
            )
            return False

        self.log.info("Amber API reachable; site %s found", self.cfg.site_id)
        return True

    # ------------------------------------------------------------------
    def get_current_prices(self) -> List[PriceRecord]:
        """Return current-interval and next forecast-interval prices."""
        data = self._get(
            f"/sites/{self.cfg.site_id}/prices/current",
            params={"next": 1, "previous": 0},
        )
        if not isinstance(data, list):
            raise PricingError("Amber API price response was not a list")

        records: List[PriceRecord] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            per_kwh = entry.get("perKwh")
            try:
                cents = float(per_kwh)
            except (TypeError, ValueError):
                self.log.debug("Skipping Amber price entry without perKwh: %s", entry)
                continue
            records.append(
                PriceRecord(
                    channel_kind=str(entry.get("channelType") or ""),
                    interval_kind=str(entry.get("type") or ""),
                    cents_per_kwh=cents,
                )
            )
        return records
