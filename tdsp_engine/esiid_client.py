"""ERCOT ESIID registry client: street address -> service points -> TDSP.

Endpoints:
  GET {base}/api/esiids?address=...&zip_code=...   search
  GET {base}/api/esiids/{esiid}                    details

Each service point (ESIID) carries the DUNS and name of the TDSP that
delivers power to it, which is what makes an address-level answer
authoritative for boundary ZIPs.
"""

import logging
import threading
import time
from typing import Callable, List, Optional
from urllib.parse import quote

import requests

from .config import Config
from .errors import AddressLookupError, DataValidationError, RequestTimeout, ResolutionError
from .models import AddressMatch
from .retry import RetryPolicy
from .static_tables import utility_for_registry

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("esiid", "address", "zip_code", "tdsp_duns", "tdsp_name")

# Known-good address used by health_check()
_HEALTH_CHECK_ADDRESS = ("1234 Main St", "75201")


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def is_valid_row(row) -> bool:
    return isinstance(row, dict) and all(isinstance(row.get(f), str) for f in _REQUIRED_FIELDS)


def normalize_row(row: dict) -> dict:
    """Trim a registry row down to the fields we use."""
    return {
        "esiid": row["esiid"].strip(),
        "address": row["address"].strip(),
        "city": _clean(row.get("city")),
        "state": _clean(row.get("state")) or "TX",
        "zip_code": row["zip_code"].strip(),
        "county": _clean(row.get("county")),
        "tdsp_duns": row["tdsp_duns"].strip(),
        "tdsp_name": row["tdsp_name"].strip(),
        "service_voltage": _clean(row.get("service_voltage")),
        "meter_type": _clean(row.get("meter_type")),
    }


def match_from_row(row: dict) -> AddressMatch:
    return AddressMatch(
        esiid=row["esiid"],
        address=row["address"],
        utility=utility_for_registry(row["tdsp_duns"], row["tdsp_name"]),
        city=row.get("city", ""),
        state=row.get("state", "TX"),
        zip_code=row.get("zip_code", ""),
        county=row.get("county", ""),
        service_voltage=row.get("service_voltage", ""),
        meter_type=row.get("meter_type", ""),
        premise_number=row.get("premise_number"),
        customer_class=row.get("customer_class"),
        load_profile=row.get("load_profile"),
        rate_class=row.get("rate_class"),
        switch_hold=row.get("switch_hold"),
    )


class EsiidClient:
    """Address/utility registry client with retry and a circuit breaker."""

    def __init__(self, config: Optional[Config] = None, retry: Optional[RetryPolicy] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config or Config()
        self.base_url = self.config.esiid_api_url.rstrip("/")
        self.retry = retry or RetryPolicy(
            self.config.retry_attempts, self.config.retry_base_delay, self.config.retry_max_delay
        )
        self._clock = clock
        self._consecutive_failures = 0
        self._disabled = False
        self._last_failure_time = 0.0
        self._breaker_lock = threading.Lock()

    @property
    def headers(self) -> dict:
        headers = {"Accept": "application/json", "User-Agent": self.config.user_agent}
        if self.config.esiid_api_key:
            headers["X-API-Key"] = self.config.esiid_api_key
        return headers

    @property
    def available(self) -> bool:
        """False while the circuit breaker is open."""
        with self._breaker_lock:
            if not self._disabled:
                return True
            if self._clock() - self._last_failure_time > self.config.circuit_breaker_reset_seconds:
                self._disabled = False
                self._consecutive_failures = 0
                logger.info("ESIID API: circuit breaker reset, re-enabling")
                return True
            return False

    def search(self, address: str, zip_code: str) -> List[dict]:
        """
        Search the registry for service points at an address.

        Returns normalized row dicts (possibly empty). Rows missing required
        fields are dropped. Raises AddressLookupError / RequestTimeout on
        transport or HTTP failure, DataValidationError if the body isn't a list.
        """
        self._check_circuit()
        data = self.retry.call(
            self._get, "/api/esiids", {"address": address, "zip_code": zip_code}
        )
        if not isinstance(data, list):
            raise DataValidationError(
                "ESIID search returned a non-list body", {"address": address, "zip_code": zip_code}
            )
        rows = [normalize_row(r) for r in data if is_valid_row(r)]
        dropped = len(data) - len(rows)
        if dropped:
            logger.warning(f"ESIID API: dropped {dropped} malformed rows for {address}, {zip_code}")
        logger.debug(f"ESIID API: {len(rows)} service points for {address}, {zip_code}")
        return rows

    def details(self, esiid: str) -> AddressMatch:
        """Full record for one service point."""
        self._check_circuit()
        data = self.retry.call(self._get, f"/api/esiids/{quote(esiid, safe='')}")
        if not is_valid_row(data) or not isinstance(data.get("premise_number"), str):
            raise DataValidationError("ESIID details response is malformed", {"esiid": esiid})
        row = normalize_row(data)
        row.update({
            "premise_number": data["premise_number"],
            "customer_class": data.get("customer_class") or "",
            "load_profile": data.get("load_profile") or "",
            "rate_class": data.get("rate_class") or "",
            "switch_hold": data.get("switch_hold_indicator") or "",
        })
        return match_from_row(row)

    def health_check(self) -> dict:
        t0 = time.time()
        try:
            self.search(*_HEALTH_CHECK_ADDRESS)
        except ResolutionError as e:
            return {
                "healthy": False,
                "response_time_ms": int((time.time() - t0) * 1000),
                "last_error": e.message,
            }
        return {"healthy": True, "response_time_ms": int((time.time() - t0) * 1000)}

    def _check_circuit(self):
        if not self.available:
            raise AddressLookupError(
                "ESIID API disabled by circuit breaker",
                {"consecutive_failures": self._consecutive_failures},
                retryable=True,
            )

    def _get(self, path: str, params: Optional[dict] = None):
        url = f"{self.base_url}{path}"
        try:
            resp = requests.get(
                url, params=params, headers=self.headers, timeout=self.config.request_timeout
            )
        except requests.Timeout:
            self._record_failure()
            raise RequestTimeout(
                f"ESIID API timed out after {self.config.request_timeout}s", {"url": url}
            )
        except requests.RequestException as e:
            self._record_failure()
            raise AddressLookupError(f"ESIID API request failed: {e}", {"url": url}, retryable=True)

        if resp.status_code >= 500:
            self._record_failure()
            raise AddressLookupError(
                f"ESIID API: HTTP {resp.status_code}", {"url": url, "status": resp.status_code},
                retryable=True,
            )
        if resp.status_code != 200:
            raise AddressLookupError(
                f"ESIID API: HTTP {resp.status_code}", {"url": url, "status": resp.status_code},
                retryable=False,
            )

        with self._breaker_lock:
            self._consecutive_failures = 0
        try:
            return resp.json()
        except ValueError:
            raise DataValidationError("ESIID API returned invalid JSON", {"url": url})

    def _record_failure(self):
        """Track consecutive failures for the circuit breaker."""
        with self._breaker_lock:
            self._consecutive_failures += 1
            self._last_failure_time = self._clock()
            if self._consecutive_failures >= self.config.circuit_breaker_threshold and not self._disabled:
                self._disabled = True
                logger.warning(
                    f"ESIID API: circuit breaker tripped after "
                    f"{self._consecutive_failures} consecutive failures"
                )
