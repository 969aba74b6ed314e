"""Plan-pricing service client.

The resolver only uses it to test whether a TDSP has plans on offer for a
ZIP (empty vs non-empty), never to display prices.
"""

import logging
from typing import List, Optional

import requests

from .config import Config
from .errors import DataValidationError, PricingServiceError, RequestTimeout
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class PricingClient:
    """GET {base}/api/plans/current scoped to one TDSP."""

    def __init__(self, config: Optional[Config] = None, retry: Optional[RetryPolicy] = None):
        self.config = config or Config()
        self.base_url = self.config.pricing_api_url.rstrip("/")
        self.retry = retry or RetryPolicy(
            self.config.retry_attempts, self.config.retry_base_delay, self.config.retry_max_delay
        )

    @property
    def headers(self) -> dict:
        headers = {"Accept": "application/json", "User-Agent": self.config.user_agent}
        if self.config.pricing_api_key:
            headers["X-API-Key"] = self.config.pricing_api_key
        return headers

    def fetch_plans(self, tdsp_duns: str, usage: int = 1000,
                    zip_code: Optional[str] = None) -> List[dict]:
        """Current plans for a TDSP. Raises PricingServiceError / RequestTimeout / DataValidationError."""
        params = {"group": "default", "tdsp_duns": tdsp_duns, "display_usage": str(usage)}
        if zip_code:
            params["zip_code"] = zip_code
        data = self.retry.call(self._get, params)
        if not isinstance(data, list):
            raise DataValidationError(
                "Pricing API returned a non-list body", {"tdsp_duns": tdsp_duns}
            )
        plans = [p for p in data if isinstance(p, dict)]
        logger.debug(f"Pricing API: {len(plans)} plans for TDSP {tdsp_duns}")
        return plans

    def _get(self, params: dict):
        url = f"{self.base_url}/api/plans/current"
        try:
            resp = requests.get(url, params=params, headers=self.headers,
                                timeout=self.config.request_timeout)
        except requests.Timeout:
            raise RequestTimeout(
                f"Pricing API timed out after {self.config.request_timeout}s", {"url": url}
            )
        except requests.RequestException as e:
            raise PricingServiceError(f"Pricing API request failed: {e}", {"url": url})

        if resp.status_code != 200:
            raise PricingServiceError(
                f"Pricing API: HTTP {resp.status_code}",
                {"url": url, "status": resp.status_code},
                retryable=resp.status_code >= 500 or resp.status_code == 429,
            )
        try:
            return resp.json()
        except ValueError:
            raise DataValidationError("Pricing API returned invalid JSON", {"url": url})
