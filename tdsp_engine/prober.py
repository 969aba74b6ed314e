"""Dynamic multi-utility prober.

For ZIPs missing from every static table: ask the pricing service for plans
under each deregulated TDSP in turn. Any TDSP with plans is taken to serve
the ZIP; more than one is empirical evidence of a boundary ZIP.
"""

import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import NetworkError, ResolutionError
from .models import Alternative, Confidence, Method, ResolutionResult, UtilityRecord
from .pricing_client import PricingClient
from .static_tables import PROBE_ORDER, UTILITIES

logger = logging.getLogger(__name__)


class DynamicProber:
    """Sequential plan-availability probe across the five deregulated TDSPs."""

    def __init__(self, client: Optional[PricingClient] = None, delay: float = 0.1,
                 utilities: Optional[Sequence[UtilityRecord]] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client or PricingClient()
        self.delay = delay
        self.utilities = list(utilities) if utilities is not None else [UTILITIES[k] for k in PROBE_ORDER]
        self._sleep = sleep

    def probe_zip(self, zip_code: str, usage: int = 1000) -> Optional[ResolutionResult]:
        """
        Probe every TDSP for plans at this ZIP, one at a time.

        Returns None when no TDSP has plans. Raises NetworkError only if every
        probe failed on transport, since then "no plans" can't be told apart
        from "service down".
        """
        served: List[Tuple[UtilityRecord, int]] = []
        transport_failures = 0

        for i, utility in enumerate(self.utilities):
            if i:
                self._sleep(self.delay)
            try:
                plans = self.client.fetch_plans(utility.duns, usage, zip_code=zip_code)
            except NetworkError as e:
                transport_failures += 1
                logger.warning(f"Probe {zip_code}/{utility.name}: {e.message}")
                continue
            except ResolutionError as e:
                logger.warning(f"Probe {zip_code}/{utility.name}: {e.message}")
                continue
            if plans:
                served.append((utility, len(plans)))

        if transport_failures == len(self.utilities):
            raise NetworkError(
                f"All {transport_failures} pricing probes failed for {zip_code}",
                {"zip_code": zip_code},
            )
        if not served:
            logger.info(f"Probe {zip_code}: no TDSP has plans")
            return None

        # Most plans wins; sorted() is stable so ties keep probe order
        served.sort(key=lambda s: s[1], reverse=True)
        primary, count = served[0]
        logger.info(
            f"Probe {zip_code}: {primary.name} ({count} plans)"
            + (f", {len(served) - 1} other TDSPs" if len(served) > 1 else "")
        )
        return ResolutionResult(
            zip_code=zip_code,
            utility=primary,
            method=Method.DYNAMIC_PROBE,
            confidence=Confidence.HIGH if len(served) == 1 else Confidence.MEDIUM,
            alternatives=[
                Alternative(utility=u, reason=f"{n} plans available") for u, n in served[1:]
            ],
            requires_address=len(served) > 1,
            notes=f"{count} plans available",
            usage=usage,
        )
