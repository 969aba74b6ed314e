"""Address-level TDSP resolution via the ESIID registry."""

import logging
from typing import Dict, List, Optional

from rapidfuzz import fuzz

from .cache import Cache, MemoryCache
from .errors import NoMatchFound
from .esiid_client import EsiidClient, match_from_row
from .models import AddressMatch, Alternative, Confidence, Method, ResolutionResult
from .normalize import address_cache_key, normalize_address
from .validation import DEFAULT_USAGE

logger = logging.getLogger(__name__)


def group_by_utility(matches: List[AddressMatch]) -> Dict[str, List[AddressMatch]]:
    """Group matches by TDSP DUNS, most frequent first.

    Equal counts keep the order in which each utility first appeared.
    """
    groups: Dict[str, List[AddressMatch]] = {}
    for m in matches:
        groups.setdefault(m.utility.duns, []).append(m)
    # sorted() is stable, so insertion (first-appearance) order breaks ties
    ordered = sorted(groups.items(), key=lambda kv: len(kv[1]), reverse=True)
    return dict(ordered)


def pick_representative(matches: List[AddressMatch], normalized_query: str) -> AddressMatch:
    """The match whose address reads closest to the query; first one wins ties."""
    query = normalized_query.lower()
    return max(
        matches,
        key=lambda m: fuzz.token_sort_ratio(query, normalize_address(m.address).lower()),
    )


class AddressResolver:
    """Resolve an address + ZIP to a TDSP using registry service points."""

    def __init__(self, client: Optional[EsiidClient] = None, cache: Optional[Cache] = None,
                 cache_ttl: float = 3600):
        self.client = client or EsiidClient()
        self.cache = cache if cache is not None else MemoryCache()
        self.cache_ttl = cache_ttl

    def search(self, address: str, zip_code: str) -> List[AddressMatch]:
        """Registry matches for an address, served from cache when fresh."""
        key = address_cache_key(address, zip_code)
        rows = self.cache.get(key)
        if rows is None:
            rows = self.client.search(normalize_address(address), zip_code)
            self.cache.set(key, rows, self.cache_ttl)
        else:
            logger.debug(f"Address cache hit: {key}")
        return [match_from_row(r) for r in rows]

    def resolve_address(self, address: str, zip_code: str,
                        usage_hint: Optional[int] = None) -> ResolutionResult:
        """
        Resolve the TDSP serving a street address.

        One utility across all matches gives high confidence. Several give
        medium, with the most frequent as primary and the others as
        alternatives (one representative ESIID each).

        Raises NoMatchFound when the registry returns nothing, and
        AddressLookupError / RequestTimeout on transport failure.
        """
        normalized = normalize_address(address)
        matches = self.search(address, zip_code)
        if not matches:
            raise NoMatchFound(
                f"No service points found for {normalized}, {zip_code}",
                {"address": normalized, "zip_code": zip_code},
            )

        groups = group_by_utility(matches)
        ranked = [(pick_representative(ms, normalized), len(ms)) for ms in groups.values()]
        primary, primary_count = ranked[0]
        usage = usage_hint if usage_hint is not None else DEFAULT_USAGE

        if len(ranked) == 1:
            logger.info(f"Address {normalized}, {zip_code}: {primary.utility.name} ({len(matches)} matches)")
            return ResolutionResult(
                zip_code=zip_code,
                utility=primary.utility,
                method=Method.ADDRESS_RESOLVED,
                confidence=Confidence.HIGH,
                esiid=primary.esiid,
                matched_address=normalize_address(primary.address),
                usage=usage,
            )

        logger.info(
            f"Address {normalized}, {zip_code}: {len(ranked)} TDSPs in {len(matches)} matches, "
            f"primary {primary.utility.name}"
        )
        return ResolutionResult(
            zip_code=zip_code,
            utility=primary.utility,
            method=Method.ADDRESS_RESOLVED,
            confidence=Confidence.MEDIUM,
            alternatives=[
                Alternative(
                    utility=rep.utility,
                    reason=f"{count} of {len(matches)} matching service points",
                    esiid=rep.esiid,
                    address=normalize_address(rep.address),
                )
                for rep, count in ranked[1:]
            ],
            esiid=primary.esiid,
            matched_address=normalize_address(primary.address),
            notes=f"{primary_count} of {len(matches)} matching service points use {primary.utility.name}",
            usage=usage,
        )

    def details(self, esiid: str) -> AddressMatch:
        return self.client.details(esiid)
