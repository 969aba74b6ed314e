"""ResolutionEngine: orchestrates the ZIP -> TDSP strategies."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import List, Mapping, Optional, Sequence, Union

from .address_resolver import AddressResolver
from .cache import Cache, create_cache
from .config import Config
from .errors import NetworkError, NoMatchFound, RequestTimeout, ResolutionError
from .esiid_client import EsiidClient
from .models import (
    Alternative,
    BoundaryPrecision,
    Confidence,
    Method,
    MunicipalUtility,
    NotFound,
    NotFoundReason,
    ResolutionResult,
    StrategyAttempt,
    UtilityRecord,
)
from .pattern_fallback import non_choice_region, resolve_by_pattern
from .pricing_client import PricingClient
from .prober import DynamicProber
from .static_tables import ZipTableLookup, utility_for_registry
from .street_rules import STREET_RULES, StreetRule, resolve_by_street_rule
from .validation import validate_address, validate_usage, validate_zip

logger = logging.getLogger(__name__)

Outcome = Union[ResolutionResult, MunicipalUtility, NotFound]


@dataclass
class ResolutionContext:
    """Per-request state shared by the strategies of one analyze() call."""

    zip_code: str
    address: Optional[str]
    usage: int
    # Boundary answer held back while the address strategy tries to refine it
    boundary_result: Optional[ResolutionResult] = None
    # Transport or data failure from the registry, if the lookup ran and failed
    address_error: Optional[ResolutionError] = None
    attempts: List[StrategyAttempt] = field(default_factory=list)

    def record(self, strategy: str, outcome: str, detail: str = ""):
        self.attempts.append(StrategyAttempt(strategy, outcome, detail))


class Strategy(ABC):
    """One resolution stage. Returns a result, or None to let the next stage try."""

    name = ""

    @abstractmethod
    def run(self, ctx: ResolutionContext) -> Optional[ResolutionResult]:
        ...


class ZipTableStrategy(Strategy):
    name = "zip_tables"

    def __init__(self, tables: ZipTableLookup):
        self.tables = tables

    def run(self, ctx):
        result = self.tables.resolve_zip(ctx.zip_code, ctx.usage)
        if result and result.requires_address and ctx.address:
            ctx.boundary_result = result
            ctx.record(self.name, "deferred", "boundary ZIP requires address")
            return None
        return result


class AddressStrategy(Strategy):
    """Registry lookup for boundary ZIPs that need an address. Supersedes the boundary primary."""

    name = "address"

    def __init__(self, resolver: AddressResolver):
        self.resolver = resolver

    def run(self, ctx):
        if ctx.boundary_result is None:
            ctx.record(self.name, "skipped", "only runs for boundary ZIPs that require an address")
            return None
        try:
            result = self.resolver.resolve_address(ctx.address, ctx.zip_code, ctx.usage)
        except NoMatchFound as e:
            ctx.record(self.name, "no_match", e.message)
            logger.info(f"{ctx.zip_code}: no registry match for address, trying the next strategy")
            return None
        except ResolutionError as e:
            outcome = "timeout" if isinstance(e, RequestTimeout) else "error"
            ctx.record(self.name, outcome, e.message)
            ctx.address_error = e
            logger.warning(f"Address lookup failed for {ctx.zip_code} ({e.kind.value})")
            return None
        return replace(result, boundary_precision=ctx.boundary_result.boundary_precision)


class StreetRuleStrategy(Strategy):
    """
    Offline street rules for street-level boundary ZIPs.

    Runs after the registry lookup came up empty or failed. When the
    registry was unreachable and no rule matches, the boundary primary is
    returned at medium confidence rather than a ZIP-range guess.
    """

    name = "street_rules"

    def __init__(self, tables: ZipTableLookup, rules: Mapping[str, Sequence[StreetRule]] = STREET_RULES):
        self.tables = tables
        self.rules = rules

    def run(self, ctx):
        if ctx.boundary_result is None:
            ctx.record(self.name, "skipped", "only runs for boundary ZIPs that require an address")
            return None
        boundary = self.tables.boundary(ctx.zip_code)
        result = resolve_by_street_rule(boundary, ctx.address, ctx.usage, self.rules) if boundary else None
        if result:
            return result
        ctx.record(self.name, "no_match")

        e = ctx.address_error
        if e is None:
            return None
        logger.info(f"{ctx.zip_code}: address lookup unavailable, using boundary primary")
        fallback = ctx.boundary_result
        return replace(
            fallback,
            confidence=Confidence.MEDIUM,
            notes=f"{fallback.notes} (address lookup unavailable: {e.user_message})".strip(),
        )


class PatternStrategy(Strategy):
    name = "pattern"

    def run(self, ctx):
        return resolve_by_pattern(ctx.zip_code, ctx.usage)


class DynamicProbeStrategy(Strategy):
    name = "dynamic_probe"

    def __init__(self, prober: DynamicProber):
        self.prober = prober

    def run(self, ctx):
        return self.prober.probe_zip(ctx.zip_code, ctx.usage)


def _utility_from_dict(d: dict) -> UtilityRecord:
    return utility_for_registry(d["duns"], d["name"])


def result_from_dict(d: dict) -> ResolutionResult:
    """Rebuild a ResolutionResult from its to_dict() form (cache round trip)."""
    return ResolutionResult(
        zip_code=d["zip_code"],
        utility=_utility_from_dict(d["tdsp"]),
        method=Method(d["method"]),
        confidence=Confidence(d["confidence"]),
        alternatives=[
            Alternative(
                utility=_utility_from_dict(a),
                reason=a.get("reason", ""),
                esiid=a.get("esiid"),
                address=a.get("address"),
            )
            for a in d.get("alternatives", [])
        ],
        esiid=d.get("esiid"),
        matched_address=d.get("matched_address"),
        requires_address=d.get("requires_address", False),
        boundary_precision=BoundaryPrecision(d["boundary_precision"]) if d.get("boundary_precision") else None,
        notes=d.get("notes", ""),
        usage=d["api_params"]["display_usage"],
    )


class ResolutionEngine:
    """
    Texas ZIP -> TDSP resolution engine.

    Strategies run in a fixed order and the first answer wins:
    static tables (boundary registry, then direct mapping), registry address
    lookup and offline street rules for boundary ZIPs that require an
    address, ZIP range patterns, then the dynamic pricing probe. Municipal
    and co-op ZIPs short-circuit before any of them.
    """

    def __init__(self, config: Optional[Config] = None,
                 tables: Optional[ZipTableLookup] = None,
                 address_resolver: Optional[AddressResolver] = None,
                 prober: Optional[DynamicProber] = None,
                 cache: Optional[Cache] = None,
                 street_rules: Optional[Mapping[str, Sequence[StreetRule]]] = None):
        self.config = config or Config()
        t0 = time.time()

        self.cache = cache if cache is not None else create_cache(
            self.config.cache_backend, self.config.cache_db
        )
        self.tables = tables or ZipTableLookup()
        self.street_rules = STREET_RULES if street_rules is None else street_rules
        self.address_resolver = address_resolver or AddressResolver(
            EsiidClient(self.config), self.cache, self.config.address_cache_ttl
        )
        self.prober = prober or DynamicProber(
            PricingClient(self.config), delay=self.config.probe_delay_seconds
        )

        self.strategies: List[Strategy] = [
            ZipTableStrategy(self.tables),
            AddressStrategy(self.address_resolver),
            StreetRuleStrategy(self.tables, self.street_rules),
            PatternStrategy(),
        ]
        if self.config.enable_dynamic_probe:
            self.strategies.append(DynamicProbeStrategy(self.prober))

        logger.info(
            f"ResolutionEngine ready in {time.time() - t0:.2f}s: "
            f"strategies={[s.name for s in self.strategies]}, cache={self.cache.size} entries"
        )

    def analyze(self, zip_code: str, address: Optional[str] = None,
                usage: Optional[int] = None, return_alternatives: bool = True) -> Outcome:
        """
        Resolve the TDSP for a ZIP (and optional address).

        Raises only for malformed input (InvalidZipFormat, NonTexasZip,
        InvalidAddress, InvalidUsage). Everything else comes back as a
        ResolutionResult, MunicipalUtility or NotFound.
        """
        zip_code = validate_zip(zip_code)
        address = validate_address(address)
        usage = validate_usage(usage, self.config.default_usage)

        municipal = self.tables.municipal(zip_code)
        if municipal:
            logger.info(f"{zip_code}: {municipal.utility_name} ({municipal.utility_kind}), no retail choice")
            return municipal

        outcome = self._analyze_cached(zip_code, address, usage)
        if isinstance(outcome, ResolutionResult) and not return_alternatives:
            return outcome.without_alternatives()
        return outcome

    def _analyze_cached(self, zip_code: str, address: Optional[str], usage: int) -> Outcome:
        cache_key = f"zip:{zip_code}"
        if address is None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"ZIP cache hit: {zip_code}")
                return replace(result_from_dict(cached), usage=usage, cache_hit=True)

        ctx = ResolutionContext(zip_code=zip_code, address=address, usage=usage)
        outcome = self._run_strategies(ctx)

        if address is None and isinstance(outcome, ResolutionResult):
            self.cache.set(cache_key, outcome.to_dict(), self.config.zip_cache_ttl)
        return outcome

    def _run_strategies(self, ctx: ResolutionContext) -> Outcome:
        for strategy in self.strategies:
            try:
                result = strategy.run(ctx)
            except ResolutionError as e:
                outcome = "timeout" if isinstance(e, RequestTimeout) else "error"
                ctx.record(strategy.name, outcome, e.message)
                logger.warning(f"{ctx.zip_code}: strategy {strategy.name} failed: {e.message}")
                continue
            if result is not None:
                logger.info(
                    f"{ctx.zip_code}: {result.utility.name} via {strategy.name} "
                    f"({result.method.value}, {result.confidence.value})"
                )
                return result
            if not ctx.attempts or ctx.attempts[-1].strategy != strategy.name:
                ctx.record(strategy.name, "no_result")

        if not self.config.enable_dynamic_probe:
            ctx.record("dynamic_probe", "skipped", "dynamic probing disabled")

        region = non_choice_region(ctx.zip_code)
        reason = NotFoundReason.OUTSIDE_COVERAGE if region else NotFoundReason.NO_DATA
        logger.info(f"{ctx.zip_code}: not found ({reason.value}{', ' + region if region else ''})")
        return NotFound(zip_code=ctx.zip_code, reason=reason, attempted_strategies=ctx.attempts)

    def resolve_zip(self, zip_code: str, usage: Optional[int] = None) -> Optional[ResolutionResult]:
        """Static tables only (boundary registry, then direct mapping)."""
        zip_code = validate_zip(zip_code)
        return self.tables.resolve_zip(zip_code, validate_usage(usage, self.config.default_usage))

    def resolve_address(self, address: str, zip_code: str, usage: Optional[int] = None,
                        return_alternatives: bool = True) -> Outcome:
        """
        Address-first resolution for the address confirmation flow.

        When the registry has no match or can't be reached, a matching
        street rule answers; otherwise this falls back to ZIP analysis.
        """
        zip_code = validate_zip(zip_code)
        address = validate_address(address)
        if address is None:
            return self.analyze(zip_code, usage=usage, return_alternatives=return_alternatives)
        usage = validate_usage(usage, self.config.default_usage)

        municipal = self.tables.municipal(zip_code)
        if municipal:
            return municipal

        boundary = self.tables.boundary(zip_code)
        try:
            result = self.address_resolver.resolve_address(address, zip_code, usage)
        except (NoMatchFound, NetworkError) as e:
            result = resolve_by_street_rule(boundary, address, usage, self.street_rules) if boundary else None
            if result is None:
                logger.warning(
                    f"Address lookup failed for {zip_code} ({e.kind.value}), falling back to ZIP analysis"
                )
                return self.analyze(zip_code, usage=usage, return_alternatives=return_alternatives)

        if boundary and not result.boundary_precision:
            result = replace(result, boundary_precision=boundary.precision)
        return result if return_alternatives else result.without_alternatives()

    def clear_cache(self):
        self.cache.clear()
        logger.info("Resolution cache cleared")

    @property
    def stats(self) -> dict:
        return {
            "tables": self.tables.stats,
            "cache_entries": self.cache.size,
            "strategies": [s.name for s in self.strategies],
            "dynamic_probe_enabled": self.config.enable_dynamic_probe,
        }
