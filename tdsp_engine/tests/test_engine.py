import pytest

from tdsp_engine.address_resolver import AddressResolver
from tdsp_engine.cache import SQLiteCache
from tdsp_engine.config import Config
from tdsp_engine.engine import ResolutionEngine, result_from_dict
from tdsp_engine.errors import (
    AddressLookupError,
    InvalidAddress,
    InvalidUsage,
    InvalidZipFormat,
    NonTexasZip,
    PricingServiceError,
    RequestTimeout,
)
from tdsp_engine.models import (
    BoundaryPrecision,
    BoundaryZip,
    Confidence,
    Method,
    MunicipalUtility,
    NotFound,
    NotFoundReason,
    ResolutionResult,
)
from tdsp_engine.prober import DynamicProber
from tdsp_engine.static_tables import PROBE_ORDER, UTILITIES, ZipTableLookup

from .fakes import (
    AEP_NORTH,
    CENTERPOINT,
    ONCOR,
    TNMP,
    FakeClock,
    FakeEsiidClient,
    FakePricingClient,
    row,
)

PROBED = [UTILITIES[k] for k in PROBE_ORDER]

ADDRESS_ROWS = [
    row("O1", "1234 MAIN ST", ONCOR),
    row("T1", "1234 MAIN ST APT 1", TNMP),
    row("O2", "1234 MAIN ST APT 2", ONCOR),
]


def boundary_zip(zip_code):
    return BoundaryZip(
        zip_code=zip_code, primary=CENTERPOINT, alternatives=(TNMP,),
        requires_address=True, precision=BoundaryPrecision.STREET, notes="",
    )


def make_engine(config, cache, rows=None, esiid_error=None, plans=None):
    esiid = FakeEsiidClient(rows, esiid_error)
    pricing = FakePricingClient(plans)
    engine = ResolutionEngine(
        config,
        address_resolver=AddressResolver(esiid, cache=cache),
        prober=DynamicProber(pricing, delay=0, sleep=lambda s: None),
        cache=cache,
    )
    return engine, esiid, pricing


def test_direct_mapping(config, cache):
    engine, esiid, pricing = make_engine(config, cache)
    result = engine.analyze("75205")
    assert isinstance(result, ResolutionResult)
    assert result.utility == ONCOR
    assert result.method == Method.DIRECT_MAPPING
    assert result.confidence == Confidence.HIGH
    assert result.api_params == {"tdsp_duns": "1039940674000", "display_usage": 1000}
    assert esiid.calls == [] and pricing.calls == []


def test_municipal_zip_is_distinct_outcome(config, cache):
    engine, _, pricing = make_engine(config, cache, plans={ONCOR.duns: 5})
    outcome = engine.analyze("78701")
    assert isinstance(outcome, MunicipalUtility)
    assert not isinstance(outcome, (NotFound, ResolutionResult))
    assert outcome.to_dict()["municipal_utility"] is True
    assert pricing.calls == []


def test_boundary_zip_without_address(config, cache):
    engine, esiid, _ = make_engine(config, cache, rows=ADDRESS_ROWS)
    result = engine.analyze("75001")
    assert result.method == Method.BOUNDARY_PRIMARY
    assert result.confidence == Confidence.MEDIUM
    assert result.requires_address
    assert [a.utility for a in result.alternatives] == [TNMP]
    assert esiid.calls == []


def test_address_supersedes_boundary_primary(config, cache):
    engine, esiid, _ = make_engine(config, cache, rows=ADDRESS_ROWS)
    result = engine.analyze("75001", address="1234 Main St")
    assert result.method == Method.ADDRESS_RESOLVED
    assert result.confidence == Confidence.MEDIUM
    assert result.utility == ONCOR
    assert [a.utility for a in result.alternatives] == [TNMP]
    assert result.esiid == "O1"
    assert len(esiid.calls) == 1


def test_single_utility_address_is_high(config, cache):
    engine, _, _ = make_engine(config, cache, rows=[row("T1", "1234 MAIN ST", TNMP)])
    result = engine.analyze("75001", address="1234 Main St")
    assert result.utility == TNMP
    assert result.confidence == Confidence.HIGH


def test_address_timeout_falls_back_to_boundary_primary(config, cache):
    engine, _, pricing = make_engine(config, cache, esiid_error=RequestTimeout("slow"))
    result = engine.analyze("75001", address="1234 Main St")
    assert result.method == Method.BOUNDARY_PRIMARY
    assert result.utility == ONCOR
    assert result.confidence == Confidence.MEDIUM
    assert "address lookup unavailable" in result.notes
    assert pricing.calls == []


def test_address_no_match_falls_through_to_pattern(config, cache):
    engine, _, _ = make_engine(config, cache, rows=[])
    result = engine.analyze("76020", address="1 Nowhere Rd")
    assert result.method == Method.PATTERN_MATCH
    assert result.confidence == Confidence.LOW
    assert result.utility == ONCOR
    assert result.cache_hit is False


def test_address_no_match_recorded_when_nothing_resolves(config, cache):
    tables = ZipTableLookup(assignments={}, boundary_zips={"77840": boundary_zip("77840")})
    engine = ResolutionEngine(
        config, tables=tables,
        address_resolver=AddressResolver(FakeEsiidClient([]), cache=cache),
        prober=DynamicProber(FakePricingClient(), delay=0, sleep=lambda s: None),
        cache=cache,
    )
    outcome = engine.analyze("77840", address="1 Nowhere Rd")
    assert isinstance(outcome, NotFound)
    attempts = [(a.strategy, a.outcome) for a in outcome.attempted_strategies]
    assert attempts[:3] == [("zip_tables", "deferred"), ("address", "no_match"), ("street_rules", "no_match")]


def test_address_result_carries_boundary_precision(config, cache):
    engine, _, _ = make_engine(config, cache, rows=ADDRESS_ROWS)
    via_analyze = engine.analyze("75001", address="1234 Main St")
    via_address = engine.resolve_address("1234 Main St", "75001")
    assert via_analyze.boundary_precision == BoundaryPrecision.STREET
    assert via_analyze.to_dict() == via_address.to_dict()


def test_street_rule_when_registry_has_no_match(config, cache):
    engine, _, _ = make_engine(config, cache, rows=[])
    result = engine.analyze("75001", address="4200 Belt Line Rd")
    assert result.method == Method.STREET_RULE
    assert result.utility == TNMP
    assert result.confidence == Confidence.MEDIUM
    assert [a.utility for a in result.alternatives] == [ONCOR]


def test_street_rule_when_registry_is_down(config, cache):
    engine, _, _ = make_engine(config, cache, esiid_error=RequestTimeout("slow"))
    result = engine.analyze("75001", address="15 Spring Valley Rd Apt 4")
    assert result.method == Method.STREET_RULE
    assert result.utility == TNMP


def test_registry_answer_beats_street_rule(config, cache):
    engine, _, _ = make_engine(config, cache, rows=[row("O1", "4200 BELT LINE RD", ONCOR)])
    result = engine.analyze("75001", address="4200 Belt Line Rd")
    assert result.method == Method.ADDRESS_RESOLVED
    assert result.utility == ONCOR


def test_resolve_address_uses_street_rule_on_no_match(config, cache):
    engine, _, _ = make_engine(config, cache, rows=[])
    result = engine.resolve_address("4200 Belt Line Rd", "75001")
    assert result.method == Method.STREET_RULE
    assert result.boundary_precision == BoundaryPrecision.STREET


def test_address_ignored_for_unambiguous_zip(config, cache):
    engine, esiid, _ = make_engine(config, cache, rows=ADDRESS_ROWS)
    result = engine.analyze("75205", address="1234 Main St")
    assert result.method == Method.DIRECT_MAPPING
    assert esiid.calls == []


def test_address_not_needed_for_high_confidence_boundary(config, cache):
    engine, esiid, _ = make_engine(config, cache, rows=ADDRESS_ROWS)
    result = engine.analyze("77002", address="1000 Main St")
    assert result.method == Method.BOUNDARY_PRIMARY
    assert result.confidence == Confidence.HIGH
    assert result.utility == CENTERPOINT
    assert esiid.calls == []


def test_pattern_before_probe(config, cache):
    engine, _, pricing = make_engine(config, cache, plans={TNMP.duns: 5})
    result = engine.analyze("75000")
    assert result.method == Method.PATTERN_MATCH
    assert result.confidence == Confidence.LOW
    assert pricing.calls == []


def test_dynamic_probe_for_unmapped_zip(config, cache):
    engine, _, pricing = make_engine(config, cache, plans={CENTERPOINT.duns: 30, TNMP.duns: 12})
    result = engine.analyze("77840", usage=1500)
    assert result.method == Method.DYNAMIC_PROBE
    assert result.confidence == Confidence.MEDIUM
    assert result.utility == CENTERPOINT
    assert len(pricing.calls) == 5
    assert result.api_params["display_usage"] == 1500


def test_not_found_no_data(config, cache):
    engine, _, _ = make_engine(config, cache)
    outcome = engine.analyze("77840")
    assert isinstance(outcome, NotFound)
    assert outcome.reason == NotFoundReason.NO_DATA
    assert [a.strategy for a in outcome.attempted_strategies] == [
        "zip_tables", "address", "street_rules", "pattern", "dynamic_probe",
    ]
    assert outcome.attempted_strategies[1].outcome == "skipped"


@pytest.mark.parametrize("zip_code", ["79101", "79999", "75501"])
def test_not_found_outside_coverage(config, cache, zip_code):
    engine, _, _ = make_engine(config, cache)
    outcome = engine.analyze(zip_code)
    assert isinstance(outcome, NotFound)
    assert outcome.reason == NotFoundReason.OUTSIDE_COVERAGE
    assert outcome.message != NotFound(zip_code, NotFoundReason.NO_DATA).message


def test_probe_outage_recorded_in_not_found(config, cache):
    plans = {u.duns: PricingServiceError("HTTP 503") for u in PROBED}
    engine, _, _ = make_engine(config, cache, plans=plans)
    outcome = engine.analyze("77840")
    assert isinstance(outcome, NotFound)
    assert outcome.attempted_strategies[-1].strategy == "dynamic_probe"
    assert outcome.attempted_strategies[-1].outcome == "error"


def test_probe_disabled(cache):
    engine, _, pricing = make_engine(Config(enable_dynamic_probe=False), cache, plans={TNMP.duns: 5})
    outcome = engine.analyze("77840")
    assert isinstance(outcome, NotFound)
    assert outcome.attempted_strategies[-1].outcome == "skipped"
    assert pricing.calls == []


@pytest.mark.parametrize("kwargs,error", [
    ({"zip_code": "abcde"}, InvalidZipFormat),
    ({"zip_code": "7520"}, InvalidZipFormat),
    ({"zip_code": "752055"}, InvalidZipFormat),
    ({"zip_code": "74999"}, NonTexasZip),
    ({"zip_code": "80000"}, NonTexasZip),
    ({"zip_code": "75205", "usage": 50}, InvalidUsage),
    ({"zip_code": "75205", "address": "12"}, InvalidAddress),
])
def test_malformed_input_raises(config, cache, kwargs, error):
    engine, _, _ = make_engine(config, cache)
    with pytest.raises(error):
        engine.analyze(**kwargs)


def test_edges_of_texas_range_accepted(config, cache):
    engine, _, _ = make_engine(config, cache)
    assert isinstance(engine.analyze("75000"), ResolutionResult)
    assert isinstance(engine.analyze("79999"), NotFound)


def test_return_alternatives_false(config, cache):
    engine, _, _ = make_engine(config, cache)
    result = engine.analyze("76020", return_alternatives=False)
    assert result.alternatives == []
    assert engine.analyze("76020").alternatives


def test_zip_cache_hit_matches_miss(config, cache, clock):
    engine, _, pricing = make_engine(config, cache, plans={CENTERPOINT.duns: 30, TNMP.duns: 12})
    first = engine.analyze("77840")
    second = engine.analyze("77840")
    assert not first.cache_hit
    assert second.cache_hit
    assert first == second
    assert len(pricing.calls) == 5

    clock.advance(1800)
    engine.analyze("77840")
    assert len(pricing.calls) == 10


def test_sqlite_cache_hit_matches_miss(config, tmp_path):
    cache = SQLiteCache(tmp_path / "cache.db", clock=FakeClock())
    engine, _, _ = make_engine(config, cache)
    for zip_code in ("75001", "75205", "75000"):
        miss = engine.analyze(zip_code)
        hit = engine.analyze(zip_code)
        assert hit.cache_hit
        assert hit == miss
    cache.close()


def test_cached_result_respects_usage(config, cache):
    engine, _, _ = make_engine(config, cache)
    engine.analyze("75205")
    hit = engine.analyze("75205", usage=2500)
    assert hit.cache_hit
    assert hit.api_params["display_usage"] == 2500


def test_not_found_not_cached(config, cache):
    engine, _, pricing = make_engine(config, cache)
    engine.analyze("77840")
    engine.analyze("77840")
    assert len(pricing.calls) == 10


def test_idempotent(config, cache):
    engine, _, _ = make_engine(config, cache, rows=ADDRESS_ROWS)
    assert engine.analyze("75001", address="1234 Main St") == engine.analyze("75001", address="1234 Main St")
    assert engine.resolve_zip("76116") == engine.resolve_zip("76116")


def test_resolve_zip_tables_only(config, cache):
    engine, _, pricing = make_engine(config, cache, plans={TNMP.duns: 5})
    assert engine.resolve_zip("75205").method == Method.DIRECT_MAPPING
    assert engine.resolve_zip("77840") is None
    assert pricing.calls == []
    with pytest.raises(NonTexasZip):
        engine.resolve_zip("80000")


def test_resolve_address_falls_back_to_zip_analysis(config, cache):
    engine, _, _ = make_engine(config, cache, esiid_error=AddressLookupError("HTTP 503", retryable=True))
    result = engine.resolve_address("1234 Main St", "75205")
    assert result.method == Method.DIRECT_MAPPING


def test_resolve_address_adds_boundary_precision(config, cache):
    engine, _, _ = make_engine(config, cache, rows=ADDRESS_ROWS)
    result = engine.resolve_address("1234 Main St", "75001", return_alternatives=False)
    assert result.method == Method.ADDRESS_RESOLVED
    assert result.boundary_precision.value == "street-level"
    assert result.alternatives == []


def test_result_dict_round_trip(config, cache):
    engine, _, _ = make_engine(config, cache, rows=ADDRESS_ROWS)
    result = engine.analyze("75001", address="1234 Main St")
    assert result_from_dict(result.to_dict()) == result


def test_stats_and_clear_cache(config, cache):
    engine, _, _ = make_engine(config, cache)
    engine.analyze("75205")
    assert engine.stats["cache_entries"] == 1
    assert engine.stats["strategies"] == ["zip_tables", "address", "street_rules", "pattern", "dynamic_probe"]
    engine.clear_cache()
    assert engine.stats["cache_entries"] == 0
