import re

import pytest

from tdsp_engine.models import BoundaryPrecision, Confidence, Method
from tdsp_engine.static_tables import BOUNDARY_ZIPS, UTILITIES
from tdsp_engine.street_rules import (
    STREET_RULES,
    NumberRange,
    StreetRule,
    match_street_rule,
    resolve_by_street_rule,
)

from .fakes import AEP_NORTH, ONCOR, TNMP

# Odd side of Main 100-198 and both sides of Oak 500-599 belong to TNMP;
# the even side of Main 100-198 to AEP North
RULES = {
    "76020": (
        StreetRule(TNMP, re.compile(r"^main\b"), (NumberRange(101, 199, "odd"),)),
        StreetRule(AEP_NORTH, re.compile(r"^main\b"), (NumberRange(100, 198, "even"),)),
        StreetRule(TNMP, re.compile(r"^oak\b"), (NumberRange(500, 599),)),
    ),
}


@pytest.mark.parametrize("address,expected", [
    ("101 Main St", TNMP),
    ("199 Main St", TNMP),
    ("100 Main St", AEP_NORTH),
    ("198 Main St", AEP_NORTH),
    ("150 Main Street Apt 3", AEP_NORTH),
    ("500 Oak Ave", TNMP),
    ("599 Oak Ave", TNMP),
])
def test_range_and_parity_edges_match(address, expected):
    assert match_street_rule("76020", address, RULES).utility == expected


@pytest.mark.parametrize("address", [
    "99 Main St",
    "200 Main St",
    "201 Main St",
    "499 Oak Ave",
    "600 Oak Ave",
    "150 Mainland Dr",
    "150 Elm St",
    "Main St",
])
def test_outside_rules_no_match(address):
    assert match_street_rule("76020", address, RULES) is None


def test_rules_are_per_zip():
    assert match_street_rule("75001", "101 Main St", RULES) is None


def test_shipped_rules_cover_addison():
    assert STREET_RULES["75001"][0].utility == UTILITIES["TNMP"]
    assert match_street_rule("75001", "4200 Belt Line Rd").utility == TNMP
    assert match_street_rule("75001", "4200 Beltline Road").utility == TNMP
    assert match_street_rule("75001", "15 Spring Valley Rd").utility == TNMP
    assert match_street_rule("75001", "4200 Beltway Dr") is None


def test_resolve_by_street_rule():
    result = resolve_by_street_rule(BOUNDARY_ZIPS["75001"], "4200 Belt Line Rd", usage=1500)
    assert result.method == Method.STREET_RULE
    assert result.confidence == Confidence.MEDIUM
    assert result.utility == TNMP
    assert [a.utility for a in result.alternatives] == [ONCOR]
    assert result.boundary_precision == BoundaryPrecision.STREET
    assert result.api_params == {"tdsp_duns": TNMP.duns, "display_usage": 1500}


def test_only_street_level_boundaries():
    block_level = BOUNDARY_ZIPS["75056"]
    assert block_level.precision == BoundaryPrecision.BLOCK
    rules = {"75056": RULES["76020"]}
    assert resolve_by_street_rule(block_level, "101 Main St", rules=rules) is None
