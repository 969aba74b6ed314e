"""Offline street-level rules for street-level boundary ZIPs.

A rule names a TDSP, a street-name regex and house-number ranges (with
optional odd/even parity). It refines a boundary ZIP's answer from the
address alone, without the registry.
"""

import logging
import re
from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from .models import Alternative, BoundaryPrecision, BoundaryZip, Confidence, Method, ResolutionResult, UtilityRecord
from .normalize import split_street_address
from .static_tables import UTILITIES, read_data_json

logger = logging.getLogger(__name__)

_PARITIES = (None, "odd", "even")


class NumberRange(NamedTuple):
    low: int
    high: int
    parity: Optional[str] = None

    def contains(self, number: int) -> bool:
        if not self.low <= number <= self.high:
            return False
        if self.parity == "odd":
            return number % 2 == 1
        if self.parity == "even":
            return number % 2 == 0
        return True


class StreetRule(NamedTuple):
    utility: UtilityRecord
    street: re.Pattern
    ranges: Tuple[NumberRange, ...]
    notes: str = ""

    def matches(self, number: int, street_name: str) -> bool:
        return bool(self.street.search(street_name)) and any(r.contains(number) for r in self.ranges)


def load_street_rules(utilities: Mapping[str, UtilityRecord] = UTILITIES) -> Dict[str, Tuple[StreetRule, ...]]:
    data = read_data_json("street_rules.json")["street_rules"]
    rules = {}
    for zip_code, entries in data.items():
        parsed: List[StreetRule] = []
        for entry in entries:
            ranges = tuple(
                NumberRange(r["min"], r["max"], r.get("parity")) for r in entry["ranges"]
            )
            for r in ranges:
                if r.low > r.high or r.parity not in _PARITIES:
                    raise ValueError(f"Bad number range {r} in street rule for {zip_code}")
            parsed.append(StreetRule(
                utility=utilities[entry["utility"]],
                street=re.compile(entry["street"], re.IGNORECASE),
                ranges=ranges,
                notes=entry.get("notes", ""),
            ))
        rules[zip_code] = tuple(parsed)
    return rules


STREET_RULES: Mapping[str, Tuple[StreetRule, ...]] = MappingProxyType(load_street_rules())


def match_street_rule(zip_code: str, address: str,
                      rules: Mapping[str, Sequence[StreetRule]] = STREET_RULES) -> Optional[StreetRule]:
    """First rule for the ZIP whose street and number range cover the address."""
    parts = split_street_address(address)
    if parts is None:
        return None
    number, street_name = parts
    for rule in rules.get(zip_code, ()):
        if rule.matches(number, street_name):
            return rule
    return None


def resolve_by_street_rule(boundary: BoundaryZip, address: str, usage: int = 1000,
                           rules: Mapping[str, Sequence[StreetRule]] = STREET_RULES) -> Optional[ResolutionResult]:
    """Medium-confidence answer for an address in a street-level boundary ZIP, or None."""
    if boundary.precision != BoundaryPrecision.STREET:
        return None
    rule = match_street_rule(boundary.zip_code, address, rules)
    if rule is None:
        return None

    others = [boundary.primary, *boundary.alternatives]
    alternatives = [
        Alternative(utility=u, reason="other TDSP in this boundary ZIP")
        for u in others if u.duns != rule.utility.duns
    ]
    logger.debug(f"Street rule matched {address!r} in {boundary.zip_code}: {rule.utility.name}")
    return ResolutionResult(
        zip_code=boundary.zip_code,
        utility=rule.utility,
        method=Method.STREET_RULE,
        confidence=Confidence.MEDIUM,
        alternatives=alternatives,
        requires_address=True,
        boundary_precision=boundary.precision,
        notes=rule.notes or "Matched street-level boundary rule",
        usage=usage,
    )
