"""Data models for the TDSP resolution engine."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional


class Zone(str, Enum):
    NORTH = "North"
    COAST = "Coast"
    CENTRAL = "Central"
    SOUTH = "South"
    WEST = "West"
    VALLEY = "Valley"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Method(str, Enum):
    DIRECT_MAPPING = "direct_mapping"
    BOUNDARY_PRIMARY = "boundary_primary"
    ADDRESS_RESOLVED = "address_resolved"
    PATTERN_MATCH = "pattern_match"
    STREET_RULE = "street_rule"
    DYNAMIC_PROBE = "dynamic_probe"


class BoundaryPrecision(str, Enum):
    STREET = "street-level"
    BLOCK = "block-level"
    ZIP4 = "zip4-level"


class NotFoundReason(str, Enum):
    OUTSIDE_TEXAS = "outside_texas"
    OUTSIDE_COVERAGE = "outside_coverage"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class UtilityRecord:
    duns: str
    name: str
    zone: Optional[Zone] = None
    tier: int = 3
    priority: float = 0.5
    key: str = ""

    def to_dict(self) -> dict:
        return {
            "duns": self.duns,
            "name": self.name,
            "zone": self.zone.value if self.zone else None,
        }


@dataclass(frozen=True)
class BoundaryZip:
    zip_code: str
    primary: UtilityRecord
    alternatives: tuple
    requires_address: bool
    precision: BoundaryPrecision
    notes: str = ""

    def __post_init__(self):
        alt_ids = {u.duns for u in self.alternatives}
        if self.primary.duns in alt_ids:
            raise ValueError(f"Boundary ZIP {self.zip_code}: primary utility listed as an alternative")
        if self.requires_address and not self.alternatives:
            raise ValueError(f"Boundary ZIP {self.zip_code}: requires_address set with no alternatives")


@dataclass
class AddressMatch:
    esiid: str
    address: str
    utility: UtilityRecord
    city: str = ""
    state: str = "TX"
    zip_code: str = ""
    county: str = ""
    service_voltage: str = ""
    meter_type: str = ""
    # Extended fields, only populated by a details lookup
    premise_number: Optional[str] = None
    customer_class: Optional[str] = None
    load_profile: Optional[str] = None
    rate_class: Optional[str] = None
    switch_hold: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "esiid": self.esiid,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "county": self.county,
            "tdsp_duns": self.utility.duns,
            "tdsp_name": self.utility.name,
            "service_voltage": self.service_voltage,
            "meter_type": self.meter_type,
            "premise_number": self.premise_number,
            "customer_class": self.customer_class,
            "load_profile": self.load_profile,
            "rate_class": self.rate_class,
            "switch_hold": self.switch_hold,
        }


@dataclass
class Alternative:
    utility: UtilityRecord
    reason: str = ""
    esiid: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> dict:
        d = self.utility.to_dict()
        d["reason"] = self.reason
        if self.esiid:
            d["esiid"] = self.esiid
        if self.address:
            d["address"] = self.address
        return d


@dataclass
class ResolutionResult:
    zip_code: str
    utility: UtilityRecord
    method: Method
    confidence: Confidence
    alternatives: List[Alternative] = field(default_factory=list)
    esiid: Optional[str] = None
    matched_address: Optional[str] = None
    requires_address: bool = False
    boundary_precision: Optional[BoundaryPrecision] = None
    notes: str = ""
    usage: int = 1000
    cache_hit: bool = field(default=False, compare=False)

    status = "resolved"

    @property
    def api_params(self) -> dict:
        """Parameters ready for a plan search against the pricing service."""
        return {"tdsp_duns": self.utility.duns, "display_usage": self.usage}

    def without_alternatives(self) -> "ResolutionResult":
        return replace(self, alternatives=[])

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "zip_code": self.zip_code,
            "tdsp": self.utility.to_dict(),
            "method": self.method.value,
            "confidence": self.confidence.value,
            "alternatives": [a.to_dict() for a in self.alternatives],
            "esiid": self.esiid,
            "matched_address": self.matched_address,
            "requires_address": self.requires_address,
            "boundary_precision": self.boundary_precision.value if self.boundary_precision else None,
            "notes": self.notes,
            "api_params": self.api_params,
            "municipal_utility": False,
            "cache_hit": self.cache_hit,
        }


@dataclass
class MunicipalUtility:
    """Outcome for ZIPs served by a utility with no retail choice."""

    zip_code: str
    utility_name: str
    utility_kind: str = "municipal"  # "municipal", "cooperative", or "regulated"
    message: str = ""

    status = "municipal_utility"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "zip_code": self.zip_code,
            "municipal_utility": True,
            "utility_name": self.utility_name,
            "utility_kind": self.utility_kind,
            "message": self.message,
        }


@dataclass
class StrategyAttempt:
    strategy: str
    outcome: str  # "no_result", "skipped", "error", "timeout"
    detail: str = ""

    def to_dict(self) -> dict:
        return {"strategy": self.strategy, "outcome": self.outcome, "detail": self.detail}


_NOT_FOUND_MESSAGES = {
    NotFoundReason.OUTSIDE_TEXAS: (
        "This ZIP code is outside Texas. We only compare electricity plans in Texas."
    ),
    NotFoundReason.OUTSIDE_COVERAGE: (
        "This Texas ZIP code is outside the competitive electricity market we cover. "
        "Your power is likely provided by a regulated or non-ERCOT utility."
    ),
    NotFoundReason.NO_DATA: (
        "This area should have electricity choice, but we don't have utility data for it yet. "
        "Please enter your street address or contact support."
    ),
}


@dataclass
class NotFound:
    zip_code: str
    reason: NotFoundReason
    attempted_strategies: List[StrategyAttempt] = field(default_factory=list)

    status = "not_found"

    @property
    def message(self) -> str:
        return _NOT_FOUND_MESSAGES[self.reason]

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "zip_code": self.zip_code,
            "municipal_utility": False,
            "reason": self.reason.value,
            "message": self.message,
            "attempted_strategies": [a.to_dict() for a in self.attempted_strategies],
        }
