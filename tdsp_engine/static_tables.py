"""Static reference tables: TDSPs, direct ZIP assignments, boundary ZIPs, municipal ZIPs.

Loaded once from the JSON files in ``tdsp_engine/data`` at import time and
exposed read-only. ``ZipTableLookup`` is the direct/boundary resolver built on
top of them.
"""

import json
import logging
from collections import Counter
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .models import (
    Alternative,
    BoundaryPrecision,
    BoundaryZip,
    Confidence,
    Method,
    MunicipalUtility,
    ResolutionResult,
    UtilityRecord,
    Zone,
)

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent / "data"

# Probe order for the dynamic prober (largest territory first)
PROBE_ORDER = ("ONCOR", "CENTERPOINT", "TNMP", "AEP_CENTRAL", "AEP_NORTH")

_MUNICIPAL_MESSAGES = {
    "municipal": "{name} is a city-owned utility. Residents can't choose a retail electricity provider here.",
    "cooperative": "This area is served by an electric cooperative ({name}). Retail choice isn't available.",
    "regulated": "{name} is a regulated utility outside the ERCOT competitive market. Retail choice isn't available.",
}


def read_data_json(filename: str) -> dict:
    with open(_DATA_DIR / filename) as f:
        return json.load(f)


def load_utilities() -> Dict[str, UtilityRecord]:
    data = read_data_json("utilities.json")["utilities"]
    utilities = {}
    for key, entry in data.items():
        utilities[key] = UtilityRecord(
            duns=entry["duns"],
            name=entry["name"],
            zone=Zone(entry["zone"]),
            tier=entry.get("tier", 3),
            priority=entry.get("priority", 0.5),
            key=key,
        )
    return utilities


def load_zip_assignments(utilities: Mapping[str, UtilityRecord]) -> Dict[str, UtilityRecord]:
    data = read_data_json("zip_assignments.json")["assignments"]
    assignments: Dict[str, UtilityRecord] = {}
    for key, zips in data.items():
        utility = utilities[key]
        for zip_code in zips:
            existing = assignments.get(zip_code)
            if existing and existing.duns != utility.duns:
                raise ValueError(
                    f"ZIP {zip_code} assigned to both {existing.key} and {utility.key}"
                )
            assignments[zip_code] = utility
    return assignments


def load_boundary_zips(utilities: Mapping[str, UtilityRecord]) -> Dict[str, BoundaryZip]:
    data = read_data_json("boundary_zips.json")["boundary_zips"]
    registry = {}
    for zip_code, entry in data.items():
        registry[zip_code] = BoundaryZip(
            zip_code=zip_code,
            primary=utilities[entry["primary"]],
            alternatives=tuple(utilities[k] for k in entry.get("alternatives", [])),
            requires_address=bool(entry.get("requires_address", False)),
            precision=BoundaryPrecision(entry["precision"]),
            notes=entry.get("notes", ""),
        )
    return registry


def load_municipal_zips() -> Dict[str, dict]:
    data = read_data_json("municipal_zips.json")["utilities"]
    municipal = {}
    for entry in data:
        for zip_code in entry["zips"]:
            municipal[zip_code] = {"name": entry["name"], "kind": entry.get("kind", "municipal")}
    return municipal


UTILITIES: Mapping[str, UtilityRecord] = MappingProxyType(load_utilities())
ZIP_ASSIGNMENTS: Mapping[str, UtilityRecord] = MappingProxyType(load_zip_assignments(UTILITIES))
BOUNDARY_ZIPS: Mapping[str, BoundaryZip] = MappingProxyType(load_boundary_zips(UTILITIES))
MUNICIPAL_ZIPS: Mapping[str, dict] = MappingProxyType(load_municipal_zips())

_UTILITIES_BY_DUNS = {u.duns: u for u in UTILITIES.values()}

logger.info(
    f"Static tables: {len(UTILITIES)} TDSPs, {len(ZIP_ASSIGNMENTS)} direct ZIPs, "
    f"{len(BOUNDARY_ZIPS)} boundary ZIPs, {len(MUNICIPAL_ZIPS)} municipal ZIPs"
)


def utility_by_duns(duns: str) -> Optional[UtilityRecord]:
    return _UTILITIES_BY_DUNS.get((duns or "").strip())


def utility_for_registry(duns: str, name: str) -> UtilityRecord:
    """Known record for a DUNS, or an ad-hoc record for a TDSP we don't carry."""
    known = utility_by_duns(duns)
    if known:
        return known
    return UtilityRecord(duns=(duns or "").strip(), name=(name or "").strip())


class ZipTableLookup:
    """Direct/boundary resolver over the static tables."""

    def __init__(self, assignments: Mapping[str, UtilityRecord] = None,
                 boundary_zips: Mapping[str, BoundaryZip] = None,
                 municipal_zips: Mapping[str, dict] = None):
        self.assignments = ZIP_ASSIGNMENTS if assignments is None else assignments
        self.boundary_zips = BOUNDARY_ZIPS if boundary_zips is None else boundary_zips
        self.municipal_zips = MUNICIPAL_ZIPS if municipal_zips is None else municipal_zips

    def resolve_zip(self, zip_code: str, usage: int = 1000) -> Optional[ResolutionResult]:
        """
        Resolve a validated ZIP from the static tables.

        Boundary registry first, then direct mapping. Returns None when the
        ZIP is in neither table.
        """
        boundary = self.boundary_zips.get(zip_code)
        if boundary:
            return ResolutionResult(
                zip_code=zip_code,
                utility=boundary.primary,
                method=Method.BOUNDARY_PRIMARY,
                confidence=Confidence.MEDIUM if boundary.requires_address else Confidence.HIGH,
                alternatives=[
                    Alternative(utility=u, reason=f"Also serves parts of {zip_code} ({boundary.precision.value} boundary)")
                    for u in boundary.alternatives
                ],
                requires_address=boundary.requires_address,
                boundary_precision=boundary.precision,
                notes=boundary.notes,
                usage=usage,
            )

        utility = self.assignments.get(zip_code)
        if utility:
            return ResolutionResult(
                zip_code=zip_code,
                utility=utility,
                method=Method.DIRECT_MAPPING,
                confidence=Confidence.HIGH,
                usage=usage,
            )
        return None

    def is_boundary(self, zip_code: str) -> bool:
        return zip_code in self.boundary_zips

    def boundary(self, zip_code: str) -> Optional[BoundaryZip]:
        return self.boundary_zips.get(zip_code)

    def requires_address(self, zip_code: str) -> bool:
        b = self.boundary_zips.get(zip_code)
        return bool(b and b.requires_address)

    def municipal(self, zip_code: str) -> Optional[MunicipalUtility]:
        entry = self.municipal_zips.get(zip_code)
        if not entry:
            return None
        kind = entry.get("kind", "municipal")
        template = _MUNICIPAL_MESSAGES.get(kind, _MUNICIPAL_MESSAGES["municipal"])
        return MunicipalUtility(
            zip_code=zip_code,
            utility_name=entry["name"],
            utility_kind=kind,
            message=template.format(name=entry["name"]),
        )

    @property
    def stats(self) -> dict:
        by_precision = Counter(b.precision.value for b in self.boundary_zips.values())
        by_metro = {
            "dallas_fort_worth": sum(1 for z in self.boundary_zips if z.startswith(("75", "76"))),
            "houston": sum(1 for z in self.boundary_zips if z.startswith("77")),
            "austin": sum(1 for z in self.boundary_zips if z.startswith(("786", "787"))),
            "san_antonio": sum(1 for z in self.boundary_zips if z.startswith("782")),
        }
        return {
            "direct_zips": len(self.assignments),
            "boundary_zips": len(self.boundary_zips),
            "municipal_zips": len(self.municipal_zips),
            "requires_address": sum(1 for b in self.boundary_zips.values() if b.requires_address),
            "by_precision": dict(by_precision),
            "by_metro": by_metro,
        }
