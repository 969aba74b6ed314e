"""Last-resort TDSP inference from numeric ZIP ranges.

Pure functions over a static range table: no I/O, no cache. Results are
always low confidence.
"""

from typing import NamedTuple, Optional

from .models import Confidence, Method, ResolutionResult
from .static_tables import UTILITIES


class PatternRange(NamedTuple):
    start: int
    end: int
    utility_key: str
    region: str


class NonChoiceRegion(NamedTuple):
    start: int
    end: int
    name: str


# Texas areas outside the ERCOT competitive market. These never match a
# pattern range, so a ZIP landing here is "outside coverage", not "no data".
NON_CHOICE_REGIONS = (
    NonChoiceRegion(75500, 75599, "Texarkana (SWEPCO, SPP)"),
    NonChoiceRegion(77600, 77799, "Southeast Texas (Entergy Texas, MISO)"),
    NonChoiceRegion(79000, 79199, "Panhandle (Xcel Energy / SPS, SPP)"),
    NonChoiceRegion(79800, 79999, "Far West Texas (El Paso Electric, WECC)"),
)

# First match wins, so narrower ranges go before the broad ones they sit in.
PATTERN_RANGES = (
    PatternRange(75000, 75499, "ONCOR", "Dallas / North Texas"),
    PatternRange(75600, 75999, "ONCOR", "East Texas"),
    PatternRange(76000, 76999, "ONCOR", "Fort Worth / Central North Texas"),
    PatternRange(77000, 77599, "CENTERPOINT", "Houston / Gulf Coast"),
    PatternRange(77900, 77999, "AEP_CENTRAL", "Victoria"),
    PatternRange(78000, 78599, "AEP_CENTRAL", "South Texas / Coastal Bend / Valley"),
    PatternRange(78600, 78999, "TNMP", "Central Texas"),
    PatternRange(79400, 79499, "LUBBOCK", "Lubbock"),
    PatternRange(79200, 79699, "ONCOR", "West Texas"),
    PatternRange(79700, 79799, "AEP_NORTH", "Permian Basin / Far West"),
)


def _match_range(zip_code: str) -> Optional[PatternRange]:
    try:
        n = int(zip_code)
    except (TypeError, ValueError):
        return None
    for r in PATTERN_RANGES:
        if r.start <= n <= r.end:
            return r
    return None


def non_choice_region(zip_code: str) -> Optional[str]:
    """Name of the non-ERCOT / non-choice region a ZIP falls in, if any."""
    try:
        n = int(zip_code)
    except (TypeError, ValueError):
        return None
    for region in NON_CHOICE_REGIONS:
        if region.start <= n <= region.end:
            return region.name
    return None


def resolve_by_pattern(zip_code: str, usage: int = 1000) -> Optional[ResolutionResult]:
    r = _match_range(zip_code)
    if r is None:
        return None
    return ResolutionResult(
        zip_code=zip_code,
        utility=UTILITIES[r.utility_key],
        method=Method.PATTERN_MATCH,
        confidence=Confidence.LOW,
        notes=f"Inferred from ZIP range {r.start}-{r.end} ({r.region})",
        usage=usage,
    )
