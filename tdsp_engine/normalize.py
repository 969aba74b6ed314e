"""Street address normalization for registry lookups and match scoring."""

import re
from typing import Optional, Tuple

# Street-type abbreviations expanded to their full USPS word
_STREET_TYPES = {
    "st": "Street",
    "ave": "Avenue",
    "av": "Avenue",
    "rd": "Road",
    "blvd": "Boulevard",
    "dr": "Drive",
    "ln": "Lane",
    "ct": "Court",
    "pl": "Place",
    "pkwy": "Parkway",
    "cir": "Circle",
    "hwy": "Highway",
    "fwy": "Freeway",
}

_DIRECTIONALS = {"n", "s", "e", "w", "ne", "nw", "se", "sw"}

# Trailing punctuation kept after expansion ("Dr," -> "Drive,")
_TOKEN_RE = re.compile(r"^([A-Za-z]+)\.?(,?)$")

# Unit designators (and runs of them, "Apt #4") collapse to one "Apt"
_UNIT_RE = re.compile(r"(?:(?:\b(?:apartment|apt|unit|suite|ste)\b\.?|#)\s*)+", re.IGNORECASE)
_APT_RE = re.compile(r"\bApt\b")

_WS_RE = re.compile(r"\s+")

_HOUSE_NUMBER_RE = re.compile(r"^(\d+)[A-Za-z]?\s+(.+)$")


def _split_unit(text: str) -> Tuple[str, str]:
    m = _APT_RE.search(text)
    if not m:
        return text, ""
    return text[:m.start()].rstrip(), text[m.start():]


def _expand_street_type(street: str) -> str:
    """Expand the street-type token that ends the street name, skipping a trailing directional."""
    tokens = street.split(" ")
    i = len(tokens) - 1
    while i > 0 and tokens[i].lower().rstrip(".,") in _DIRECTIONALS:
        i -= 1
    # The first token is a house number or part of the name, never a street type
    if i <= 0:
        return street
    m = _TOKEN_RE.match(tokens[i])
    if m and m.group(1).lower() in _STREET_TYPES:
        tokens[i] = _STREET_TYPES[m.group(1).lower()] + m.group(2)
    return " ".join(tokens)


def normalize_address(address: str) -> str:
    """
    Canonical form of a street address.

    Maps unit designators to "Apt ", expands the street-type abbreviation
    at the end of the street name ("St Mary's Rd" -> "St Mary's Road"),
    and collapses whitespace. Running it twice gives the same result.
    """
    if not address:
        return ""
    text = _WS_RE.sub(" ", address).strip()
    text = _WS_RE.sub(" ", _UNIT_RE.sub("Apt ", text)).strip()
    street, unit = _split_unit(text)
    if street:
        street = _expand_street_type(street)
    return f"{street} {unit}".strip()


def split_street_address(address: str) -> Optional[Tuple[int, str]]:
    """(house number, lowercased street name) of a normalized address, or None."""
    street, _ = _split_unit(normalize_address(address))
    m = _HOUSE_NUMBER_RE.match(street)
    if not m:
        return None
    return int(m.group(1)), m.group(2).rstrip(",").lower()


def address_cache_key(address: str, zip_code: str) -> str:
    return f"{address.strip().lower()}_{zip_code}"
