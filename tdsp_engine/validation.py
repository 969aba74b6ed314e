"""Input validation for ZIP codes, addresses, and usage hints."""

import math
import re
from typing import Optional

from .errors import InvalidAddress, InvalidUsage, InvalidZipFormat, NonTexasZip

_ZIP_RE = re.compile(r"^[0-9]{5}$")

TEXAS_ZIP_MIN = 75000
TEXAS_ZIP_MAX = 79999

DEFAULT_USAGE = 1000
USAGE_MIN = 100
USAGE_MAX = 5000

MIN_ADDRESS_LENGTH = 5


def validate_zip(zip_code) -> str:
    """Return the ZIP, or raise InvalidZipFormat / NonTexasZip. No whitespace is tolerated."""
    if not isinstance(zip_code, str):
        raise InvalidZipFormat("ZIP code must be a string", {"zip_code": repr(zip_code)})
    if not _ZIP_RE.fullmatch(zip_code):
        raise InvalidZipFormat("ZIP code must be exactly 5 digits", {"zip_code": zip_code})
    if not TEXAS_ZIP_MIN <= int(zip_code) <= TEXAS_ZIP_MAX:
        raise NonTexasZip(f"ZIP code {zip_code} is outside Texas", {"zip_code": zip_code})
    return zip_code


def is_texas_zip(zip_code: str) -> bool:
    try:
        validate_zip(zip_code)
    except (InvalidZipFormat, NonTexasZip):
        return False
    return True


def validate_address(address: Optional[str]) -> Optional[str]:
    """Blank means "no address"; anything else must be at least 5 characters."""
    if address is None:
        return None
    address = address.strip()
    if not address:
        return None
    if len(address) < MIN_ADDRESS_LENGTH:
        raise InvalidAddress("Address must be at least 5 characters", {"address": address})
    return address


def validate_usage(usage, default: int = DEFAULT_USAGE) -> int:
    if usage is None:
        return default
    if isinstance(usage, bool):
        raise InvalidUsage("Usage must be a number of kWh", {"usage": usage})
    try:
        value = float(usage)
    except (TypeError, ValueError):
        raise InvalidUsage("Usage must be a number of kWh", {"usage": usage})
    if not math.isfinite(value) or value != int(value) or not USAGE_MIN <= value <= USAGE_MAX:
        raise InvalidUsage(
            f"Usage must be a whole number between {USAGE_MIN} and {USAGE_MAX} kWh",
            {"usage": usage},
        )
    return int(value)
