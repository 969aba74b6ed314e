"""Error types shared by every resolution stage.

One hierarchy, tagged by ``ErrorKind``. Whether an error is worth retrying is
carried on the instance (``retryable``) instead of being re-derived from HTTP
status codes by each caller.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_ZIP_FORMAT = "INVALID_ZIP_FORMAT"
    NON_TEXAS_ZIP = "NON_TEXAS_ZIP"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_USAGE = "INVALID_USAGE"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    ADDRESS_LOOKUP_ERROR = "ADDRESS_LOOKUP_ERROR"
    PRICING_SERVICE_ERROR = "PRICING_SERVICE_ERROR"
    DATA_VALIDATION_ERROR = "DATA_VALIDATION_ERROR"
    NO_MATCH_FOUND = "NO_MATCH_FOUND"


_USER_MESSAGES = {
    ErrorKind.INVALID_ZIP_FORMAT: "Please enter a valid 5-digit ZIP code.",
    ErrorKind.NON_TEXAS_ZIP: "This ZIP code is outside Texas. We only compare electricity plans in Texas.",
    ErrorKind.INVALID_ADDRESS: "Please enter a street address of at least 5 characters.",
    ErrorKind.INVALID_USAGE: "Monthly usage must be between 100 and 5000 kWh.",
    ErrorKind.NETWORK_ERROR: "We're having trouble reaching the utility service right now. Please try again.",
    ErrorKind.TIMEOUT: "The utility service is taking longer than usual to respond. Please try again in a moment.",
    ErrorKind.ADDRESS_LOOKUP_ERROR: "We couldn't look up that address right now. Please try again.",
    ErrorKind.PRICING_SERVICE_ERROR: "Plan pricing is temporarily unavailable. Please try again.",
    ErrorKind.DATA_VALIDATION_ERROR: "We received an unexpected response from the utility service.",
    ErrorKind.NO_MATCH_FOUND: "We couldn't find that address. Please check the street number and name.",
}


class ResolutionError(Exception):
    """Base class for all resolution failures."""

    kind: ErrorKind = ErrorKind.NETWORK_ERROR
    default_retryable: bool = False

    def __init__(self, message: str, context: Optional[dict] = None,
                 retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.retryable = self.default_retryable if retryable is None else retryable

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.kind, "Something went wrong. Please try again.")

    def to_dict(self) -> dict:
        return {
            "code": self.kind.value,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "context": self.context,
        }

    def __repr__(self):
        return f"{type(self).__name__}({self.message!r}, retryable={self.retryable})"


class InvalidZipFormat(ResolutionError):
    kind = ErrorKind.INVALID_ZIP_FORMAT


class NonTexasZip(ResolutionError):
    kind = ErrorKind.NON_TEXAS_ZIP


class InvalidAddress(ResolutionError):
    kind = ErrorKind.INVALID_ADDRESS


class InvalidUsage(ResolutionError):
    kind = ErrorKind.INVALID_USAGE


class NetworkError(ResolutionError):
    """Transport failure talking to an upstream service."""

    kind = ErrorKind.NETWORK_ERROR
    default_retryable = True


class RequestTimeout(NetworkError):
    kind = ErrorKind.TIMEOUT


class AddressLookupError(NetworkError):
    """Address/utility registry failed (HTTP error, circuit open, ...)."""

    kind = ErrorKind.ADDRESS_LOOKUP_ERROR


class PricingServiceError(NetworkError):
    kind = ErrorKind.PRICING_SERVICE_ERROR


class DataValidationError(ResolutionError):
    kind = ErrorKind.DATA_VALIDATION_ERROR


class NoMatchFound(ResolutionError):
    """The address registry answered but returned zero matches."""

    kind = ErrorKind.NO_MATCH_FOUND
