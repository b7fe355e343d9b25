# errors.py
# Exception hierarchy for the tracking package.
# Every error here is recoverable: callers turn it into a notice or a state.

from enum import Enum
from typing import Optional


class NavigationError(Exception):
    """Base class for all tracking errors."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class GeolocationErrorReason(Enum):
    PERMISSION_DENIED    = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT              = "timeout"


class GeolocationError(NavigationError):
    """The device could not deliver a position."""

    def __init__(self, reason: GeolocationErrorReason, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or reason.value, {"reason": reason.value})


class RouteUnavailableError(NavigationError):
    """Directions could not be obtained. reason: network | no_route | malformed."""

    def __init__(self, reason: str, message: str = "", details: Optional[dict] = None) -> None:
        self.reason = reason
        super().__init__(message or f"Route unavailable ({reason})", details)


class DealStoreError(NavigationError):
    """Backend read or write failed."""
