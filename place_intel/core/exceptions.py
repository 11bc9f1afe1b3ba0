# place_intel/core/exceptions.py
"""
Custom exception hierarchy for the place intelligence engine.
All exceptions inherit from PlaceIntelError for consistent handling.

None of these ever reach a caller of build_place_intelligence(): gateway
errors are absorbed at the gateway boundary and anything else is absorbed
by the resilience wrapper in the intelligence service.
"""

from typing import Optional


class PlaceIntelError(Exception):
    """Base exception for all place intelligence errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "PLACE_INTEL_ERROR",
        details: Optional[dict] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# ===========================================
# Upstream Exceptions
# ===========================================


class UpstreamUnavailableError(PlaceIntelError):
    """Network failure, timeout or non-2xx status from a collaborator."""

    def __init__(self, service: str, reason: str, status_code: Optional[int] = None):
        self.service = service
        self.status_code = status_code
        super().__init__(
            message=f"{service} unavailable: {reason}",
            error_code="UPSTREAM_UNAVAILABLE",
            details={"service": service, "status_code": status_code},
        )


class MalformedResponseError(PlaceIntelError):
    """Collaborator answered, but not with the shape we expect."""

    def __init__(self, service: str, reason: str):
        self.service = service
        super().__init__(
            message=f"{service} returned a malformed response: {reason}",
            error_code="MALFORMED_RESPONSE",
            details={"service": service},
        )


class ConfigurationError(PlaceIntelError):
    """A required endpoint or credential is not configured."""

    def __init__(self, setting: str):
        super().__init__(
            message=f"{setting} is not configured",
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )


# ===========================================
# Telemetry Exceptions
# ===========================================


class TelemetryError(PlaceIntelError):
    """Snapshot write to the telemetry sink failed."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Telemetry write failed: {reason}",
            error_code="TELEMETRY_ERROR",
        )
