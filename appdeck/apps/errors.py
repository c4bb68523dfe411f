"""
Error taxonomy for appdeck.

Every error raised across a component boundary derives from AppsError,
so callers can catch the family or a single kind. Errors that cross the
Call protocol are turned into error CallResponses with
CallResponse.error_response().
"""

from __future__ import annotations


class AppsError(Exception):
    """Base exception for appdeck errors."""

    kind: str = "error"

    def __init__(self, message: str, *, detail: str | None = None):
        super().__init__(message)
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.args[0]}: {self.detail}"
        return str(self.args[0])


class PermissionDeniedError(AppsError, PermissionError):
    """Raised when a request lacks a required identity (acting user, calling App)."""

    kind = "forbidden"


class ValidationError(AppsError):
    """Raised when an input or a decoded payload is invalid."""

    kind = "invalid"


class NotFoundError(AppsError):
    """Raised when a stored entry or cloud resource does not exist."""

    kind = "not_found"


class TransportError(AppsError):
    """
    Raised when an Upstream fails to deliver a call or fetch an asset.

    Attributes:
        status_code: HTTP status (or Lambda statusCode) when one was received
    """

    kind = "transport"

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code

    def __str__(self) -> str:
        text = super().__str__()
        if self.status_code:
            return f"{text} (status={self.status_code})"
        return text


class CallTimeoutError(AppsError, TimeoutError):
    """Raised when the deadline elapses before the backend responds."""

    kind = "timeout"


class ProvisioningError(AppsError):
    """Raised when a cloud resource cannot be resolved, created, updated or deleted."""

    kind = "provisioning"


class ConfigurationError(AppsError):
    """Raised when required configuration is missing before any remote call."""

    kind = "configuration"
