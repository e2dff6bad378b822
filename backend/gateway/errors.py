"""
Gateway Error Taxonomy

Every error the gateway raises on purpose carries the HTTP status it maps to
and an optional set of extra JSON fields. The app-level exception handlers
turn any GatewayError into `{"error": message, **extra}`.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for errors that become a JSON error response."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra: Dict[str, Any] = dict(extra or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class ValidationError(GatewayError):
    """Bad input shape (missing parameter, malformed id)."""

    status_code = 400


class ResourceLimitError(GatewayError):
    """A size or capacity ceiling was hit."""

    status_code = 413


class UpstreamError(GatewayError):
    """An upstream service answered with an error or could not be reached."""

    status_code = 502


class GatewayTimeout(GatewayError):
    """A deadline elapsed before a result was available."""

    status_code = 504


class InternalError(GatewayError):
    """Unexpected failure inside the gateway."""

    status_code = 500
