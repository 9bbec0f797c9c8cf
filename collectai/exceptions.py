"""
Exception hierarchy for the CollectAI backend.

Every error carries an error code and the HTTP status the API answers with,
so routers can let them propagate to the app-level handler.
"""

from typing import Any, Dict, Optional


class CollectAIError(Exception):
    """Base exception for all CollectAI errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        body = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CollectAIError):
    """Malformed input, rejected before any backend call."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )


class BackendUnavailable(CollectAIError):
    """A single AI backend failed (network, auth, API error or bad payload)."""

    def __init__(self, backend: str, message: str = "AI backend request failed"):
        super().__init__(
            message=f"{backend}: {message}",
            error_code="BACKEND_UNAVAILABLE",
            details={"backend": backend},
            status_code=502,
        )
        self.backend = backend


class ServiceUnavailable(CollectAIError):
    """Both AI backends failed. Terminal for the current request."""

    def __init__(self, message: str = "All AI services are currently unavailable"):
        super().__init__(
            message=message,
            error_code="SERVICE_UNAVAILABLE",
            status_code=503,
        )


class DataParseError(CollectAIError):
    """An AI response was not in the expected structured format."""

    def __init__(self, message: str = "Invalid AI response format"):
        super().__init__(
            message=message,
            error_code="DATA_PARSE_ERROR",
            status_code=422,
        )
