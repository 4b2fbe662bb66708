"""Error taxonomy shared by providers, loaders and the chat orchestrator."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ErrorInfo:
    """Structured error response for API and stream consumers."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class AssistantError(Exception):
    """Base exception carrying structured error information."""

    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.error = ErrorInfo(code=code or self.code, message=message, details=details or {})
        super().__init__(message)


class ConfigurationError(AssistantError):
    """Missing or invalid provider settings, or an embedding dimensionality mismatch.

    Fatal and never retried.
    """

    code = "CONFIGURATION_ERROR"


class TransportError(AssistantError):
    """Network, auth or timeout failure while calling a provider."""

    code = "TRANSPORT_ERROR"


class ParseError(AssistantError):
    """Malformed document or provider payload that can be recovered from locally."""

    code = "PARSE_ERROR"


class StreamError(AssistantError):
    """Completion stream broke after it started; earlier fragments remain valid."""

    code = "STREAM_ERROR"


def transport_error_for_status(provider: str, status_code: int, body: str = "") -> TransportError:
    """Map a non-success HTTP status to a TransportError with a specific code."""
    details = {"provider": provider, "status_code": status_code, "body": body[:500]}
    if status_code in (401, 403):
        return TransportError(
            f"{provider}: authentication failed. Please check your API key.",
            code="AUTHENTICATION_ERROR",
            details=details,
        )
    if status_code == 429:
        return TransportError(
            f"{provider}: rate limit exceeded. Please try again in a few moments.",
            code="RATE_LIMIT_ERROR",
            details=details,
        )
    return TransportError(
        f"{provider}: request failed with status {status_code}",
        code="API_ERROR",
        details=details,
    )
