"""
Error taxonomy for restcache engines.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

try:
    from opentelemetry import trace
    HAS_OPENTELEMETRY = True
except ImportError:
    HAS_OPENTELEMETRY = False


class ErrorResponse(BaseModel):
    """Serializable view of an engine error."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class RestCacheException(Exception):
    """Base exception for restcache."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        if HAS_OPENTELEMETRY:
            current_span = trace.get_current_span()
            if current_span and current_span.is_recording():
                span_context = current_span.get_span_context()
                if span_context.trace_id != 0:
                    trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(RestCacheException):
    """An engine was wired to an operation it cannot serve."""

    def __init__(self, message: str = "Invalid engine configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class UnresolvedParametersError(RestCacheException):
    """A call was made before every path placeholder had a value."""

    def __init__(self, operation_id: str, path: str, params: Optional[Dict[str, Any]] = None):
        super().__init__(
            "UNRESOLVED_PARAMETERS",
            f"Cannot execute '{operation_id}': path parameters not resolved. Path: '{path}'",
            {"operation_id": operation_id, "path": path, "params": dict(params or {})}
        )
        self.operation_id = operation_id
        self.path = path


class TransportError(RestCacheException):
    """The request executor could not obtain a successful response."""

    def __init__(
        self,
        message: str = "Transport error",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        code: str = "TRANSPORT_ERROR",
    ):
        details = dict(details or {})
        if status_code is not None:
            details.setdefault("status_code", status_code)
        super().__init__(code, message, details)
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        """True for 4xx responses."""
        return self.status_code is not None and 400 <= self.status_code < 500


class ClientTransportError(TransportError):
    """4xx response; never retried."""

    def __init__(self, message: str = "Client error", status_code: int = 400, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code, details, code="CLIENT_TRANSPORT_ERROR")


class TransientTransportError(TransportError):
    """5xx response, timeout or connection failure; reads may retry it."""

    def __init__(self, message: str = "Transient transport error", status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code, details, code="TRANSIENT_TRANSPORT_ERROR")


class ReadCancelledError(RestCacheException):
    """An in-flight read was cancelled before it produced data."""

    def __init__(self, key: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__("READ_CANCELLED", f"In-flight read for {key!r} was cancelled", details)
        self.key = key


class InvalidationWarning(RestCacheException):
    """A requested invalidation could not be performed and was skipped.

    Warnings are collected on the mutation result and logged; they are never
    raised by the invalidation protocol.
    """

    def __init__(self, operation_id: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALIDATION_WARNING", message, details)
        self.operation_id = operation_id


def classify_status(status_code: int, message: str, details: Optional[Dict[str, Any]] = None) -> TransportError:
    """Map an HTTP failure status onto the transport error taxonomy."""
    if 400 <= status_code < 500:
        return ClientTransportError(message, status_code, details)
    return TransientTransportError(message, status_code, details)
