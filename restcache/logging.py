"""
Structured logging for restcache.

Engines log through ``get_logger``; the host application calls
``configure_logging`` once. Every event carries the operation and call ids
bound by ``bind_operation`` and, when OpenTelemetry is installed, the ids of
the active span.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Any, Dict, Iterator, List, Mapping, Optional

import structlog

try:
    from opentelemetry import trace
    HAS_OPENTELEMETRY = True
except ImportError:
    HAS_OPENTELEMETRY = False

operation_id_var: ContextVar[Optional[str]] = ContextVar("restcache_operation_id", default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar("restcache_request_id", default=None)

KEY_FIELDS = ("key", "list_key")


def _span_ids() -> Dict[str, str]:
    if not HAS_OPENTELEMETRY:
        return {}
    span = trace.get_current_span()
    if span is None or not span.is_recording():
        return {}
    context = span.get_span_context()
    ids = {}
    if context.trace_id:
        ids["trace_id"] = format(context.trace_id, "032x")
    if context.span_id:
        ids["span_id"] = format(context.span_id, "016x")
    return ids


def add_engine_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the bound operation and call ids plus any active span."""
    operation_id = operation_id_var.get()
    if operation_id:
        event_dict.setdefault("operation_id", operation_id)
    request_id = request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    event_dict.update(_span_ids())
    return event_dict


def format_key(key: Any) -> Any:
    """``["pets", {"status": "sold"}]`` -> ``"pets?status=sold"``."""
    if not isinstance(key, (list, tuple)):
        return key
    segments = []
    query = ""
    for part in key:
        if isinstance(part, Mapping):
            query = "?" + "&".join(f"{name}={part[name]}" for name in sorted(part))
        else:
            segments.append(str(part))
    return "/".join(segments) + query


def render_query_keys(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Render cache keys as compact strings."""
    for field in KEY_FIELDS:
        if field in event_dict:
            event_dict[field] = format_key(event_dict[field])
    return event_dict


def configure_logging(log_level: str = "info", log_format: str = "json", stream: Optional[IO[str]] = None) -> None:
    """Route structlog through the stdlib logger with JSON or console output."""
    processors: List[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_engine_context,
        render_query_keys,
        structlog.processors.format_exc_info,
    ]
    if log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )


def configure_from_settings(settings: Any) -> None:
    """Apply ``log_level`` / ``log_format`` from EngineSettings."""
    configure_logging(settings.log_level, settings.log_format)


@contextmanager
def bind_operation(operation_id: str, request_id: Optional[str] = None) -> Iterator[str]:
    """Scope log correlation to a single engine call.

    Nested calls inherit the enclosing request id, so refetches triggered by a
    mutation log under the mutation's id.
    """
    op_token = operation_id_var.set(operation_id)
    req_token = request_id_var.set(request_id or request_id_var.get() or uuid.uuid4().hex)
    try:
        yield request_id_var.get()  # type: ignore[misc]
    finally:
        request_id_var.reset(req_token)
        operation_id_var.reset(op_token)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
