"""Logging, metrics and tracing shared by the HTTP app, the CLI and the services."""

from meme_search.observability.context import LogContext, bound_log_context, current_log_context
from meme_search.observability.logging import JsonFormatter, configure_logging
from meme_search.observability.metrics import (
    HTTP_REQUEST_LATENCY,
    INDEX_MUTATIONS,
    INDEX_RECORD_COUNT,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    get_metrics,
    get_metrics_content_type,
    track_latency,
)
from meme_search.observability.tracing import (
    TraceContextMiddleware,
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
    set_tracer,
    trace_request,
)


__all__ = [
    "HTTP_REQUEST_LATENCY",
    "INDEX_MUTATIONS",
    "INDEX_RECORD_COUNT",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "LogContext",
    "TraceContextMiddleware",
    "bound_log_context",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "current_log_context",
    "get_metrics",
    "get_metrics_content_type",
    "get_tracer",
    "init_tracing",
    "set_tracer",
    "trace_request",
    "track_latency",
]
