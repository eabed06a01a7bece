"""Correlation fields attached to every log line of a request or command.

Trace and span ids come from the active OpenTelemetry span whenever one is
recording, so log lines and exported spans share ids. Outside a span (CLI
runs, startup) a per-context fallback id pair is used instead.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
import re
from uuid import uuid4

from opentelemetry import trace


_TRACE_ID = re.compile(r"^[0-9a-f]{32}$")


@dataclass(frozen=True, slots=True)
class LogContext:
    """Ids plus the search fields known for the current unit of work."""

    trace_id: str
    span_id: str
    route: str = ""
    query: str = ""
    backend: str = ""

    def as_fields(self) -> dict[str, str]:
        """Non-empty fields, ready to merge into a log entry."""
        return {key: value for key, value in asdict(self).items() if value}


# Copied into worker threads by anyio.to_thread, so searches keep their request's fields
log_context: ContextVar[LogContext | None] = ContextVar("meme_search_log_context", default=None)


def new_trace_id() -> str:
    return uuid4().hex


def new_span_id() -> str:
    return uuid4().hex[:16]


def parse_trace_id(value: str | None) -> str | None:
    """Return ``value`` lowercased if it is a usable W3C trace id, else None."""
    if not value:
        return None
    candidate = value.strip().lower()
    if not _TRACE_ID.match(candidate) or candidate == "0" * 32:
        return None
    return candidate


def _base_context() -> LogContext:
    ctx = log_context.get()
    if ctx is None:
        ctx = LogContext(new_trace_id(), new_span_id())
        log_context.set(ctx)
    return ctx


def current_log_context() -> LogContext:
    """Return the fields for a log line emitted right now."""
    ctx = _base_context()
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return replace(
            ctx,
            trace_id=format(span_context.trace_id, "032x"),
            span_id=format(span_context.span_id, "016x"),
        )
    return ctx


@contextmanager
def bound_log_context(**fields: str) -> Iterator[LogContext]:
    """Overlay ``fields`` (route, query, backend) for the duration of the block."""
    token = log_context.set(replace(_base_context(), **fields))
    try:
        yield log_context.get()  # type: ignore[misc]
    finally:
        log_context.reset(token)


def start_log_context(trace_id: str | None = None, **fields: str) -> LogContext:
    """Begin a fresh context (new request), reusing ``trace_id`` when the caller supplied one."""
    ctx = LogContext(trace_id or new_trace_id(), new_span_id(), **fields)
    log_context.set(ctx)
    return ctx
