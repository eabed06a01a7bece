"""OpenTelemetry spans for searches and HTTP requests."""

from __future__ import annotations

from contextlib import contextmanager
import logging
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import NonRecordingSpan, SpanContext, SpanKind, Status, StatusCode, TraceFlags

from meme_search.observability.context import log_context, new_span_id, parse_trace_id, start_log_context
from meme_search.observability.metrics import HTTP_REQUEST_LATENCY, OTLP_EXPORT_STATUS


if TYPE_CHECKING:
    from collections.abc import Iterator

    from opentelemetry.context import Context
    from opentelemetry.trace import Span, Tracer
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

TRACE_HEADER = "x-trace-id"

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}


def init_tracing(service_name: str = "meme-search") -> TracerProvider:
    """Install a global tracer provider for ``service_name``."""
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    trace.set_tracer_provider(provider)
    _tracer_holder["tracer"] = provider.get_tracer("meme_search")
    return provider


def configure_trace_exporter(
    endpoint: str,
    provider: TracerProvider | None = None,
    *,
    timeout_seconds: int = 10,
) -> bool:
    """Batch-export spans over OTLP/HTTP; a blank ``endpoint`` leaves export off.

    Returns:
        True when an exporter was attached
    """
    if not endpoint:
        return False
    if provider is None:
        current = trace.get_tracer_provider()
        provider = current if isinstance(current, TracerProvider) else init_tracing()

    OTLP_EXPORT_STATUS.labels(protocol="http").set(0)
    try:
        exporter = OTLPSpanExporter(endpoint=endpoint, timeout=timeout_seconds)
    except Exception as exc:
        logger.error("Could not create OTLP span exporter for %s: %s", endpoint, exc, exc_info=True)
        return False
    provider.add_span_processor(BatchSpanProcessor(exporter))
    OTLP_EXPORT_STATUS.labels(protocol="http").set(1)
    logger.info("Exporting spans to %s", endpoint)
    return True


def get_tracer() -> Tracer:
    tracer = _tracer_holder["tracer"]
    if tracer is None:
        tracer = _tracer_holder["tracer"] = trace.get_tracer("meme_search")
    return tracer


def set_tracer(tracer: Tracer | None) -> None:
    """Replace the module tracer (``None`` falls back to the global provider)."""
    _tracer_holder["tracer"] = tracer


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
    *,
    context: Context | None = None,
) -> Iterator[Span]:
    """Run the block inside a current span; exceptions mark it as failed and propagate.

    Log lines emitted inside the block carry this span's ids.
    """
    with get_tracer().start_as_current_span(
        name,
        context=context,
        kind=kind,
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise


def remote_parent(trace_id: str | None) -> Context | None:
    """Build a parent context so spans join the caller's trace from ``x-trace-id``."""
    parsed = parse_trace_id(trace_id)
    if parsed is None:
        return None
    parent = SpanContext(
        trace_id=int(parsed, 16),
        span_id=int(new_span_id(), 16),
        is_remote=True,
        trace_flags=TraceFlags(TraceFlags.SAMPLED),
    )
    return trace.set_span_in_context(NonRecordingSpan(parent))


class TraceContextMiddleware:
    """ASGI middleware giving each request a fresh log context.

    The trace id comes from ``x-trace-id`` when the caller sent a valid one, and
    the request path is recorded as ``route`` on every log line of the request.
    """

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        header = dict(scope.get("headers", [])).get(TRACE_HEADER.encode(), b"").decode("latin-1")
        token = log_context.set(None)
        start_log_context(parse_trace_id(header), route=scope.get("path", ""))
        try:
            await self.app(scope, receive, send)
        finally:
            log_context.reset(token)


def _route_label(path: str) -> str:
    # Meme ids would make the label set unbounded
    return "/api/memes/{id}" if path.startswith("/api/memes/") else path


async def trace_request(request: Request, call_next: Any) -> Response:
    """Server span plus latency histogram for one HTTP request.

    Latency is recorded even when the handler raises; such requests count as 500.
    """
    status_code = 500
    start = time.perf_counter()
    attributes = {"http.method": request.method, "http.route": request.url.path}
    try:
        with create_span(
            "http.request",
            kind=SpanKind.SERVER,
            attributes=attributes,
            context=remote_parent(request.headers.get(TRACE_HEADER)),
        ) as span:
            response: Response = await call_next(request)
            status_code = response.status_code
            span.set_attribute("http.status_code", status_code)
            if status_code >= 500:
                span.set_status(Status(StatusCode.ERROR, f"HTTP {status_code}"))
    finally:
        HTTP_REQUEST_LATENCY.labels(route=_route_label(request.url.path), status=str(status_code)).observe(
            time.perf_counter() - start
        )
    return response
