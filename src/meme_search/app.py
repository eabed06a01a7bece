"""Starlette application exposing meme search over HTTP.

Routes:
    GET /api/memes?q=...&limit=N   search (or most recent memes for an empty query)
    GET /api/memes/{id}            one meme
    GET /health                    store/index consistency summary
    GET /metrics                   Prometheus exposition
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING

import anyio.to_thread
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from meme_search.bootstrap import Services, build_services
from meme_search.config import Settings, load_settings
from meme_search.errors import BackendExecutionError, QuerySyntaxError
from meme_search.observability import (
    TraceContextMiddleware,
    configure_logging,
    configure_trace_exporter,
    get_metrics,
    get_metrics_content_type,
    init_tracing,
    trace_request,
)
from meme_search.search.ranker import SearchHit


if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request


logger = logging.getLogger(__name__)


def _hit_payload(hit: SearchHit) -> dict:
    payload = hit.meme.model_dump(mode="json")
    payload["score"] = hit.score
    return payload


def _error(message: str, status_code: int, **extra: object) -> JSONResponse:
    return JSONResponse({"success": False, "message": message, **extra}, status_code=status_code)


def _parse_positive_int(raw: str | None, default: int) -> int | None:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def build_search_endpoint(services: Services):
    settings = services.settings

    async def search_memes(request: Request) -> JSONResponse:
        query = request.query_params.get("q", "")
        limit = _parse_positive_int(request.query_params.get("limit"), settings.result_limit)
        if limit is None:
            return _error("Invalid limit", 400)
        limit = min(limit, settings.result_limit)

        try:
            hits = await anyio.to_thread.run_sync(services.search.search, query, limit)
        except QuerySyntaxError as exc:
            return _error("Invalid search query", 400, **exc.to_dict())
        except BackendExecutionError as exc:
            detail = {} if settings.mask_error_details else {"detail": str(exc)}
            return _error("Search failed", 500, **detail)

        return JSONResponse(
            {
                "success": True,
                "query": query,
                "count": len(hits),
                "memes": [_hit_payload(hit) for hit in hits],
            }
        )

    return search_memes


def build_meme_endpoint(services: Services):
    async def get_meme(request: Request) -> JSONResponse:
        record_id = _parse_positive_int(request.path_params.get("meme_id"), 0)
        if not record_id:
            return _error("Invalid meme id", 400)
        meme = await anyio.to_thread.run_sync(services.repository.get_by_id, record_id)
        if meme is None:
            return _error("Meme not found", 404)
        return JSONResponse({"success": True, "meme": meme.model_dump(mode="json")})

    return get_meme


def build_health_endpoint(services: Services):
    """Report whether every stored meme has exactly one index entry."""

    def _counts() -> tuple[int, int]:
        return services.repository.count(), services.backend.count()

    async def health_check(_: Request) -> JSONResponse:
        stored, indexed = await anyio.to_thread.run_sync(_counts)
        return JSONResponse(
            {
                "status": "healthy" if stored == indexed else "degraded",
                "backend": services.backend.name,
                "memes": stored,
                "indexed": indexed,
            }
        )

    return health_check


async def metrics_endpoint(_: Request) -> Response:
    return Response(get_metrics(), media_type=get_metrics_content_type())


def create_app(settings: Settings | None = None, *, services: Services | None = None) -> Starlette:
    """Build the ASGI app; ``services`` may be injected (tests) or built from ``settings``."""
    settings = settings or (services.settings if services else load_settings())
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(_: Starlette) -> AsyncIterator[None]:
        logger.info("Meme search serving with %s backend", services.backend.name)
        try:
            yield
        finally:
            services.close()

    routes = [
        Route("/api/memes", endpoint=build_search_endpoint(services), methods=["GET"]),
        Route("/api/memes/{meme_id}", endpoint=build_meme_endpoint(services), methods=["GET"]),
        Route("/health", endpoint=build_health_endpoint(services), methods=["GET"]),
        Route("/metrics", endpoint=metrics_endpoint, methods=["GET"]),
    ]
    middleware = [Middleware(TraceContextMiddleware), Middleware(BaseHTTPMiddleware, dispatch=trace_request)]
    app = Starlette(debug=settings.log_level == "debug", routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.services = services
    return app


def serve(settings: Settings) -> None:
    """Run the HTTP server with uvicorn."""
    import uvicorn

    configure_logging(level=settings.log_level, json_output=settings.log_json)
    if settings.otlp_endpoint:
        configure_trace_exporter(settings.otlp_endpoint, init_tracing())

    app = create_app(settings)
    logger.info("Starting meme search on %s:%d", settings.http_host, settings.http_port)
    uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_config=None)


def main() -> None:
    serve(load_settings())


if __name__ == "__main__":
    main()
