"""Search service orchestration layer.

Single entry point for the HTTP layer and the CLI: raw query string in,
ordered hydrated records out.
"""

from __future__ import annotations

import logging

from meme_search.errors import BackendExecutionError, QuerySyntaxError
from meme_search.observability.context import bound_log_context
from meme_search.observability.metrics import SEARCH_LATENCY, SEARCH_REQUESTS, track_latency
from meme_search.observability.tracing import create_span
from meme_search.query.compiler import compile_query
from meme_search.query.nodes import EmptyQuery
from meme_search.query.parser import QueryParser
from meme_search.search.ranker import DEFAULT_RESULT_LIMIT, Ranker, SearchHit


logger = logging.getLogger(__name__)


class MemeSearchService:
    """Parses, compiles and ranks meme searches.

    Parsing and compilation are pure; the only blocking work is the backend
    query and the hydration lookup, so one instance can serve concurrent
    callers from worker threads.
    """

    def __init__(self, ranker: Ranker, *, parser: QueryParser | None = None) -> None:
        """Initialize search service with dependencies.

        Args:
            ranker: Ranker bound to a backend and the primary store
            parser: Parser with the configured length/depth bounds
        """
        self.ranker = ranker
        self.parser = parser or QueryParser()

    @property
    def backend_name(self) -> str:
        return self.ranker.backend.name

    def search(self, raw_query: str, limit: int = DEFAULT_RESULT_LIMIT) -> list[SearchHit]:
        """Run ``raw_query`` and return at most ``limit`` hits.

        An empty or whitespace-only query lists the most recent memes instead.

        Args:
            raw_query: Query as typed by the user
            limit: Maximum number of hits, must be positive

        Returns:
            Hits ordered by score desc, created_at desc, id desc

        Raises:
            ValueError: If ``limit`` is not positive
            QuerySyntaxError: If the query is malformed (no backend query is run)
            BackendExecutionError: If the backend fails on the compiled query
        """
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        backend = self.backend_name
        outcome = "error"
        with bound_log_context(query=raw_query, backend=backend), track_latency(SEARCH_LATENCY, backend=backend):
            try:
                hits = self._run(raw_query, limit)
                outcome = "recent" if not raw_query.strip() else "hit" if hits else "miss"
            except QuerySyntaxError as exc:
                outcome = "syntax_error"
                logger.info("Rejected query: %s", exc, extra={"position": exc.position, "token": exc.token})
                raise
            except BackendExecutionError as exc:
                logger.error("Search failed: %s", exc, exc_info=True, extra={"expression": exc.expression})
                raise
            finally:
                SEARCH_REQUESTS.labels(backend=backend, outcome=outcome).inc()
            logger.info("Search finished", extra={"outcome": outcome, "results": len(hits)})
        return hits

    def _run(self, raw_query: str, limit: int) -> list[SearchHit]:
        with create_span(
            "meme.search", attributes={"search.backend": self.backend_name, "search.limit": limit}
        ) as span:
            with create_span("meme.search.parse"):
                tree = self.parser.parse(raw_query)
            if isinstance(tree, EmptyQuery):
                hits = self.ranker.recent(limit)
            else:
                compiled = compile_query(tree, supports_proximity=self.ranker.backend.supports_proximity)
                span.set_attribute("search.expression", compiled.expression)
                execute_attributes = {"search.post_filter": compiled.needs_post_filter}
                with create_span("meme.search.execute", attributes=execute_attributes):
                    hits = self.ranker.rank(compiled, limit)
            span.set_attribute("search.results", len(hits))
        return hits
