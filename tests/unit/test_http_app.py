"""Unit tests for the Starlette HTTP surface."""

import pytest
from starlette.testclient import TestClient

from meme_search.app import create_app
from meme_search.errors import BackendExecutionError


@pytest.fixture
def services(services_factory, sample_memes):
    services = services_factory("memory", result_limit=50)
    for meme in sample_memes:
        services.catalog.add(meme)
    return services


@pytest.fixture
def client(services):
    return TestClient(create_app(services=services))


class TestSearchEndpoint:
    def test_search_returns_ranked_memes(self, client):
        response = client.get("/api/memes", params={"q": "pikachu AND dog"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["query"] == "pikachu AND dog"
        assert body["count"] == 1
        (meme,) = body["memes"]
        assert meme["id"] == 5
        assert meme["keywords"] == ["pokemon", "dog"]
        assert meme["score"] > 0

    def test_empty_query_lists_recent(self, client):
        body = client.get("/api/memes", params={"limit": "3"}).json()

        assert [meme["id"] for meme in body["memes"]] == [10, 9, 8]
        assert all(meme["score"] is None for meme in body["memes"])

    def test_limit_is_capped_by_settings(self, client, services, make_meme):
        for n in range(100, 160):
            services.catalog.add(make_meme(n, "bulk entry"))

        body = client.get("/api/memes", params={"q": "bulk", "limit": "500"}).json()

        assert body["count"] == 50

    @pytest.mark.parametrize("limit", ["0", "-3", "ten"])
    def test_invalid_limit(self, client, limit):
        response = client.get("/api/memes", params={"q": "pikachu", "limit": limit})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid limit"}

    def test_syntax_error_is_400_with_position(self, client):
        response = client.get("/api/memes", params={"q": "pikachu AND (surprised OR"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Invalid search query"
        assert body["token"] == ")"
        assert body["position"] == len("pikachu AND (surprised OR")
        assert body["error"].startswith("Missing ')'")

    def test_unknown_field_is_400(self, client):
        body = client.get("/api/memes", params={"q": "tags:funny"}).json()
        assert body["token"] == "tags"

    def test_backend_failure_is_500_not_empty(self, client, services, monkeypatch):
        def _broken(*_args, **_kwargs):
            raise BackendExecutionError("fts5: syntax error", expression="x")

        monkeypatch.setattr(services.backend, "query", _broken)

        response = client.get("/api/memes", params={"q": "pikachu"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Search failed"}

    def test_backend_failure_detail_when_unmasked(self, services_factory, monkeypatch):
        services = services_factory("memory", mask_error_details=False)

        def _broken(*_args, **_kwargs):
            raise BackendExecutionError("fts5: syntax error", expression="x")

        monkeypatch.setattr(services.backend, "query", _broken)
        response = TestClient(create_app(services=services)).get("/api/memes", params={"q": "x"})

        assert response.status_code == 500
        assert response.json()["detail"] == "fts5: syntax error"


class TestMemeEndpoint:
    def test_get_meme(self, client):
        body = client.get("/api/memes/3").json()

        assert body["success"] is True
        assert body["meme"]["filename"] == "this-is-fine.png"
        assert body["meme"]["created_at"].startswith("2024-01-01T15:00:00")

    def test_missing_meme(self, client):
        response = client.get("/api/memes/404")
        assert response.status_code == 404

    @pytest.mark.parametrize("meme_id", ["abc", "0", "-1"])
    def test_invalid_id(self, client, meme_id):
        assert client.get(f"/api/memes/{meme_id}").status_code == 400


class TestOperationalEndpoints:
    def test_health_reports_counts(self, client):
        body = client.get("/health").json()

        assert body == {"status": "healthy", "backend": "memory", "memes": 10, "indexed": 10}

    def test_health_degraded_when_index_drifts(self, client, services):
        services.backend.index.remove(1)

        assert client.get("/health").json()["status"] == "degraded"

    def test_metrics_exposition(self, client):
        client.get("/api/memes", params={"q": "pikachu"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "meme_http_request_latency_seconds" in response.text
        assert 'route="/api/memes"' in response.text

    def test_trace_id_header_is_accepted(self, client):
        response = client.get("/health", headers={"x-trace-id": "ab" * 16})
        assert response.status_code == 200

    def test_lifespan_closes_services(self, services):
        with TestClient(create_app(services=services)) as lifespan_client:
            assert lifespan_client.get("/health").status_code == 200
        # A closed database hands out a fresh connection on next use
        assert services.repository.count() == 10
