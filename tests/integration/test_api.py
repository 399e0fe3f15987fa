"""Integration tests for FastAPI API endpoints using TestClient."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from market_intel.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from market_intel.api.routes import APP_VERSION
from market_intel.api.routes import router as api_router
from market_intel.models.market import ProviderId, RawResult
from market_intel.providers.cache.memory_store import MemoryCacheStore
from market_intel.services.cache_service import HybridCacheService
from market_intel.services.market_size_orchestrator import MarketSizeOrchestrator
from market_intel.utils.errors import RateLimitError
from market_intel.utils.identifier_patterns import is_fred_series_id, is_ticker_symbol
from tests.conftest import FakeClock, FakeDataSource, InMemoryDurableStore, make_descriptor


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _create_test_app(
    durable: InMemoryDurableStore | None = None,
) -> tuple[FastAPI, dict[str, FakeDataSource]]:
    """Create a FastAPI app with scripted data sources and an in-memory cache."""
    clock = FakeClock()
    cache = HybridCacheService(
        volatile=MemoryCacheStore(clock=clock), durable=durable, clock=clock
    )
    sources = {
        "alpha_vantage": FakeDataSource(
            "alpha_vantage",
            lambda ident, ctx: RawResult(value=3.0e12, details={"symbol": ident})
            if ident == "AAPL"
            else RawResult(),
        ),
        "fred": FakeDataSource("fred", RateLimitError(message="quota")),
        "world_bank": FakeDataSource("world_bank", available=False),
    }
    orchestrator = MarketSizeOrchestrator(
        cache=cache,
        descriptors=[
            make_descriptor(
                ProviderId.ALPHA_VANTAGE, sources["alpha_vantage"], 10, matcher=is_ticker_symbol
            ),
            make_descriptor(ProviderId.FRED, sources["fred"], 30, matcher=is_fred_series_id),
            make_descriptor(ProviderId.WORLD_BANK, sources["world_bank"], 40),
        ],
    )

    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router)
    app.state.orchestrator = orchestrator
    app.state.cache_service = cache
    return app, sources


@pytest.fixture
def app_and_sources() -> tuple[FastAPI, dict[str, FakeDataSource]]:
    return _create_test_app()


@pytest.fixture
def client(app_and_sources) -> TestClient:
    app, _ = app_and_sources
    return TestClient(app)


# ---------------------------------------------------------------------------
# GET /api/v1/market-size/{identifier}
# ---------------------------------------------------------------------------


class TestMarketSize:
    def test_resolves_ticker(self, client: TestClient) -> None:
        response = client.get("/api/v1/market-size/AAPL")
        assert response.status_code == 200
        data = response.json()
        assert data["value"] == 3.0e12
        assert data["source"] == "alpha_vantage"
        assert data["outcome"] == "Success"
        assert data["is_estimate"] is False
        assert data["cached"] is False
        assert data["attempts"][0]["provider"] == "alpha_vantage"

    def test_second_call_is_cached(self, client: TestClient, app_and_sources) -> None:
        _, sources = app_and_sources
        client.get("/api/v1/market-size/AAPL")
        response = client.get("/api/v1/market-size/AAPL")
        assert response.json()["cached"] is True
        assert sources["alpha_vantage"].calls == ["AAPL"]

    def test_mock_estimate(self, client: TestClient) -> None:
        data = client.get("/api/v1/market-size/tech-software").json()
        assert data["value"] == 659e9
        assert data["source"] == "mock"
        assert data["is_estimate"] is True

    def test_unresolved(self, client: TestClient) -> None:
        data = client.get("/api/v1/market-size/ZZZZ").json()
        assert data["value"] is None
        assert data["source"] == "none"
        assert data["outcome"] == "NoData"

    def test_region_and_currency_normalised(self, client: TestClient) -> None:
        data = client.get("/api/v1/market-size/AAPL", params={"region": "us", "currency": "usd"}).json()
        assert data["region"] == "US"
        assert data["currency"] == "USD"

    def test_blank_identifier_is_422(self, client: TestClient) -> None:
        response = client.get("/api/v1/market-size/%20%20")
        assert response.status_code == 422
        assert response.json()["error"] == "QueryValidationError"

    def test_request_id_is_echoed(self, client: TestClient) -> None:
        response = client.get("/api/v1/market-size/AAPL", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    def test_request_id_is_generated(self, client: TestClient) -> None:
        response = client.get("/api/v1/market-size/AAPL")
        assert len(response.headers["X-Request-ID"]) == 32

    def test_bad_region_is_422(self, client: TestClient) -> None:
        response = client.get("/api/v1/market-size/AAPL", params={"region": "12"})
        assert response.status_code == 422
        assert response.json()["error"] == "QueryValidationError"


# ---------------------------------------------------------------------------
# Cache administration
# ---------------------------------------------------------------------------


class TestCacheEndpoints:
    def test_invalidate_prefix_forces_refetch(self, client: TestClient, app_and_sources) -> None:
        _, sources = app_and_sources
        client.get("/api/v1/market-size/AAPL")

        response = client.post("/api/v1/cache/invalidate", json={"prefix": "market_size:"})
        assert response.status_code == 200
        assert response.json() == {"target": "market_size:", "exact": False, "removed": 1}

        data = client.get("/api/v1/market-size/AAPL").json()
        assert data["cached"] is False
        assert data["attempts"][0]["cached"] is True
        assert sources["alpha_vantage"].calls == ["AAPL"]

    def test_invalidate_exact_key(self, client: TestClient) -> None:
        response = client.post("/api/v1/cache/invalidate", json={"key": "fred:{}"})
        assert response.status_code == 200
        assert response.json()["exact"] is True

    @pytest.mark.parametrize("body", [{}, {"key": "a", "prefix": "b"}, {"prefix": ""}])
    def test_invalidate_requires_exactly_one_target(self, client: TestClient, body: dict) -> None:
        assert client.post("/api/v1/cache/invalidate", json=body).status_code == 422

    def test_stats(self, client: TestClient) -> None:
        client.get("/api/v1/market-size/AAPL")
        client.get("/api/v1/market-size/AAPL")
        data = client.get("/api/v1/cache/stats").json()
        assert data["backend"] == "memory"
        assert data["hits"] >= 1
        assert data["misses"] >= 1
        assert 0.0 < data["hit_rate"] < 1.0
        assert data["volatile_size"] == 2


# ---------------------------------------------------------------------------
# Providers and health
# ---------------------------------------------------------------------------


class TestProvidersAndHealth:
    def test_providers(self, client: TestClient) -> None:
        data = client.get("/api/v1/providers").json()
        assert [p["name"] for p in data["providers"]] == ["alpha_vantage", "fred", "world_bank"]
        assert data["providers"][2]["available"] is False

    def test_health(self, client: TestClient) -> None:
        data = client.get("/api/v1/health").json()
        assert data["status"] == "healthy"
        assert data["version"] == APP_VERSION
        assert data["providers"] == {"alpha_vantage": True, "fred": True, "world_bank": False}

    def test_health_degraded(self) -> None:
        app, _ = _create_test_app(durable=InMemoryDurableStore(healthy=False))
        data = TestClient(app).get("/api/v1/health").json()
        assert data["status"] == "degraded"
        assert data["cache"]["backend"] == "hybrid"
