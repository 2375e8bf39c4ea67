"""
Integration Tests for HTTP Rate Limiting, Health and Error Handling

Exercises the app-wide RateLimitMiddleware, per-route rate limit wrappers,
the /health and /metrics routes, request ID propagation and the catch-all
error middleware.
"""

import httpx
import pytest
from fastapi import APIRouter

from storefront_cache.application.api.middleware import guarded_route, rate_limit_auth
from storefront_cache.application.app import create_app
from storefront_cache.core.config.settings import Settings
from storefront_cache.core.exceptions import CacheConnectionError, CacheSerializationError


def auth_router() -> APIRouter:
    router = APIRouter(route_class=guarded_route(rate_limit_auth))

    @router.post("/auth/login")
    async def login():
        return {"token": "abc"}

    return router


def broken_router() -> APIRouter:
    router = APIRouter()

    @router.get("/broken")
    async def broken():
        raise RuntimeError("database exploded")

    @router.get("/store-down")
    async def store_down():
        raise CacheConnectionError("Redis unreachable")

    @router.get("/bad-value")
    async def bad_value():
        raise CacheSerializationError("Value is not JSON serializable")

    @router.get("/products")
    async def products():
        return {"items": []}

    return router


def build_client(settings, cache) -> httpx.AsyncClient:
    app = create_app(settings, cache=cache)
    app.include_router(auth_router())
    app.include_router(broken_router())
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def limited_settings():
    return Settings(ENVIRONMENT="production", RATE_LIMIT_GENERAL=3, RATE_LIMIT_AUTH=2)


@pytest.fixture
async def client(limited_settings, cache_service):
    async with build_client(limited_settings, cache_service) as client:
        yield client


@pytest.mark.integration
class TestGeneralRateLimit:
    """App-wide limit applied by RateLimitMiddleware."""

    async def test_headers_on_allowed_requests(self, client):
        response = await client.get("/products")

        assert response.status_code == 200
        assert response.headers["RateLimit-Limit"] == "3"
        assert response.headers["RateLimit-Remaining"] == "2"
        assert int(response.headers["RateLimit-Reset"]) > 0

    async def test_rejects_over_limit(self, client):
        for _ in range(3):
            assert (await client.get("/products")).status_code == 200

        response = await client.get("/products")
        body = response.json()

        assert response.status_code == 429
        assert body["success"] is False
        assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["error"]["retryAfter"].endswith("Z")
        assert body["path"] == "/products"
        assert response.headers["RateLimit-Remaining"] == "0"
        assert int(response.headers["Retry-After"]) > 0
        assert "X-Request-ID" in response.headers

    async def test_health_is_exempt(self, client):
        for _ in range(5):
            response = await client.get("/health")
            assert response.status_code == 200
            assert "RateLimit-Limit" not in response.headers

    async def test_test_environment_bypasses_limits(self, cache_service):
        settings = Settings(ENVIRONMENT="test", RATE_LIMIT_GENERAL=1, RATE_LIMIT_AUTH=1)
        async with build_client(settings, cache_service) as client:
            for _ in range(3):
                assert (await client.get("/products")).status_code == 200
                assert (await client.post("/auth/login")).status_code == 200

    async def test_store_outage_keeps_serving(self, client, fake_redis):
        fake_redis.go_down()

        for _ in range(3):
            assert (await client.get("/products")).status_code == 200


@pytest.mark.integration
class TestRouteRateLimit:
    """Per-route limits attached with the handler wrappers."""

    async def test_auth_route_limit(self, client):
        for _ in range(2):
            response = await client.post("/auth/login")
            assert response.status_code == 200
            assert response.headers["RateLimit-Limit"] == "2"

        response = await client.post("/auth/login")

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert response.headers["RateLimit-Limit"] == "2"


@pytest.mark.integration
class TestOperationalRoutes:
    """/health, /metrics, request IDs and error rendering."""

    async def test_health_healthy(self, client):
        response = await client.get("/health")
        body = response.json()

        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["components"]["stats"]["connected"] is True

    async def test_health_degraded_is_still_200(self, client, fake_redis):
        fake_redis.go_down()

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    async def test_metrics(self, client):
        await client.get("/products")

        body = (await client.get("/metrics")).json()

        assert body["cache"]["connected"] is True
        assert "hit_rate" in body["hits"]
        assert body["detached_tasks"]["pending"] >= 0

    async def test_request_id_echoed(self, client):
        response = await client.get("/products", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    async def test_request_id_generated(self, client):
        response = await client.get("/products")
        assert len(response.headers["X-Request-ID"]) == 36

    async def test_unhandled_error_rendered_as_500(self, client):
        response = await client.get("/broken")
        body = response.json()

        assert response.status_code == 500
        assert body["success"] is False
        assert body["error"]["code"] == "INTERNAL_ERROR"
        assert body["path"] == "/broken"
        assert "traceback" not in body["error"]

    async def test_escaped_infrastructure_error_is_503(self, client):
        response = await client.get("/store-down")
        body = response.json()

        assert response.status_code == 503
        assert body["kind"] == "infrastructure"
        assert body["error_type"] == "CacheConnectionError"

    async def test_logic_error_is_500(self, client):
        response = await client.get("/bad-value")
        body = response.json()

        assert response.status_code == 500
        assert body["kind"] == "logic"
        assert body["error_type"] == "CacheSerializationError"
