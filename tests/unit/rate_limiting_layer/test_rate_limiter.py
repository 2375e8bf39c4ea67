"""
Unit Tests for RateLimiter

Tests client keys, skip rules, policy evaluation, response headers and the
429 response shape.
"""

import time
from unittest.mock import AsyncMock, PropertyMock, patch

import orjson
import pytest
from fastapi import Request, Response

from storefront_cache.core.config.constants import RouteGroup
from storefront_cache.core.config.settings import Settings
from storefront_cache.core.exceptions import RateLimitExceededError
from storefront_cache.rate_limiting.rate_limiter import (
    RateLimiter,
    RateLimitPolicy,
    admin_key,
    auth_key,
    general_key,
    group_key,
    rate_limit_response,
    skip_exempt,
    skip_in_test,
)


def make_request(path: str = "/products", user=None, client=("10.0.0.1", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": [],
        "query_string": b"",
        "client": client,
    }
    request = Request(scope)
    if user is not None:
        request.state.user = user
    return request


@pytest.mark.unit
class TestClientKeys:
    """Test per-group client key construction."""

    def test_general_key_anonymous(self):
        assert general_key(make_request()) == "10.0.0.1"

    def test_general_key_with_user(self):
        assert general_key(make_request(user={"id": 42})) == "10.0.0.1:42"

    def test_user_object_attributes(self):
        class User:
            id = "u-1"
            role = "customer"

        assert general_key(make_request(user=User())) == "10.0.0.1:u-1"

    def test_auth_key_ignores_user(self):
        assert auth_key(make_request(user={"id": 42})) == "auth:10.0.0.1"

    def test_group_keys(self):
        request = make_request(user={"id": 7})
        assert group_key("api")(request) == "api:10.0.0.1:7"
        assert group_key("search")(make_request()) == "search:10.0.0.1"

    def test_admin_key(self):
        assert admin_key(make_request()) == "admin:10.0.0.1:anonymous"
        assert admin_key(make_request(user={"id": 1, "role": "admin"})) == "admin:10.0.0.1:1"


@pytest.mark.unit
class TestSkipRules:
    """Test exemptions."""

    def test_health_and_metrics_exempt(self):
        assert skip_exempt(make_request("/health"), "development") is True
        assert skip_exempt(make_request("/metrics"), "development") is True
        assert skip_exempt(make_request("/products"), "development") is False

    def test_admins_exempt(self):
        assert skip_exempt(make_request(user={"id": 1, "role": "admin"}), "production") is True

    def test_test_environment_exempt(self):
        assert skip_in_test(make_request(), "test") is True
        assert skip_exempt(make_request(), "test") is True

    def test_skip_in_test_ignores_admins(self):
        assert skip_in_test(make_request(user={"role": "admin"}), "production") is False

    async def test_environment_read_once_at_construction(self, cache_service):
        settings = Settings(ENVIRONMENT="test")
        limiter = RateLimiter(cache_service, settings)

        with patch.object(Settings, "app", new_callable=PropertyMock) as app_view:
            assert limiter.should_skip(make_request(), limiter.policy(RouteGroup.AUTH)) is True

        app_view.assert_not_called()


@pytest.mark.unit
class TestPolicyEvaluation:
    """Test hit/release/reset."""

    @pytest.fixture
    def limiter(self, cache_service, clock):
        settings = Settings(ENVIRONMENT="development", RATE_LIMIT_AUTH=3, RATE_LIMIT_GENERAL=5)
        return RateLimiter(cache_service, settings, clock=clock)

    async def test_requests_within_limit_pass(self, limiter):
        policy = limiter.policy(RouteGroup.AUTH)

        statuses = [await limiter.hit(make_request(), policy) for _ in range(3)]

        assert [s.total_hits for s in statuses] == [1, 2, 3]
        assert statuses[-1].remaining == 0
        assert statuses[0].client_key == "auth:10.0.0.1"

    async def test_request_over_limit_rejected(self, limiter):
        policy = limiter.policy(RouteGroup.AUTH)
        for _ in range(3):
            await limiter.hit(make_request(), policy)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.hit(make_request(), policy)

        assert exc_info.value.limit == 3
        assert exc_info.value.policy == "auth"
        assert exc_info.value.details["hits"] == 4

    async def test_window_rollover_allows_again(self, limiter, clock):
        policy = limiter.policy(RouteGroup.AUTH)
        for _ in range(3):
            await limiter.hit(make_request(), policy)

        clock.advance(15 * 60 + 1)

        status = await limiter.hit(make_request(), policy)
        assert status.total_hits == 1

    async def test_clients_are_counted_separately(self, limiter):
        policy = limiter.policy(RouteGroup.AUTH)
        for _ in range(3):
            await limiter.hit(make_request(client=("10.0.0.1", 1)), policy)

        status = await limiter.hit(make_request(client=("10.0.0.2", 1)), policy)
        assert status.total_hits == 1

    async def test_exempt_request_returns_none(self, limiter):
        assert await limiter.hit(make_request("/health"), limiter.policy(RouteGroup.GENERAL)) is None

    async def test_disabled_limiter_skips_everything(self, cache_service):
        limiter = RateLimiter(cache_service, Settings(ENABLE_RATE_LIMIT=False, RATE_LIMIT_AUTH=1))
        policy = limiter.policy(RouteGroup.AUTH)

        for _ in range(5):
            assert await limiter.hit(make_request(), policy) is None

    async def test_fails_open_when_store_unreachable(self, degraded_cache, clock):
        degraded_cache.get = AsyncMock(side_effect=RuntimeError("store exploded"))
        limiter = RateLimiter(degraded_cache, Settings(RATE_LIMIT_AUTH=1), clock=clock)
        policy = limiter.policy(RouteGroup.AUTH)

        for _ in range(3):
            status = await limiter.hit(make_request(), policy)
            assert status.total_hits == 1

    async def test_release_uncounts_failed_requests(self, limiter, clock):
        policy = RateLimitPolicy(
            name="login",
            window_seconds=60,
            max_requests=2,
            key_func=auth_key,
            skip=skip_in_test,
            skip_failed_requests=True,
        )
        request = make_request()

        for _ in range(5):
            await limiter.hit(request, policy)
            await limiter.release(request, policy, 401)

        status = await limiter.hit(request, policy)
        await limiter.release(request, policy, 200)
        assert status.total_hits == 1

        assert (await limiter.hit(request, policy)).total_hits == 2

    async def test_release_keeps_count_without_flag(self, limiter):
        policy = limiter.policy(RouteGroup.AUTH)
        request = make_request()

        await limiter.hit(request, policy)
        await limiter.release(request, policy, 500)

        assert (await limiter.hit(request, policy)).total_hits == 2

    async def test_reset(self, limiter):
        policy = limiter.policy(RouteGroup.AUTH)
        request = make_request()
        for _ in range(3):
            await limiter.hit(request, policy)

        await limiter.reset(request, policy)

        assert (await limiter.hit(request, policy)).total_hits == 1

    async def test_groups_with_same_window_share_a_store(self, limiter):
        general = limiter.store_for(limiter.policy(RouteGroup.GENERAL))
        auth = limiter.store_for(limiter.policy(RouteGroup.AUTH))
        search = limiter.store_for(limiter.policy(RouteGroup.SEARCH))

        assert general is auth
        assert search is not general
        assert search.window_seconds == 300


@pytest.mark.unit
class TestResponses:
    """Test RateLimit-* headers and the 429 shape."""

    async def test_apply_headers(self, rate_limiter, clock):
        status = await rate_limiter.hit(make_request(), rate_limiter.policy(RouteGroup.SEARCH))
        response = Response()

        rate_limiter.apply_headers(response, status)

        assert response.headers["RateLimit-Limit"] == "100"
        assert response.headers["RateLimit-Remaining"] == "99"
        assert response.headers["RateLimit-Reset"] == "300"

    async def test_apply_headers_without_status(self, rate_limiter):
        response = Response()
        rate_limiter.apply_headers(response, None)
        assert "RateLimit-Limit" not in response.headers

    def test_429_response_shape(self):
        reset_time = int(time.time() * 1000) + 60_000
        exc = RateLimitExceededError(policy="auth", limit=10, reset_time=reset_time)

        response = rate_limit_response(make_request("/auth/login"), exc)
        body = orjson.loads(response.body)

        assert response.status_code == 429
        assert body["success"] is False
        assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["error"]["message"] == "Too many requests, please try again later"
        assert body["error"]["retryAfter"] == exc.retry_after_iso
        assert body["path"] == "/auth/login"
        assert body["timestamp"].endswith("Z")
        assert response.headers["Retry-After"] in ("59", "60")
        assert response.headers["RateLimit-Limit"] == "10"
        assert response.headers["RateLimit-Remaining"] == "0"

    async def test_429_headers_follow_limiter_clock(self, cache_service, clock):
        limiter = RateLimiter(cache_service, Settings(RATE_LIMIT_AUTH=1), clock=clock)
        policy = limiter.policy(RouteGroup.AUTH)
        allowed = await limiter.hit(make_request(), policy)
        clock.advance(60)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.hit(make_request(), policy)
        response = rate_limit_response(make_request("/auth/login"), exc_info.value)

        assert exc_info.value.rejected_at == clock() * 1000
        assert response.headers["Retry-After"] == str(15 * 60 - 60)
        assert response.headers["RateLimit-Reset"] == str(allowed.reset_seconds(clock() * 1000))
