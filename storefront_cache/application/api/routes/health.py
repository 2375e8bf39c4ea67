"""
Health Check Routes - Educational Documentation
================================================

WHAT ARE HEALTH CHECKS?
-----------------------
Health checks report the status of the application and its dependencies.
Load balancers and orchestrators call them to decide whether an instance
should receive traffic.

WHY IS "degraded" STILL HTTP 200?
---------------------------------
The cache facade keeps serving requests from its in-process fallback store
while Redis is unreachable, so the instance is still able to do its job. The
status in the body says "degraded"; the HTTP status stays 200 so that a Redis
outage does not pull every instance out of the load balancer at once.

ENDPOINTS:
----------
- GET /health: status, timestamp and cache component health
- GET /metrics: cache stats, hit/miss counters and detached task counters

Both paths are exempt from rate limiting.
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from storefront_cache.application.api.dependencies import CacheDep

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Standard health check response model."""

    status: str  # "healthy" or "degraded"
    timestamp: str
    components: dict | None = None


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@router.get("/health", response_model=HealthResponse)
async def health_check(cache: CacheDep):
    """
    Health check endpoint for load balancers.

    Returns:
        HealthResponse: Overall status with the cache component report

    HTTP Status Codes:
        200: Always (degradation is reported in the body)
    """
    cache_health = await cache.health_check()
    return HealthResponse(
        status=cache_health["status"],
        timestamp=_utc_now_iso(),
        components={"cache": cache_health, "stats": await cache.get_stats()},
    )


@router.get("/metrics")
async def metrics(cache: CacheDep):
    """Cache statistics, hit/miss counters and detached task counters."""
    return {
        "timestamp": _utc_now_iso(),
        "cache": await cache.get_stats(),
        "hits": cache.hit_stats(),
        "detached_tasks": {
            "pending": cache.tasks.pending_count,
            "dropped": cache.tasks.dropped_count,
            "failed": cache.tasks.failed_count,
        },
    }
