"""
Redis Client with Connection Pooling and Background Reconnect

Architecture:
    RedisClient (Public API)
        ├── ConnectionManager (Connection lifecycle, state, reconnect loop)
        ├── OperationExecutor (Command execution with error translation)
        └── HealthMonitor (Health checks and pool metrics)

Behaviour:
    - connect() never leaves the process without a client: if the first ping
      fails the client moves to ERROR, raises CacheConnectionError and keeps
      reconnecting in the background until Redis answers.
    - Every redis-py exception is translated into the CacheBackendError family
      so the cache facade has exactly one thing to catch.
    - `connected` is True only in the READY state.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, wait_exponential_jitter

from storefront_cache.core.config.constants import ConnectionState
from storefront_cache.core.config.settings import Settings, get_settings
from storefront_cache.core.exceptions import (
    CacheCommandError,
    CacheConnectionError,
    CacheTimeoutError,
)
from storefront_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RECONNECT_INITIAL_DELAY = 0.5
SCAN_COUNT = 500


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# Handles connection lifecycle, pooling, state and reconnection
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Responsibility: Connection establishment, state tracking, background
    reconnect and cleanup.

    Pool Configuration:
    - Max connections: REDIS_MAX_CONNECTIONS
    - Connect timeout: REDIS_SOCKET_CONNECT_TIMEOUT (10s)
    - Command timeout: REDIS_SOCKET_TIMEOUT (5s)
    - Per-command retries: REDIS_MAX_RETRIES with exponential backoff
    - Health check interval: REDIS_HEALTH_CHECK_INTERVAL
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_task: asyncio.Task | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    def _set_state(self, new_state: ConnectionState, **context) -> None:
        if new_state == self._state:
            return
        previous = self._state
        self._state = new_state
        log = logger.warning if new_state == ConnectionState.ERROR else logger.info
        log(
            "Redis connection state changed",
            stage="REDIS.STATE",
            previous=previous.value,
            state=new_state.value,
            **context,
        )

    def _build_client(self) -> redis.Redis:
        redis_settings = self._settings.redis

        # STAGE-REDIS.2.1: Create connection pool
        self._pool = ConnectionPool(
            host=redis_settings.REDIS_HOST,
            port=redis_settings.REDIS_PORT,
            db=redis_settings.REDIS_DB,
            password=redis_settings.REDIS_PASSWORD,
            max_connections=redis_settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=redis_settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_timeout=redis_settings.REDIS_SOCKET_TIMEOUT,
            retry=Retry(ExponentialBackoff(cap=1.0, base=0.05), redis_settings.REDIS_MAX_RETRIES),
            retry_on_error=[RedisConnectionError, RedisTimeoutError],
            health_check_interval=redis_settings.REDIS_HEALTH_CHECK_INTERVAL,
            decode_responses=True,
        )

        # STAGE-REDIS.2.2: Create Redis client with pool
        return redis.Redis(connection_pool=self._pool)

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Returns:
            redis.Redis: Connected Redis client

        Raises:
            CacheConnectionError: If the first ping fails. The reconnect loop
                is already running when this is raised.
        """
        if self._state == ConnectionState.READY and self._client:
            return self._client

        self._set_state(ConnectionState.CONNECTING)
        if self._client is None:
            self._client = self._build_client()

        try:
            # STAGE-REDIS.2.3: Verify connection with ping
            await self._client.ping()
        except (RedisError, OSError) as e:
            self._set_state(ConnectionState.ERROR, error=str(e))
            self.schedule_reconnect()
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={
                    "host": self._settings.redis.REDIS_HOST,
                    "port": self._settings.redis.REDIS_PORT,
                },
            ) from e

        self._set_state(ConnectionState.READY)
        logger.info(
            "Redis connected successfully",
            stage="REDIS.2",
            host=self._settings.redis.REDIS_HOST,
            port=self._settings.redis.REDIS_PORT,
            max_connections=self._settings.redis.REDIS_MAX_CONNECTIONS,
        )
        return self._client

    def mark_failed(self, error: Exception) -> None:
        """Record a connection-level command failure and start reconnecting."""
        if self._state in (ConnectionState.CLOSED, ConnectionState.RECONNECTING):
            return
        self._set_state(ConnectionState.ERROR, error=str(error))
        self.schedule_reconnect()

    def schedule_reconnect(self) -> None:
        if self._state == ConnectionState.CLOSED:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(
            self._reconnect_loop(), name="redis-reconnect"
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "Redis reconnect attempt failed",
            stage="REDIS.RECONNECT",
            attempt=retry_state.attempt_number,
            next_delay=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
            error=str(outcome.exception()) if outcome else None,
        )

    async def _reconnect_loop(self) -> None:
        """
        Ping until Redis answers, backing off exponentially with jitter.

        STAGE-REDIS.RECONNECT: Background reconnect
        """
        self._set_state(ConnectionState.RECONNECTING)
        retrying = AsyncRetrying(
            wait=wait_exponential_jitter(
                initial=RECONNECT_INITIAL_DELAY,
                max=self._settings.redis.REDIS_RECONNECT_MAX_DELAY,
            ),
            retry=retry_if_exception_type((RedisError, OSError)),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._client.ping()

        self._set_state(ConnectionState.READY)
        logger.info("Redis reconnected", stage="REDIS.RECONNECT")

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        self._set_state(ConnectionState.CLOSED)

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        if self._client:
            await self._client.aclose()
            self._client = None

        if self._pool:
            await self._pool.disconnect()
            self._pool = None

        logger.info("Redis disconnected", stage="REDIS.3")

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._state == ConnectionState.READY


# =============================================================================
# LAYER 2: OPERATION EXECUTOR
# Executes Redis commands and translates failures
# =============================================================================


class OperationExecutor:
    """
    Executes Redis operations with consistent error handling.

    Error Handling Strategy:
    - Refuse to run while the connection is not READY (CacheConnectionError)
    - redis TimeoutError → CacheTimeoutError
    - redis ConnectionError → CacheConnectionError, connection marked failed
    - any other RedisError → CacheCommandError
    """

    def __init__(self, connection_manager: ConnectionManager):
        self._conn_mgr = connection_manager

    async def run(self, command: str, operation: Callable[[redis.Redis], Awaitable[T]], **context) -> T:
        client = self._conn_mgr.get_client()
        if client is None or not self._conn_mgr.is_connected():
            raise CacheConnectionError(
                message=f"Redis {command} skipped: client not ready",
                details={"command": command, "state": self._conn_mgr.state.value, **context},
            )

        try:
            return await operation(client)
        except RedisTimeoutError as e:
            logger.warning(
                "Redis command timed out", stage=f"REDIS.{command}", error=str(e), **context
            )
            raise CacheTimeoutError(
                message=f"Redis {command} timed out: {e}",
                details={"command": command, **context},
            ) from e
        except (RedisConnectionError, OSError) as e:
            logger.warning(
                "Redis connection lost", stage=f"REDIS.{command}", error=str(e), **context
            )
            self._conn_mgr.mark_failed(e)
            raise CacheConnectionError(
                message=f"Redis {command} failed: {e}",
                details={"command": command, **context},
            ) from e
        except RedisError as e:
            logger.error(
                "Redis command failed", stage=f"REDIS.{command}", error=str(e), **context
            )
            raise CacheCommandError(
                message=f"Redis {command} failed: {e}",
                details={"command": command, **context},
            ) from e


# =============================================================================
# LAYER 3: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """
    Monitors Redis health and connection pool metrics.

    Metrics Tracked:
    - Connection state
    - Ping latency
    - Pool size and utilization (warning above 80%)
    """

    def __init__(self, connection_manager: ConnectionManager, settings: Settings):
        self._conn_mgr = connection_manager
        self._settings = settings

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on Redis connection.

        STAGE-REDIS.HEALTH: Redis health check
        """
        health = {
            "status": "healthy",
            "state": self._conn_mgr.state.value,
            "connected": self._conn_mgr.is_connected(),
            "host": self._settings.redis.REDIS_HOST,
            "port": self._settings.redis.REDIS_PORT,
            "pool_size": 0,
            "pool_utilization_pct": 0,
            "ping_latency_ms": None,
        }

        client = self._conn_mgr.get_client()
        if not client or not self._conn_mgr.is_connected():
            health["status"] = "unhealthy"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except (RedisError, OSError) as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)
            return health

        pool = self._conn_mgr.get_pool()
        if pool:
            health["pool_size"] = pool.max_connections
            if hasattr(pool, "_in_use_connections"):
                in_use = len(pool._in_use_connections)
                utilization = 100.0 * in_use / pool.max_connections
                health["pool_utilization_pct"] = round(utilization, 1)
                if utilization > 80:
                    logger.warning(
                        "Redis pool utilization high",
                        pool_utilization=utilization,
                        max_connections=pool.max_connections,
                    )

        return health


# =============================================================================
# LAYER 4: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Async Redis client with connection pooling, reconnect and health checks.

    Implements the CacheBackend protocol consumed by CacheService.

    Usage:
        client = RedisClient(settings)
        await client.connect()

        await client.setex("key", 300, "value")
        value = await client.get("key")

        await client.disconnect()
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize Redis client.

        STAGE-REDIS.1: Client initialization
        """
        self._settings = settings or get_settings()
        self._conn_mgr = ConnectionManager(self._settings)
        self._executor = OperationExecutor(self._conn_mgr)
        self._health_monitor = HealthMonitor(self._conn_mgr, self._settings)

        logger.info(
            "Redis client initialized",
            stage="REDIS.1",
            host=self._settings.redis.REDIS_HOST,
            port=self._settings.redis.REDIS_PORT,
        )

    @property
    def state(self) -> ConnectionState:
        return self._conn_mgr.state

    @property
    def connected(self) -> bool:
        return self._conn_mgr.is_connected()

    async def connect(self) -> None:
        await self._conn_mgr.connect()

    async def disconnect(self) -> None:
        await self._conn_mgr.disconnect()

    async def ping(self) -> bool:
        client = self._conn_mgr.get_client()
        if client is None:
            return False
        try:
            return bool(await client.ping())
        except (RedisError, OSError):
            return False

    # -------------------------------------------------------------------------
    # Basic Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self._executor.run("GET", lambda r: r.get(key), key=key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        result = await self._executor.run("SETEX", lambda r: r.setex(key, ttl, value), key=key)
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._executor.run("DEL", lambda r: r.delete(*keys), count=len(keys))

    async def keys(self, pattern: str) -> list[str]:
        """
        Collect every key matching a glob pattern.

        Uses SCAN rather than KEYS so a large keyspace does not block the server.
        """
        async def _scan(client: redis.Redis) -> list[str]:
            return [key async for key in client.scan_iter(match=pattern, count=SCAN_COUNT)]

        return await self._executor.run("SCAN", _scan, pattern=pattern)

    async def exists(self, *keys: str) -> int:
        return await self._executor.run("EXISTS", lambda r: r.exists(*keys), count=len(keys))

    async def expire(self, key: str, ttl: int) -> bool:
        result = await self._executor.run("EXPIRE", lambda r: r.expire(key, ttl), key=key)
        return bool(result)

    async def ttl(self, key: str) -> int:
        return await self._executor.run("TTL", lambda r: r.ttl(key), key=key)

    # -------------------------------------------------------------------------
    # Counter Operations
    # -------------------------------------------------------------------------

    async def incrby(self, key: str, amount: int) -> int:
        return await self._executor.run("INCRBY", lambda r: r.incrby(key, amount), key=key)

    # -------------------------------------------------------------------------
    # Batch Operations
    # -------------------------------------------------------------------------

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        return await self._executor.run("MGET", lambda r: r.mget(keys), count=len(keys))

    async def mset_ex(self, entries: list[tuple[str, str, int]]) -> None:
        """
        Write many keys with individual TTLs in one round-trip.

        Args:
            entries: (key, serialized value, ttl seconds) triples
        """
        if not entries:
            return

        async def _pipeline(client: redis.Redis) -> None:
            async with client.pipeline(transaction=False) as pipe:
                for key, value, ttl in entries:
                    pipe.setex(key, ttl, value)
                await pipe.execute()

        await self._executor.run("MSETEX", _pipeline, count=len(entries))

    # -------------------------------------------------------------------------
    # Server Operations
    # -------------------------------------------------------------------------

    async def dbsize(self) -> int:
        return await self._executor.run("DBSIZE", lambda r: r.dbsize())

    async def info(self, section: str | None = None) -> dict[str, Any]:
        return await self._executor.run("INFO", lambda r: r.info(section), section=section)

    async def flushdb(self) -> bool:
        result = await self._executor.run("FLUSHDB", lambda r: r.flushdb())
        return bool(result)

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()
