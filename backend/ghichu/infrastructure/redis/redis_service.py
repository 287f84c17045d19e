"""
Redis Service - Connection Management

Owns the Redis connection pool used by the Redis note repositories:
lazy initialization with a connectivity check, health reporting and
orderly shutdown.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from ...domain.notes.exceptions import StorageFailureException

logger = logging.getLogger(__name__)


class RedisService:
    """
    Redis connection service with pooling and health checks.

    Note content is binary, so responses are not decoded by the client.
    """

    def __init__(
        self,
        redis_url: str,
        max_connections: int = 10,
        socket_timeout: float = 10.0,
    ):
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.socket_timeout = socket_timeout
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the connection pool and verify connectivity."""
        if self._client is not None:
            return

        async with self._lock:
            if self._client is not None:
                return

            try:
                pool = ConnectionPool.from_url(
                    self.redis_url,
                    max_connections=self.max_connections,
                    socket_timeout=self.socket_timeout,
                    socket_connect_timeout=self.socket_timeout,
                    retry_on_timeout=True,
                    decode_responses=False,
                )
                client = Redis(connection_pool=pool)
                await client.ping()
            except RedisError as e:
                logger.error(f"Failed to initialize Redis service: {e}")
                raise StorageFailureException(
                    f"Redis service initialization failed: {e}",
                    operation="connect",
                    original_error=e,
                ) from e

            self._pool = pool
            self._client = client
            logger.info(
                "Redis service initialized",
                extra={"max_connections": self.max_connections},
            )

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise StorageFailureException(
                "Redis service is not initialized", operation="connect"
            )
        return self._client

    async def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report latency."""
        start_time = time.time()
        try:
            await self.client.ping()
            return {
                "status": "healthy",
                "response_time_ms": round((time.time() - start_time) * 1000, 2),
            }
        except (RedisError, StorageFailureException) as e:
            logger.error(f"Redis health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        """Close the client and disconnect the pool."""
        async with self._lock:
            if self._client is not None:
                try:
                    await self._client.aclose()
                    if self._pool is not None:
                        await self._pool.disconnect()
                except RedisError as e:
                    logger.warning(f"Error closing Redis connection: {e}")
            self._client = None
            self._pool = None
            logger.info("Redis service closed")
