"""
Redis Infrastructure Module

Connection pooling and health checks for the Redis note backend.
"""

from .redis_service import RedisService

__all__ = ["RedisService"]
