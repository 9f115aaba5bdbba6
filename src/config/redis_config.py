"""Redis configuration for the usage ledger, conversation turns and telemetry."""

import redis.asyncio as redis
from typing import Optional
import logging
from .settings import settings

logger = logging.getLogger(__name__)

# Key namespaces
USAGE_NAMESPACE = "usage"
CONVERSATION_NAMESPACE = "conversation"
TELEMETRY_NAMESPACE = "llm:telemetry"

class RedisConfig:
    """Redis configuration and connection management."""

    def __init__(self, redis_url: Optional[str] = None, retention_days: Optional[int] = None):
        self.redis_url = redis_url or settings.REDIS_URL
        self.retention_days = retention_days if retention_days is not None else settings.USAGE_RETENTION_DAYS
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client connection (connects lazily on first command)."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                health_check_interval=30
            )
        return self._client

    async def ping(self) -> bool:
        """Check that the server answers."""
        try:
            await self.client.ping()
            logger.info("Redis connection established")
            return True
        except redis.RedisError as e:
            logger.error(f"Redis connection failed: {e}")
            return False

    @property
    def usage_ttl(self) -> int:
        """Retention applied to daily usage rows."""
        return self.retention_days * 24 * 60 * 60

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
