"""
Redis client configuration for the investigation engine.

The URL always comes from QueueSettings; this module never reads the
environment itself.
"""

import logging
from urllib.parse import urlparse

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisClientFactory:
    """Factory for creating configured Redis clients."""

    @staticmethod
    def create_client(redis_url: str, **kwargs) -> redis.Redis:
        """
        Create a Redis client from a URL with pooled connections.

        Args:
            redis_url: Complete Redis URL, including auth if any
            **kwargs: Additional Redis client parameters

        Returns:
            Configured Redis client
        """
        pool_kwargs = {
            'max_connections': kwargs.pop('max_connections', 20),
            'socket_connect_timeout': kwargs.pop('socket_connect_timeout', 5),
            'decode_responses': kwargs.pop('decode_responses', True),
        }

        try:
            client = redis.from_url(redis_url, **pool_kwargs, **kwargs)
        except ValueError as e:
            logger.error(f"Failed to create Redis client: {e}")
            raise ConnectionError(f"Cannot create Redis client: {e}") from e

        logger.info(f"Redis client created from URL: {RedisClientFactory._mask_url(redis_url)}")
        return client

    @staticmethod
    def _mask_url(url: str) -> str:
        """Mask password in URL for logging."""
        parsed = urlparse(url)
        if parsed.password:
            masked_netloc = parsed.netloc.replace(parsed.password, '***')
            return url.replace(parsed.netloc, masked_netloc)
        return url

    @staticmethod
    async def test_connection(client: redis.Redis) -> bool:
        """Return True when the server answers PING."""
        try:
            response = await client.ping()
        except redis.RedisError as e:
            logger.error(f"Redis connection test failed: {e}")
            return False
        if not response:
            logger.error("Redis ping returned False")
            return False
        logger.info("Redis connection test successful")
        return True


def create_redis_client(redis_url: str, **kwargs) -> redis.Redis:
    """Convenience wrapper around RedisClientFactory.create_client."""
    return RedisClientFactory.create_client(redis_url, **kwargs)
