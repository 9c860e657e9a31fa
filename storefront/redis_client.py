"""
Redis client wrapper with connection pooling, retry logic, and error handling.
"""
import redis
import time
import random
import logging
from typing import Any, Callable, Dict, List, Optional
from redis.exceptions import (
    ConnectionError,
    TimeoutError,
    RedisError,
    AuthenticationError
)

from storefront.config import Config
from storefront.exceptions import StoreError, StoreUnavailableError

logger = logging.getLogger(__name__)


def build_redis_url() -> str:
    """Build the connection URL from Config (rediss:// when TLS is on)"""
    scheme = "rediss" if Config.REDIS_SSL else "redis"
    auth = f":{Config.REDIS_AUTH_TOKEN}@" if Config.REDIS_AUTH_TOKEN else ""
    return f"{scheme}://{auth}{Config.REDIS_HOST}:{Config.REDIS_PORT}/{Config.REDIS_DB}"


class RedisClient:
    """Redis client with connection pooling and retry logic"""

    def __init__(self, url: Optional[str] = None):
        self.url = url or build_redis_url()
        self.pool: Optional[redis.ConnectionPool] = None
        self.client: Optional[redis.Redis] = None
        self._connect()

    def _connect(self):
        """Initialize Redis connection pool"""
        try:
            options = dict(
                max_connections=Config.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=Config.REDIS_RETRY_ON_TIMEOUT,
                decode_responses=True,
            )
            if self.url.startswith("rediss://"):
                # ElastiCache in-transit encryption uses self-signed certs
                options["ssl_cert_reqs"] = None

            self.pool = redis.ConnectionPool.from_url(self.url, **options)
            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            self.client.ping()

        except (ConnectionError, TimeoutError, AuthenticationError) as e:
            raise StoreUnavailableError(f"Failed to connect to Redis: {e}")

    def _retry_with_backoff(
        self,
        func: Callable,
        max_retries: int = 3,
        initial_backoff: float = 0.1,
        max_backoff: float = 2.0
    ) -> Any:
        """
        Execute function with exponential backoff retry.

        Only connection and timeout errors are retried; other Redis errors
        surface immediately as StoreError.

        Raises:
            StoreUnavailableError: If all retries fail
            StoreError: On a non-retryable Redis error
        """
        backoff = initial_backoff

        for attempt in range(max_retries):
            try:
                return func()
            except (ConnectionError, TimeoutError) as e:
                if attempt == max_retries - 1:
                    raise StoreUnavailableError(f"Redis operation failed after {max_retries} retries: {e}")

                # Exponential backoff with jitter
                jitter = random.uniform(0, backoff * 0.1)
                time.sleep(backoff + jitter)
                backoff = min(backoff * 2, max_backoff)

                try:
                    self._connect()
                except StoreUnavailableError as reconnect_error:
                    logger.warning(f"Redis reconnect attempt {attempt + 1} failed: {reconnect_error}")

            except RedisError as e:
                raise StoreError(f"Redis error: {e}")

    def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        return self._retry_with_backoff(lambda: self.client.get(key))

    def hgetall(self, key: str) -> Dict[str, str]:
        """Get all fields from hash"""
        return self._retry_with_backoff(lambda: self.client.hgetall(key))

    def hgetall_many(self, keys: List[str]) -> List[Dict[str, str]]:
        """Get several hashes in one pipelined round-trip"""
        def _hgetall_many():
            pipe = self.client.pipeline(transaction=False)
            for key in keys:
                pipe.hgetall(key)
            return pipe.execute()
        return self._retry_with_backoff(_hgetall_many)

    def rpush(self, key: str, *values: str) -> int:
        """Append values to a list"""
        return self._retry_with_backoff(lambda: self.client.rpush(key, *values))

    def lrange(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        """Read a range of a list"""
        return self._retry_with_backoff(lambda: self.client.lrange(key, start, end))

    def eval(self, script: str, num_keys: int, *keys_and_args) -> Any:
        """Execute Lua script"""
        return self._retry_with_backoff(lambda: self.client.eval(script, num_keys, *keys_and_args))

    def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return self.client.ping()
        except RedisError:
            return False

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.disconnect()


# Process-wide client, handed to the store by the app factory
_redis_client: Optional[RedisClient] = None


def get_redis_client() -> RedisClient:
    """Get or create Redis client instance (singleton)"""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client
