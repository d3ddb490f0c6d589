"""Redis key-value adapter for perftrend."""

from typing import Optional, Sequence, Union

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..errors import BackendError
from ..log import get_logger

logger = get_logger(__name__)


class RedisKeyValueBackend:
    """Stores serialized data points in Redis.

    The client is created on first use and shared by every later call, so one
    backend instance should be built at startup and passed to the service.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[aioredis.Redis] = None,
        scan_count: int = 1000,
    ):
        if url is None and client is None:
            raise ValueError("RedisKeyValueBackend needs a url or a client")
        self._url = url
        self._client = client
        self._scan_count = scan_count

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.from_url(self._url, decode_responses=True)
            logger.info("redis_client_created")
        return self._client

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            result = await self._get_client().set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise BackendError("set", str(exc)) from exc
        return bool(result)

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._get_client().get(key)
        except RedisError as exc:
            raise BackendError("get", str(exc)) from exc
        return _as_str(value)

    async def list_keys(self, pattern: str) -> list[str]:
        # SCAN instead of KEYS so large keyspaces do not block the server.
        try:
            return [
                _as_str(key)
                async for key in self._get_client().scan_iter(match=pattern, count=self._scan_count)
            ]
        except RedisError as exc:
            raise BackendError("list_keys", str(exc)) from exc

    async def multi_get(self, keys: Sequence[str]) -> list[Optional[str]]:
        if not keys:
            return []
        try:
            values = await self._get_client().mget(list(keys))
        except RedisError as exc:
            raise BackendError("multi_get", str(exc)) from exc
        return [_as_str(value) for value in values]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _as_str(value: Union[str, bytes, None]) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value
