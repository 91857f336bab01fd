from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis

from shipment_batch.core.config import get_settings


class JsonCache:
    """Thin JSON layer over redis used for balances and dimension templates."""

    def __init__(self, client: redis.Redis | None = None) -> None:
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(get_settings().redis_url, decode_responses=True)
        return self._client

    async def get_json(self, key: str) -> Any | None:
        value = await self.client.get(key)
        if not value:
            return None
        return json.loads(value)

    async def set_json(self, key: str, payload: Any, ttl_seconds: int | None = None) -> None:
        await self.client.set(key, json.dumps(payload), ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def hash_get_all(self, key: str) -> dict[str, Any]:
        raw = await self.client.hgetall(key)
        return {field: json.loads(value) for field, value in raw.items()}

    async def hash_set(self, key: str, field: str, payload: Any) -> None:
        await self.client.hset(key, field, json.dumps(payload))

    async def hash_delete(self, key: str, field: str) -> int:
        return await self.client.hdel(key, field)


json_cache = JsonCache()
