from __future__ import annotations
import logging
from typing import Dict, Optional

import msgpack
import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class FriendlyNameCache:
    """
    Flat in-memory memo: cache key -> {raw key: friendly name}.

    Entries are never evicted or invalidated. One instance is constructed per
    orchestrator/session and injected into the resolver.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[str, str]] = {}

    async def get(self, cache_key: str) -> Optional[Dict[str, str]]:
        return self._entries.get(cache_key)

    async def put(self, cache_key: str, names: Dict[str, str]) -> None:
        self._entries[cache_key] = names

    def __len__(self) -> int:
        return len(self._entries)


class RedisFriendlyNameCache:
    """
    Shared friendly-name memo backed by Redis.

    Key schema:
        apiexplorer:names:{cache_key}

    Value: MessagePack-serialized {raw key: friendly name}. No TTL is set;
    entries live until Redis itself drops them.
    """

    KEY_PREFIX = "apiexplorer:names"

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self._redis = redis_client

    def _build_key(self, cache_key: str) -> str:
        return f"{self.KEY_PREFIX}:{cache_key}"

    async def get(self, cache_key: str) -> Optional[Dict[str, str]]:
        key = self._build_key(cache_key)
        try:
            raw = await self._redis.get(key)
        except Exception as exc:
            logger.warning("Name cache read failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None

        try:
            names = msgpack.unpackb(raw, raw=False)
        except Exception as exc:
            logger.warning("Name cache deserialization failed for %s: %s", key, exc)
            return None

        logger.debug("Name cache HIT %s (%d names)", key, len(names))
        return names

    async def put(self, cache_key: str, names: Dict[str, str]) -> None:
        key = self._build_key(cache_key)
        packed = msgpack.packb(names, use_bin_type=True)
        await self._redis.set(key, packed)
        logger.debug("Name cache PUT %s (%d names)", key, len(names))

    async def ping(self) -> bool:
        try:
            return await self._redis.ping()
        except Exception:
            return False
