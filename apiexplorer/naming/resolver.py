from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Optional, Union

from apiexplorer.naming.cache import FriendlyNameCache, RedisFriendlyNameCache
from apiexplorer.naming.suggester import NameSuggester

logger = logging.getLogger(__name__)

NameCache = Union[FriendlyNameCache, RedisFriendlyNameCache]


class FriendlyNameResolver:
    """
    Maps raw JSON keys to display names, memoized per endpoint.

    - Cache hit: the stored mapping is returned unchanged; the suggester is
      called at most once per cache key for the cache's lifetime.
    - No keys: empty mapping, no suggester call.
    - Suggester failure: nothing is cached and every key maps to itself.
      resolve() never raises.

    Two concurrent misses for the same key each call the suggester; there is
    no in-flight deduplication.
    """

    def __init__(self, suggester: NameSuggester, cache: Optional[NameCache] = None) -> None:
        self._suggester = suggester
        self._cache = cache if cache is not None else FriendlyNameCache()

    @property
    def cache(self) -> NameCache:
        return self._cache

    async def resolve(self, cache_key: str, keys: Iterable[str]) -> Dict[str, str]:
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return cached

        key_list: List[str] = list(dict.fromkeys(keys))
        if not key_list:
            return {}

        try:
            names = await self._suggester.suggest(key_list)
            if not isinstance(names, dict):
                raise TypeError(f"suggester returned {type(names).__name__}, expected dict")
        except Exception as exc:
            logger.error("Name suggestion failed for %s: %s", cache_key, exc)
            return {key: key for key in key_list}

        missing = [k for k in key_list if k not in names]
        if missing:
            logger.debug("Suggester omitted %d key(s) for %s", len(missing), cache_key)

        try:
            await self._cache.put(cache_key, names)
        except Exception as exc:
            logger.warning("Name cache write failed for %s: %s", cache_key, exc)
        return names


def display_name(names: Dict[str, str], key: str) -> str:
    """Friendly name for `key`, falling back to the key itself."""
    name = names.get(key)
    return key if name is None else name
