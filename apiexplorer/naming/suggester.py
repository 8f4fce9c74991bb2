from __future__ import annotations
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp

from apiexplorer.errors import NameSuggestionError

logger = logging.getLogger(__name__)

_ACRONYMS = {"id", "url", "uri", "api", "ip", "sku", "uuid", "html", "json", "gmt", "utc"}
_WORD_BOUNDARY = re.compile(r"[_\-\s.]+|(?<=[a-z0-9])(?=[A-Z])")


class NameSuggester(ABC):
    """External collaborator that proposes display names for raw JSON keys."""

    @abstractmethod
    async def suggest(self, keys: List[str]) -> Dict[str, str]:
        """
        Return a mapping raw key -> suggested display name.

        May raise; FriendlyNameResolver absorbs every failure.
        """
        ...

    async def close(self) -> None:
        pass


class HeuristicNameSuggester(NameSuggester):
    """
    Offline suggester used when no suggestion service is configured.

    'date_created_gmt' -> 'Date Created GMT', 'billingAddress' -> 'Billing Address'.
    """

    async def suggest(self, keys: List[str]) -> Dict[str, str]:
        return {key: humanize_key(key) for key in keys}


def humanize_key(key: str) -> str:
    words = [w for w in _WORD_BOUNDARY.split(key) if w]
    if not words:
        return key
    return " ".join(w.upper() if w.lower() in _ACRONYMS else w.capitalize() for w in words)


class HttpNameSuggester(NameSuggester):
    """
    Calls a remote name-suggestion service (typically an LLM-backed flow).

    Request:  POST {endpoint}  {"apiKeys": [...]}
    Response: either {"key": "Friendly Name", ...}
              or [{"key": ..., "friendlyName": ...}, ...]
              or {"suggestions": [<pairs>]}
    """

    def __init__(
        self,
        endpoint: str,
        token: str = "",
        session: Optional[aiohttp.ClientSession] = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._endpoint = endpoint
        self._token = token
        self._session = session
        self._own_session = session is None
        self._timeout_s = timeout_s

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_s)
            )
        return self._session

    async def close(self) -> None:
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()

    async def suggest(self, keys: List[str]) -> Dict[str, str]:
        session = await self._get_session()
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            async with session.post(
                self._endpoint, json={"apiKeys": keys}, headers=headers
            ) as resp:
                resp.raise_for_status()
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as exc:
            raise NameSuggestionError(f"Name suggestion request failed: {exc}") from exc

        return parse_suggestions(body)


def parse_suggestions(body: Any) -> Dict[str, str]:
    """Normalize the accepted reply shapes into a plain mapping."""
    if isinstance(body, dict) and isinstance(body.get("suggestions"), list):
        body = body["suggestions"]

    if isinstance(body, list):
        names: Dict[str, str] = {}
        for item in body:
            if not isinstance(item, dict) or "key" not in item or "friendlyName" not in item:
                raise NameSuggestionError(f"Malformed suggestion entry: {item!r}")
            names[str(item["key"])] = str(item["friendlyName"])
        return names

    if isinstance(body, dict):
        if not all(isinstance(v, str) for v in body.values()):
            raise NameSuggestionError("Suggestion mapping values must be strings")
        return {str(k): v for k, v in body.items()}

    raise NameSuggestionError(f"Unexpected suggestion reply type: {type(body).__name__}")
