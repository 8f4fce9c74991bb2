from __future__ import annotations
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp

from apiexplorer.errors import NetworkError
from apiexplorer.query.builder import PreparedRequest, set_header

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    """Fully-read HTTP response; the body is buffered so callers need no session."""

    status: int
    status_text: str
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body

    def json(self) -> Any:
        return json.loads(self.body)


class Fetcher(ABC):
    """Outbound HTTP collaborator used by the orchestrator."""

    @abstractmethod
    async def fetch(self, request: PreparedRequest) -> FetchResponse:
        """
        Perform one request, no retries.
        Raise NetworkError when the host cannot be reached.
        """
        ...

    async def close(self) -> None:
        pass


class AiohttpFetcher(Fetcher):
    """
    Fetcher over a shared aiohttp.ClientSession (connection pooling).

    `timeout_s=None` leaves aiohttp's own default timeout in place.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self._session = session
        self._own_session = session is None
        self._timeout_s = timeout_s

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            if self._timeout_s is None:
                self._session = aiohttp.ClientSession()
            else:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self._timeout_s)
                )
        return self._session

    async def close(self) -> None:
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def fetch(self, request: PreparedRequest) -> FetchResponse:
        session = await self._get_session()
        headers = dict(request.headers)
        set_header(headers, "Cache-Control", "no-store")
        logger.info("%s %s", request.method, _redact(request.url))
        try:
            async with session.request(
                request.method,
                request.url,
                headers=headers,
                data=request.body.encode() if request.body is not None else None,
            ) as resp:
                body = await resp.text(errors="replace")
                return FetchResponse(
                    status=resp.status,
                    status_text=resp.reason or "",
                    body=body,
                    headers=dict(resp.headers),
                )
        except (aiohttp.ClientConnectionError, aiohttp.InvalidURL, asyncio.TimeoutError) as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc


def _redact(url: str) -> str:
    """Drop the query string from log lines; it may carry consumer secrets."""
    return url.split("?", 1)[0]
