from __future__ import annotations
import base64
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

from apiexplorer.connections.models import (
    ApiKeyAuth,
    BasicAuth,
    BearerAuth,
    Connection,
    WooCommerceAuth,
)
from apiexplorer.query.models import BODY_METHODS, QueryRequest

DEFAULT_HEADERS = {"Content-Type": "application/json"}


@dataclass
class PreparedRequest:
    url: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


def build_url(base: str, params: List[Tuple[str, str]]) -> str:
    """
    Append query parameters in order. Existing parameters on `base` are kept
    and duplicate keys accumulate instead of overwriting.
    """
    if not params:
        return base
    parts = urlsplit(base)
    extra = urlencode(params)
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def join_url(base_url: str, path: str) -> str:
    if path.startswith("/"):
        return base_url.rstrip("/") + path
    return base_url + path


def auth_headers(connection: Connection) -> Dict[str, str]:
    auth = connection.auth
    if isinstance(auth, BearerAuth):
        return {"Authorization": f"Bearer {auth.token}"}
    if isinstance(auth, BasicAuth):
        encoded = base64.b64encode(f"{auth.username}:{auth.password}".encode()).decode()
        return {"Authorization": f"Basic {encoded}"}
    if isinstance(auth, ApiKeyAuth):
        return {auth.header_name: auth.api_key}
    return {}


def auth_params(connection: Connection) -> List[Tuple[str, str]]:
    """WooCommerce keys travel in the query string."""
    auth = connection.auth
    if isinstance(auth, WooCommerceAuth):
        return [("consumer_key", auth.consumer_key), ("consumer_secret", auth.consumer_secret)]
    return []


def set_header(headers: Dict[str, str], name: str, value: str) -> None:
    """Set `name`, dropping any existing header that differs from it only in case."""
    for existing in [k for k in headers if k.lower() == name.lower()]:
        del headers[existing]
    headers[name] = value


def build_request(connection: Optional[Connection], request: QueryRequest) -> PreparedRequest:
    """
    Compose the final URL and headers.

    Header precedence, lowest first: Content-Type default, caller headers,
    connection auth. Blank-key params and headers are skipped.
    """
    base = request.path if connection is None else join_url(connection.base_url, request.path)
    params = [(p.key, p.value) for p in request.params if p.key]
    if connection is not None:
        params.extend(auth_params(connection))

    headers = dict(DEFAULT_HEADERS)
    for h in request.headers:
        if h.key:
            set_header(headers, h.key, h.value)
    if connection is not None:
        for name, value in auth_headers(connection).items():
            set_header(headers, name, value)

    body = request.body if request.method in BODY_METHODS and request.body else None
    return PreparedRequest(url=build_url(base, params), method=request.method, headers=headers, body=body)


def cache_key_for(connection: Optional[Connection], request: QueryRequest) -> str:
    if connection is None:
        return f"ai-suggestions:{request.path}"
    return f"ai-suggestions:{connection.base_url}{request.path}"
