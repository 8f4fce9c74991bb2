from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional, Union

from opentelemetry import trace
from pydantic import ValidationError

from apiexplorer.classifier.response_classifier import (
    Discovery,
    Empty,
    classify,
    row_sequence,
    union_keys,
)
from apiexplorer.connections.models import Connection
from apiexplorer.errors import NetworkError
from apiexplorer.http.fetcher import Fetcher, FetchResponse
from apiexplorer.naming.resolver import FriendlyNameResolver
from apiexplorer.query.builder import build_request, cache_key_for
from apiexplorer.query.models import ApiResponseEnvelope, QueryRequest

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("apiexplorer.orchestrator")

NO_SOURCE_SELECTED = "No data source selected."
NETWORK_FAILURE = "Connection failed. Check the URL and your internet connection."
UNKNOWN_ERROR = "An unknown error occurred."
MAX_ERROR_TEXT = 500


class QueryOrchestrator:
    """
    Runs one query end to end:

      validate -> build -> dispatch -> interpret -> enrich

    Single-shot, no retries, no timeout of its own. Every failure comes back
    as an envelope with `error` set; execute() does not raise for validation,
    network or HTTP errors. Name suggestion only starts after the fetch has
    completed.
    """

    def __init__(self, fetcher: Fetcher, resolver: FriendlyNameResolver) -> None:
        self._fetcher = fetcher
        self._resolver = resolver

    @property
    def resolver(self) -> FriendlyNameResolver:
        return self._resolver

    async def execute(
        self,
        connection: Optional[Connection],
        request: Union[QueryRequest, Dict[str, Any]],
        enrich: bool = True,
    ) -> ApiResponseEnvelope:
        """Run `request`. With `enrich=False` the name suggester is never consulted."""
        with tracer.start_as_current_span("orchestrator.execute") as span:
            # 1. Validate
            try:
                if not isinstance(request, QueryRequest):
                    request = QueryRequest.model_validate(request)
            except ValidationError as exc:
                messages = ", ".join(e["msg"] for e in exc.errors())
                span.set_attribute("query.outcome", "invalid")
                return ApiResponseEnvelope.failure(f"Invalid input data: {messages}")

            if connection is None and not request.is_absolute:
                span.set_attribute("query.outcome", "invalid")
                return ApiResponseEnvelope.failure(NO_SOURCE_SELECTED)

            span.set_attribute("query.method", request.method)
            if connection is not None:
                span.set_attribute("query.connection_id", connection.id)

            # 2. Build
            prepared = build_request(connection, request)

            # 3. Dispatch
            try:
                response = await self._fetcher.fetch(prepared)
            except NetworkError as exc:
                logger.warning("Network failure for %s %s: %s", request.method, request.path, exc)
                span.set_attribute("query.outcome", "network_error")
                return ApiResponseEnvelope.failure(NETWORK_FAILURE)
            except Exception as exc:
                logger.error("Fetch failed for %s %s: %s", request.method, request.path, exc)
                span.set_attribute("query.outcome", "fetch_error")
                return ApiResponseEnvelope.failure(str(exc) or UNKNOWN_ERROR)

            span.set_attribute("http.status_code", response.status)

            # 4. Interpret
            if not response.ok:
                span.set_attribute("query.outcome", "http_error")
                return ApiResponseEnvelope.failure(http_error_message(response))

            try:
                data = response.json() if response.body.strip() else None
            except ValueError as exc:
                span.set_attribute("query.outcome", "invalid_json")
                return ApiResponseEnvelope.failure(f"The API returned invalid JSON: {exc}")

            classification = classify(data)
            span.set_attribute("query.classification", classification.kind)

            if isinstance(classification, Discovery):
                span.set_attribute("query.outcome", "ok")
                return ApiResponseEnvelope(
                    data=data,
                    suggested_names={},
                    is_discovery=True,
                    namespace=classification.namespace,
                )
            if isinstance(classification, Empty) or not enrich:
                span.set_attribute("query.outcome", "ok")
                return ApiResponseEnvelope(data=data, suggested_names={})

            # 5. Enrich
            keys = union_keys(row_sequence(classification))
            names = await self._resolver.resolve(cache_key_for(connection, request), keys)
            span.set_attribute("query.outcome", "ok")
            span.set_attribute("query.columns", len(keys))
            return ApiResponseEnvelope(data=data, suggested_names=names)


def http_error_message(response: FetchResponse) -> str:
    """Status line plus the best detail the body offers."""
    prefix = f"Error: {response.status} {response.status_text}."
    text = response.text()
    try:
        parsed = json.loads(text)
    except ValueError:
        return f"{prefix} {text[:MAX_ERROR_TEXT]}".rstrip()

    detail = parsed.get("message") if isinstance(parsed, dict) else None
    if not detail:
        detail = json.dumps(parsed)
    return f"{prefix} Details: {detail}"
