"""Tests for request composition (URL, headers, auth)."""
import base64

import pytest
from pydantic import ValidationError

from apiexplorer.connections.models import (
    ApiKeyAuth,
    BasicAuth,
    BearerAuth,
    Connection,
    NoAuth,
    WooCommerceAuth,
)
from apiexplorer.query.builder import build_request, build_url, cache_key_for
from apiexplorer.query.models import KeyValue, QueryRequest


def _conn(auth=None, base_url="https://shop.example.com/wp-json") -> Connection:
    return Connection(id="c1", name="Shop", base_url=base_url, auth=auth or NoAuth())


def _req(**kw) -> QueryRequest:
    kw.setdefault("path", "/wc/v3/orders")
    return QueryRequest(**kw)


class TestBuildUrl:
    def test_params_appended_in_order(self):
        assert build_url("https://x.io/a", [("b", "2"), ("a", "1")]) == "https://x.io/a?b=2&a=1"

    def test_duplicate_keys_accumulate(self):
        assert build_url("https://x.io/a", [("tag", "1"), ("tag", "2")]) == "https://x.io/a?tag=1&tag=2"

    def test_existing_query_kept(self):
        assert build_url("https://x.io/a?x=0", [("y", "1")]) == "https://x.io/a?x=0&y=1"

    def test_values_are_encoded(self):
        assert build_url("https://x.io/", [("q", "a b&c")]) == "https://x.io/?q=a+b%26c"


class TestBuildRequest:
    def test_base_url_joined_with_path(self):
        prepared = build_request(_conn(base_url="https://x.io/api/"), _req(path="/users"))
        assert prepared.url == "https://x.io/api/users"

    def test_default_content_type(self):
        prepared = build_request(_conn(), _req())
        assert prepared.headers == {"Content-Type": "application/json"}

    def test_caller_headers_override_defaults(self):
        prepared = build_request(_conn(), _req(headers=[KeyValue(key="Content-Type", value="text/plain")]))
        assert prepared.headers["Content-Type"] == "text/plain"

    def test_caller_headers_override_defaults_case_insensitively(self):
        prepared = build_request(_conn(), _req(headers=[KeyValue(key="content-type", value="text/plain")]))
        assert prepared.headers == {"content-type": "text/plain"}

    def test_blank_keys_skipped(self):
        prepared = build_request(
            _conn(),
            _req(params=[KeyValue(key="", value="x")], headers=[KeyValue(key="", value="y")]),
        )
        assert "?" not in prepared.url
        assert prepared.headers == {"Content-Type": "application/json"}

    def test_bearer_wins_over_caller_authorization(self):
        prepared = build_request(
            _conn(BearerAuth(token="tok")),
            _req(headers=[KeyValue(key="authorization", value="Bearer caller")]),
        )
        assert prepared.headers["Authorization"] == "Bearer tok"
        assert "authorization" not in prepared.headers

    def test_basic_auth(self):
        prepared = build_request(_conn(BasicAuth(username="u", password="p")), _req())
        expected = base64.b64encode(b"u:p").decode()
        assert prepared.headers["Authorization"] == f"Basic {expected}"

    def test_api_key_header(self):
        prepared = build_request(_conn(ApiKeyAuth(header_name="X-Api-Key", api_key="k")), _req())
        assert prepared.headers["X-Api-Key"] == "k"

    def test_woocommerce_keys_in_query_after_params(self):
        prepared = build_request(
            _conn(WooCommerceAuth(consumer_key="ck_1", consumer_secret="cs_2")),
            _req(params=[KeyValue(key="per_page", value="5")]),
        )
        assert prepared.url.endswith("/wc/v3/orders?per_page=5&consumer_key=ck_1&consumer_secret=cs_2")
        assert "Authorization" not in prepared.headers

    def test_body_only_for_post_and_put(self):
        assert build_request(_conn(), _req(method="GET", body='{"a":1}')).body is None
        assert build_request(_conn(), _req(method="POST", body='{"a":1}')).body == '{"a":1}'
        assert build_request(_conn(), _req(method="PUT", body='{"a":1}')).body == '{"a":1}'
        assert build_request(_conn(), _req(method="PATCH", body='{"a":1}')).body is None

    def test_absolute_url_without_connection(self):
        prepared = build_request(None, _req(path="https://open.example.com/items"))
        assert prepared.url == "https://open.example.com/items"


class TestQueryRequest:
    def test_method_normalized(self):
        assert _req(method="get").method == "GET"

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError):
            _req(method="FETCH")

    def test_empty_path_rejected(self):
        with pytest.raises(ValidationError):
            QueryRequest(path="  ")


class TestCacheKey:
    def test_with_connection(self):
        assert cache_key_for(_conn(), _req(path="/users")) == "ai-suggestions:https://shop.example.com/wp-json/users"

    def test_without_connection(self):
        assert cache_key_for(None, _req(path="https://x.io/a")) == "ai-suggestions:https://x.io/a"
