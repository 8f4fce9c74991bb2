"""Tests for the friendly-name resolver, caches and suggesters."""
import msgpack
import pytest
from aiohttp import web
from aiohttp import test_utils

from apiexplorer.errors import NameSuggestionError
from apiexplorer.naming.cache import FriendlyNameCache, RedisFriendlyNameCache
from apiexplorer.naming.resolver import FriendlyNameResolver, display_name
from apiexplorer.naming.suggester import (
    HeuristicNameSuggester,
    HttpNameSuggester,
    humanize_key,
    parse_suggestions,
)
from apiexplorer.tests.fakes import FakeSuggester


class _FakeRedis:
    """Minimal async stand-in for redis.asyncio.Redis (get/set/ping)."""

    def __init__(self) -> None:
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value

    async def ping(self):
        return True


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class TestFriendlyNameResolver:
    @pytest.mark.asyncio
    async def test_second_call_hits_cache(self):
        suggester = FakeSuggester({"id": "ID", "email": "Email Address"})
        resolver = FriendlyNameResolver(suggester, FriendlyNameCache())

        first = await resolver.resolve("k", ["id", "email"])
        second = await resolver.resolve("k", ["id", "email"])

        assert first == {"id": "ID", "email": "Email Address"}
        assert second == first
        assert len(suggester.calls) == 1

    @pytest.mark.asyncio
    async def test_cached_mapping_returned_even_for_new_keys(self):
        suggester = FakeSuggester({"id": "ID"})
        resolver = FriendlyNameResolver(suggester)
        await resolver.resolve("k", ["id"])
        assert await resolver.resolve("k", ["id", "other"]) == {"id": "ID"}
        assert len(suggester.calls) == 1

    @pytest.mark.asyncio
    async def test_empty_keys_skip_suggester(self):
        suggester = FakeSuggester()
        resolver = FriendlyNameResolver(suggester)
        assert await resolver.resolve("k", []) == {}
        assert suggester.calls == []

    @pytest.mark.asyncio
    async def test_failure_degrades_to_identity_and_is_not_cached(self):
        suggester = FakeSuggester(error=RuntimeError("quota exceeded"))
        cache = FriendlyNameCache()
        resolver = FriendlyNameResolver(suggester, cache)

        names = await resolver.resolve("k", ["id", "email"])
        assert names == {"id": "id", "email": "email"}
        assert len(cache) == 0

        await resolver.resolve("k", ["id", "email"])
        assert len(suggester.calls) == 2

    @pytest.mark.asyncio
    async def test_malformed_reply_degrades(self):
        class _ListSuggester(FakeSuggester):
            async def suggest(self, keys):
                return ["not", "a", "mapping"]

        resolver = FriendlyNameResolver(_ListSuggester())
        assert await resolver.resolve("k", ["a"]) == {"a": "a"}

    @pytest.mark.asyncio
    async def test_separate_caches_are_isolated(self):
        suggester = FakeSuggester({"id": "ID"})
        await FriendlyNameResolver(suggester, FriendlyNameCache()).resolve("k", ["id"])
        await FriendlyNameResolver(suggester, FriendlyNameCache()).resolve("k", ["id"])
        assert len(suggester.calls) == 2

    @pytest.mark.asyncio
    async def test_duplicate_keys_sent_once(self):
        suggester = FakeSuggester()
        await FriendlyNameResolver(suggester).resolve("k", ["a", "b", "a"])
        assert suggester.calls == [["a", "b"]]

    def test_display_name_falls_back_to_key(self):
        assert display_name({"a": "Alpha"}, "a") == "Alpha"
        assert display_name({"a": "Alpha"}, "b") == "b"
        assert display_name({"a": ""}, "a") == ""
        assert display_name({"a": None}, "a") == "a"


# ---------------------------------------------------------------------------
# Redis cache
# ---------------------------------------------------------------------------

class TestRedisFriendlyNameCache:
    @pytest.mark.asyncio
    async def test_put_then_get(self):
        redis = _FakeRedis()
        cache = RedisFriendlyNameCache(redis)
        await cache.put("ai-suggestions:https://x.io/users", {"id": "ID"})
        assert "apiexplorer:names:ai-suggestions:https://x.io/users" in redis.data
        assert await cache.get("ai-suggestions:https://x.io/users") == {"id": "ID"}

    @pytest.mark.asyncio
    async def test_miss(self):
        assert await RedisFriendlyNameCache(_FakeRedis()).get("nope") is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self):
        redis = _FakeRedis()
        redis.data["apiexplorer:names:k"] = b"\xc1"  # never-used msgpack byte
        assert await RedisFriendlyNameCache(redis).get("k") is None

    @pytest.mark.asyncio
    async def test_values_are_msgpack(self):
        redis = _FakeRedis()
        await RedisFriendlyNameCache(redis).put("k", {"a": "A"})
        assert msgpack.unpackb(redis.data["apiexplorer:names:k"], raw=False) == {"a": "A"}

    @pytest.mark.asyncio
    async def test_resolver_with_redis_cache(self):
        suggester = FakeSuggester({"id": "ID"})
        cache = RedisFriendlyNameCache(_FakeRedis())
        resolver = FriendlyNameResolver(suggester, cache)
        await resolver.resolve("k", ["id"])
        assert await resolver.resolve("k", ["id"]) == {"id": "ID"}
        assert len(suggester.calls) == 1


# ---------------------------------------------------------------------------
# Suggesters
# ---------------------------------------------------------------------------

class TestHeuristicSuggester:
    def test_humanize(self):
        assert humanize_key("date_created_gmt") == "Date Created GMT"
        assert humanize_key("billingAddress") == "Billing Address"
        assert humanize_key("id") == "ID"
        assert humanize_key("product-url") == "Product URL"
        assert humanize_key("___") == "___"

    @pytest.mark.asyncio
    async def test_suggest(self):
        names = await HeuristicNameSuggester().suggest(["first_name", "userId"])
        assert names == {"first_name": "First Name", "userId": "User ID"}


class TestParseSuggestions:
    def test_mapping(self):
        assert parse_suggestions({"id": "ID"}) == {"id": "ID"}

    def test_pairs(self):
        body = [{"key": "id", "friendlyName": "ID"}, {"key": "sku", "friendlyName": "SKU"}]
        assert parse_suggestions(body) == {"id": "ID", "sku": "SKU"}

    def test_wrapped_pairs(self):
        body = {"suggestions": [{"key": "id", "friendlyName": "ID"}]}
        assert parse_suggestions(body) == {"id": "ID"}

    def test_malformed(self):
        with pytest.raises(NameSuggestionError):
            parse_suggestions([{"key": "id"}])
        with pytest.raises(NameSuggestionError):
            parse_suggestions({"id": 3})
        with pytest.raises(NameSuggestionError):
            parse_suggestions("nope")


class TestHttpNameSuggester:
    @pytest.mark.asyncio
    async def test_posts_keys_and_parses_reply(self):
        received = {}

        async def handler(request):
            received["body"] = await request.json()
            received["auth"] = request.headers.get("Authorization")
            return web.json_response([{"key": k, "friendlyName": k.title()} for k in received["body"]["apiKeys"]])

        app = web.Application()
        app.router.add_post("/suggest", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        suggester = HttpNameSuggester(str(server.make_url("/suggest")), token="abc")
        try:
            names = await suggester.suggest(["name", "total"])
        finally:
            await suggester.close()
            await server.close()

        assert received["body"] == {"apiKeys": ["name", "total"]}
        assert received["auth"] == "Bearer abc"
        assert names == {"name": "Name", "total": "Total"}

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        async def handler(request):
            return web.json_response({"error": "boom"}, status=500)

        app = web.Application()
        app.router.add_post("/suggest", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        suggester = HttpNameSuggester(str(server.make_url("/suggest")))
        try:
            with pytest.raises(NameSuggestionError):
                await suggester.suggest(["a"])
        finally:
            await suggester.close()
            await server.close()
