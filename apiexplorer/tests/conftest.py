"""Shared pytest configuration for apiexplorer tests."""
import pytest

from apiexplorer.connections.models import BearerAuth, Connection
from apiexplorer.naming.cache import FriendlyNameCache
from apiexplorer.naming.resolver import FriendlyNameResolver
from apiexplorer.query.orchestrator import QueryOrchestrator
from apiexplorer.tests.fakes import FakeFetcher, FakeSuggester


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def suggester():
    return FakeSuggester()


@pytest.fixture
def orchestrator(fetcher, suggester):
    return QueryOrchestrator(fetcher, FriendlyNameResolver(suggester, FriendlyNameCache()))


@pytest.fixture
def bearer_connection():
    return Connection(
        id="conn-1",
        name="Users API",
        base_url="https://api.example.com",
        auth=BearerAuth(token="s3cret"),
    )
