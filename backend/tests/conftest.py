"""
Shared fixtures: controllable clock, in-memory stores and a mocked provider.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from veritas.cache.engine import TieredCacheEngine
from veritas.cache.ranking import PopularityRanker
from veritas.cache.store import InMemoryKeyValueStore, RecordStore
from veritas.config import EngineConfig
from veritas.services.orchestrator import QueryOrchestrator
from veritas.sessions.history import SessionHistoryManager
from veritas.sessions.store import KeyValueSessionStore

# 2025-10-16T12:00:00Z
NOON_MS = 1760616000000
DAY_MS = 24 * 60 * 60 * 1000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = NOON_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def records(kv):
    return RecordStore(kv)


@pytest.fixture
def engine(records, clock):
    return TieredCacheEngine(records, EngineConfig(), clock=clock)


@pytest.fixture
def ranker(records, clock):
    return PopularityRanker(records, clock=clock)


@pytest.fixture
def history(kv, clock):
    return SessionHistoryManager(KeyValueSessionStore(kv), clock=clock)


@pytest.fixture
def provider():
    """Provider double answering every prompt with a fixed text."""
    mock = MagicMock()
    mock.invoke = AsyncMock(return_value="Truth is what the model says.")
    return mock


@pytest.fixture
def orchestrator(kv, provider, clock):
    return QueryOrchestrator.create(kv, provider, EngineConfig(), clock=clock)
