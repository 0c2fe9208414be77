"""
Cache Module

Tiered answer caching keyed by normalized queries: canonical records,
promoted fast-path records, usage counters and the daily popularity ranking.
"""

from veritas.cache.normalizer import normalize_query
from veritas.cache.store import (
    KeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    RecordStore,
)
from veritas.cache.engine import TieredCacheEngine
from veritas.cache.ranking import PopularityRanker

__all__ = [
    "normalize_query",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "RecordStore",
    "TieredCacheEngine",
    "PopularityRanker",
]
