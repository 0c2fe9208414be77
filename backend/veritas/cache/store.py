"""
Answer Cache Store

Key-value persistence behind the tiered cache, plus the typed record codec
that keeps JSON handling out of the engine.

Key layout:
- truth:<query>   CanonicalRecord JSON
- cache:<query>   PromotedRecord JSON
- count:<query>   usage counter as decimal text

Backends:
- InMemoryKeyValueStore: dict-backed, used by tests and single-process runs
- JsonFileKeyValueStore: same semantics persisted to one JSON file
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from veritas.errors import StoreError
from veritas.models import CanonicalRecord, PromotedRecord

logger = logging.getLogger(__name__)

TRUTH_PREFIX = "truth:"
CACHE_PREFIX = "cache:"
COUNT_PREFIX = "count:"

R = TypeVar("R", bound=BaseModel)


class KeyValueStore(Protocol):
    """Byte-oriented store with prefix listing."""

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def put(self, key: str, value: bytes) -> None:
        ...

    async def list(self, prefix: str) -> List[str]:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store. Keys are listed in insertion order."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def put(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    async def list(self, prefix: str) -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)


class JsonFileKeyValueStore(InMemoryKeyValueStore):
    """
    In-memory store mirrored to a JSON file after every write.

    Values are stored as UTF-8 text. Writes go to a temp file that replaces
    the target so a crash never leaves a truncated file.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._lock = asyncio.Lock()
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to load store file {self.path}: {e}", cause=e)
        self._data = {key: value.encode("utf-8") for key, value in raw.items()}
        logger.info(f"Loaded {len(self._data)} keys from {self.path}")

    async def put(self, key: str, value: bytes) -> None:
        async with self._lock:
            previous = self._data.get(key)
            await super().put(key, value)
            loop = asyncio.get_running_loop()
            try:
                snapshot = {k: v.decode("utf-8") for k, v in self._data.items()}
                await loop.run_in_executor(None, self._flush, snapshot)
            except (StoreError, UnicodeDecodeError):
                if previous is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = previous
                raise

    def _flush(self, snapshot: Dict[str, str]) -> None:
        """Write a snapshot to disk. Runs in the default executor."""
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreError(f"Failed to write store file {self.path}: {e}", cause=e)


class RecordStore:
    """
    Typed access to cache records over a KeyValueStore.

    Every backend failure and every undecodable value surfaces as StoreError.
    """

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    # ---------- raw access ----------
    async def _get(self, key: str) -> Optional[bytes]:
        try:
            return await self.kv.get(key)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Store read failed for {key}: {e}", cause=e)

    async def _put(self, key: str, value: bytes) -> None:
        try:
            await self.kv.put(key, value)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Store write failed for {key}: {e}", cause=e)

    async def _get_record(self, key: str, model: Type[R]) -> Optional[R]:
        raw = await self._get(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except PydanticValidationError as e:
            raise StoreError(f"Corrupt record at {key}: {e}", cause=e)

    async def _put_record(self, key: str, record: BaseModel) -> None:
        await self._put(key, record.model_dump_json(by_alias=True).encode("utf-8"))

    # ---------- canonical ----------
    async def get_canonical(self, query_key: str) -> Optional[CanonicalRecord]:
        return await self._get_record(TRUTH_PREFIX + query_key, CanonicalRecord)

    async def put_canonical(self, query_key: str, record: CanonicalRecord) -> None:
        await self._put_record(TRUTH_PREFIX + query_key, record)

    # ---------- promoted ----------
    async def get_promoted(self, query_key: str) -> Optional[PromotedRecord]:
        return await self._get_record(CACHE_PREFIX + query_key, PromotedRecord)

    async def put_promoted(self, query_key: str, record: PromotedRecord) -> None:
        await self._put_record(CACHE_PREFIX + query_key, record)

    # ---------- usage counters ----------
    async def get_count(self, query_key: str) -> int:
        raw = await self._get(COUNT_PREFIX + query_key)
        if raw is None:
            return 0
        try:
            return int(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise StoreError(f"Corrupt counter for {query_key}: {raw!r}", cause=e)

    async def put_count(self, query_key: str, count: int) -> None:
        await self._put(COUNT_PREFIX + query_key, str(count).encode("utf-8"))

    async def counted_queries(self) -> List[str]:
        """Normalized queries that have a usage counter, in store listing order."""
        try:
            keys = await self.kv.list(COUNT_PREFIX)
        except Exception as e:
            raise StoreError(f"Store listing failed for {COUNT_PREFIX}: {e}", cause=e)
        return [key[len(COUNT_PREFIX):] for key in keys]
