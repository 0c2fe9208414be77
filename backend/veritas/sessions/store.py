"""
Session storage.

SessionStore is the substrate contract consumed by the history manager.
KeyValueSessionStore keeps each transcript as one JSON value under
``session:<id>`` in any KeyValueStore.
"""

import logging
from typing import Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from veritas.cache.store import KeyValueStore
from veritas.errors import StoreError
from veritas.models import SessionRecord

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"


class SessionStore(Protocol):
    async def get(self, session_id: str) -> Optional[SessionRecord]:
        ...

    async def put(self, session_id: str, record: SessionRecord) -> None:
        ...


class KeyValueSessionStore:
    """SessionStore over a byte-oriented key-value store."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        key = SESSION_PREFIX + session_id
        try:
            raw = await self.kv.get(key)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Session read failed for {session_id}: {e}", cause=e)
        if raw is None:
            return None
        try:
            return SessionRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            raise StoreError(f"Corrupt session {session_id}: {e}", cause=e)

    async def put(self, session_id: str, record: SessionRecord) -> None:
        key = SESSION_PREFIX + session_id
        try:
            await self.kv.put(key, record.model_dump_json(by_alias=True).encode("utf-8"))
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Session write failed for {session_id}: {e}", cause=e)
