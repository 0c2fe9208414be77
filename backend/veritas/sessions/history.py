"""
Session History Manager

Append-only chat transcripts per session id, used for follow-up context and
for export/import of whole conversations.

Records are created lazily on the first append. Reading an unknown session
returns an empty transcript without persisting it. Appends and imports for
one session id are serialized.
"""

import json
import logging
from typing import Dict, List, Union

from pydantic import ValidationError as PydanticValidationError

from veritas.errors import ParseError, ValidationError
from veritas.models import ChatMessage, MessageRole, SessionRecord
from veritas.sessions.store import SessionStore
from veritas.utils.locks import KeyedLocks
from veritas.utils.temporal import Clock, now_ms

logger = logging.getLogger(__name__)

ASSISTANT_USER = "ai"


class SessionHistoryManager:
    """Owns the lifecycle of SessionRecords."""

    def __init__(self, store: SessionStore, clock: Clock = now_ms):
        self.store = store
        self.clock = clock
        self._locks = KeyedLocks()

    async def read(self, session_id: str) -> SessionRecord:
        """
        Full transcript for a session.

        Returns:
            The stored record, or an empty one with a fresh ``created``
        """
        record = await self.store.get(session_id)
        if record is None:
            return SessionRecord(session_id=session_id, created=self.clock())
        return record

    async def append(self, session_id: str, message: ChatMessage) -> SessionRecord:
        """Append one message, creating the session if needed."""
        return await self._append_all(session_id, [message])

    async def append_exchange(
        self,
        session_id: str,
        user_content: str,
        assistant_content: str,
        user: str = "user",
    ) -> SessionRecord:
        """
        Append a user message followed by the assistant reply.

        Both messages land in one write so the pair is never split.
        """
        messages = [
            ChatMessage(content=user_content, user=user, role=MessageRole.USER),
            ChatMessage(content=assistant_content, user=ASSISTANT_USER, role=MessageRole.ASSISTANT),
        ]
        return await self._append_all(session_id, messages)

    async def _append_all(self, session_id: str, messages: List[ChatMessage]) -> SessionRecord:
        async with self._locks.hold(session_id):
            record = await self.read(session_id)
            record.messages.extend(messages)
            await self.store.put(session_id, record)

        logger.debug(f"Session {session_id}: appended {len(messages)}, total {len(record.messages)}")
        return record

    async def recent_assistant_context(self, session_id: str, limit: int = 2) -> List[Dict[str, str]]:
        """
        Role/content pairs of the most recent assistant messages.

        Args:
            session_id: Session to read
            limit: Maximum number of assistant messages, oldest first

        Returns:
            List of {"role": "assistant", "content": ...}
        """
        if limit <= 0:
            return []
        record = await self.read(session_id)
        assistant = [m for m in record.messages if m.role == MessageRole.ASSISTANT]
        return [{"role": m.role.value, "content": m.content} for m in assistant[-limit:]]

    async def export(self, session_id: str) -> str:
        """Serialize the full transcript as indented JSON."""
        record = await self.read(session_id)
        return record.model_dump_json(by_alias=True, indent=2)

    async def import_(self, session_id: str, data: Union[str, bytes]) -> SessionRecord:
        """
        Replace a transcript wholesale.

        A payload without ``created`` is stamped with the manager clock.

        Raises:
            ParseError: Payload is not JSON or not a session record
            ValidationError: Embedded sessionId differs from ``session_id``
        """
        try:
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            raise ParseError("Invalid JSON format", cause=e)

        if not isinstance(payload, dict):
            raise ParseError("Invalid JSON format")

        if payload.get("sessionId") != session_id:
            logger.info(f"Rejected import into {session_id}: embedded id {payload.get('sessionId')!r}")
            raise ValidationError("Invalid session ID")

        payload.setdefault("created", self.clock())
        try:
            record = SessionRecord.model_validate(payload)
        except PydanticValidationError as e:
            raise ParseError(f"Invalid session format: {e.error_count()} field error(s)", cause=e)

        async with self._locks.hold(session_id):
            await self.store.put(session_id, record)

        logger.info(f"Imported session {session_id} with {len(record.messages)} messages")
        return record
