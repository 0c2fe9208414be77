"""
Query Orchestrator

Composes the normalizer, tiered cache engine, popularity ranker, session
history and model provider into the operations exposed to the transport
layer.

Query flow:
    promoted record? -> answer directly, log the exchange
    otherwise        -> build prompt (with assistant context for follow-ups)
                     -> invoke provider
                     -> write canonical record, log the exchange, count usage

Every exposed operation returns an OperationResult. Typed failures keep
their kind; anything unexpected is reported as an internal error.

Usage:
    orchestrator = QueryOrchestrator.create(InMemoryKeyValueStore(), provider)
    result = await orchestrator.query("What is truth?", session_id="s1")
    if result.ok:
        print(result.data.answer)
"""

import asyncio
import functools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from veritas.cache.engine import TieredCacheEngine
from veritas.cache.normalizer import normalize_query
from veritas.cache.ranking import PopularityRanker
from veritas.cache.store import KeyValueStore, RecordStore
from veritas.config import EngineConfig
from veritas.errors import ErrorKind, ProviderError, ValidationError, VeritasError
from veritas.llm.providers import ModelProvider
from veritas.models import (
    AnswerSource,
    ImportResult,
    LoadResult,
    OperationResult,
    QueryResult,
    SaveResult,
)
from veritas.sessions.history import SessionHistoryManager
from veritas.sessions.store import KeyValueSessionStore
from veritas.utils.temporal import Clock, now_ms

logger = logging.getLogger(__name__)

_FAILURE_LOG_LEVELS = {
    ErrorKind.VALIDATION: logging.INFO,
    ErrorKind.PARSE: logging.INFO,
    ErrorKind.PROVIDER: logging.WARNING,
    ErrorKind.STORE: logging.ERROR,
    ErrorKind.INTERNAL: logging.ERROR,
}


def returns_result(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[OperationResult]]:
    """Run an operation and fold its outcome into an OperationResult."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs) -> OperationResult:
        try:
            data = await func(self, *args, **kwargs)
        except VeritasError as e:
            logger.log(_FAILURE_LOG_LEVELS[e.kind], f"{func.__name__} failed [{e.kind.value}]: {e.message}")
            return OperationResult.failure(e.kind, e.message)
        except Exception as e:
            logger.error(f"{func.__name__} failed unexpectedly: {e}", exc_info=True)
            return OperationResult.failure(ErrorKind.INTERNAL, str(e) or type(e).__name__)
        return OperationResult.success(data)

    return wrapper


class QueryOrchestrator:
    """Entry point for load, save, query, ranking and session operations."""

    def __init__(
        self,
        engine: TieredCacheEngine,
        ranker: PopularityRanker,
        history: SessionHistoryManager,
        provider: ModelProvider,
        config: Optional[EngineConfig] = None,
    ):
        self.engine = engine
        self.ranker = ranker
        self.history = history
        self.provider = provider
        self.config = config or engine.config

        self._model_calls = 0
        self._provider_failures = 0

    @classmethod
    def create(
        cls,
        kv: KeyValueStore,
        provider: ModelProvider,
        config: Optional[EngineConfig] = None,
        clock: Clock = now_ms,
    ) -> "QueryOrchestrator":
        """
        Wire every component over one key-value store.

        Args:
            kv: Backing store for records, counters and sessions
            provider: Model provider
            config: Immutable cache policy
            clock: Millisecond clock shared by all components
        """
        config = config or EngineConfig()
        records = RecordStore(kv)
        return cls(
            engine=TieredCacheEngine(records, config, clock=clock),
            ranker=PopularityRanker(records, clock=clock),
            history=SessionHistoryManager(KeyValueSessionStore(kv), clock=clock),
            provider=provider,
            config=config,
        )

    # ---------- helpers ----------
    def _query_key(self, query: Optional[str]) -> str:
        if not query:
            raise ValidationError("Query is required")
        key = normalize_query(query, self.config.max_query_key_length)
        if not key:
            raise ValidationError("Query must contain at least one letter or digit")
        return key

    @staticmethod
    def _require_session(session_id: Optional[str]) -> str:
        if not session_id:
            raise ValidationError("sessionId is required")
        return session_id

    async def build_prompt(self, query: str, is_follow_up: bool, session_id: str) -> str:
        """
        Prompt sent to the provider.

        Follow-ups are prefixed with the session's most recent assistant
        messages as a JSON context block; user messages are never included.
        """
        if not is_follow_up:
            return query
        context = await self.history.recent_assistant_context(
            session_id, self.config.follow_up_context_messages
        )
        encoded = json.dumps(context, ensure_ascii=False, separators=(",", ":"))
        return f"Context: {encoded}\nQuery: {query}"

    async def _invoke_provider(self, prompt: str) -> str:
        self._model_calls += 1
        try:
            return await asyncio.wait_for(
                self.provider.invoke(prompt),
                timeout=self.config.provider_timeout_seconds,
            )
        except ProviderError:
            self._provider_failures += 1
            raise
        except asyncio.TimeoutError as e:
            self._provider_failures += 1
            raise ProviderError(
                f"Model provider timed out after {self.config.provider_timeout_seconds}s", cause=e
            )
        except Exception as e:
            self._provider_failures += 1
            raise ProviderError(f"Model provider error: {e}", cause=e)

    # ---------- cache operations ----------
    @returns_result
    async def load(self, query: Optional[str]) -> LoadResult:
        """Canonical answer for a query, without counting or promotion."""
        key = self._query_key(query)
        return LoadResult(answer=await self.engine.load(key))

    @returns_result
    async def save(
        self,
        query: Optional[str],
        answer: Optional[str],
        editor: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> SaveResult:
        """
        Store a human-edited answer.

        Writes the canonical record, logs the exchange, then counts usage
        (which may promote the edited answer).
        A query with no letters or digits is rejected as a validation error.
        """
        if not query or not answer:
            raise ValidationError("query and answer are required")
        session_id = self._require_session(session_id)
        key = self._query_key(query)

        await self.engine.record_edit(key, answer, editor)
        await self.history.append_exchange(session_id, query, answer, user=editor or "user")
        await self.engine.count_usage(key, answer)
        return SaveResult(success=True, message=f"Saved truth:{key}")

    @returns_result
    async def query(
        self,
        query: Optional[str],
        is_follow_up: bool = False,
        session_id: Optional[str] = None,
    ) -> QueryResult:
        """
        Answer a query from the promoted tier or the model provider.

        A provider failure leaves records, counters and the session untouched.
        A query with no letters or digits is rejected before any lookup.
        """
        session_id = self._require_session(session_id)
        key = self._query_key(query)

        promoted = await self.engine.get_promoted_answer(key)
        if promoted is not None:
            await self.history.append_exchange(session_id, query, promoted)
            return QueryResult(answer=promoted, session_id=session_id, source=AnswerSource.PROMOTED)

        prompt = await self.build_prompt(query, is_follow_up, session_id)
        answer = await self._invoke_provider(prompt)

        await self.engine.record_ai_answer(key, answer)
        await self.history.append_exchange(session_id, query, answer)
        await self.engine.count_usage(key, answer)
        return QueryResult(answer=answer, session_id=session_id, source=AnswerSource.MODEL)

    @returns_result
    async def top_queries(self, limit: Optional[int] = None):
        """Today's most used queries."""
        return await self.ranker.top_queries(limit if limit is not None else self.config.top_queries_limit)

    # ---------- session operations ----------
    @returns_result
    async def append_exchange(
        self,
        session_id: Optional[str],
        user_message: Optional[str],
        assistant_message: Optional[str],
    ) -> SaveResult:
        """Log a user/assistant pair without touching the cache."""
        session_id = self._require_session(session_id)
        if not user_message or not assistant_message:
            raise ValidationError("query and answer are required")
        await self.history.append_exchange(session_id, user_message, assistant_message)
        return SaveResult(success=True, message="Exchange added")

    @returns_result
    async def get_history(self, session_id: Optional[str]):
        return await self.history.read(self._require_session(session_id))

    @returns_result
    async def export_session(self, session_id: Optional[str]) -> str:
        return await self.history.export(self._require_session(session_id))

    @returns_result
    async def import_session(
        self,
        session_id: Optional[str],
        data: Union[str, bytes],
    ) -> ImportResult:
        await self.history.import_(self._require_session(session_id), data)
        return ImportResult()

    def get_stats(self) -> Dict[str, Any]:
        """Engine counters plus provider call statistics."""
        stats = self.engine.get_stats()
        stats.update({
            "model_calls": self._model_calls,
            "provider_failures": self._provider_failures,
        })
        return stats
