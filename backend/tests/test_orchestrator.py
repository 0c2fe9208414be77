"""
Tests for the Query Orchestrator.

Covers the query/save/load flows, promotion, follow-up prompting and the
error-as-value contract.
"""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock

from veritas.config import EngineConfig
from veritas.errors import ErrorKind, ProviderError, StoreError
from veritas.models import AnswerSource
from veritas.services.orchestrator import QueryOrchestrator


class TestLoadAndSave:
    """Human edits and canonical lookups."""

    @pytest.mark.asyncio
    async def test_save_then_load_round_trip(self, orchestrator):
        saved = await orchestrator.save("What is truth?", "Correspondence.", session_id="s1")
        assert saved.ok
        assert saved.data.message == "Saved truth:what-is-truth"

        loaded = await orchestrator.load("what is TRUTH")
        assert loaded.ok
        assert loaded.data.answer == "Correspondence."

    @pytest.mark.asyncio
    async def test_load_missing_returns_null_answer(self, orchestrator):
        result = await orchestrator.load("never asked")
        assert result.ok
        assert result.data.answer is None

    @pytest.mark.asyncio
    async def test_save_preserves_created(self, orchestrator, clock):
        await orchestrator.save("q", "a1", session_id="s1")
        first = await orchestrator.engine.get_canonical("q")
        clock.advance(10_000)
        await orchestrator.save("q", "a2", editor="bob", session_id="s1")
        second = await orchestrator.engine.get_canonical("q")

        assert second.created == first.created
        assert second.timestamp == first.timestamp + 10_000
        assert second.last_edited_by == "bob"

    @pytest.mark.asyncio
    async def test_save_logs_exchange_with_editor(self, orchestrator):
        await orchestrator.save("q", "a", editor="alice", session_id="s1")
        record = (await orchestrator.get_history("s1")).data
        assert [(m.user, m.content) for m in record.messages] == [("alice", "q"), ("ai", "a")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query,answer", [(None, "a"), ("", "a"), ("q", None), ("q", "")])
    async def test_save_requires_query_and_answer(self, orchestrator, query, answer):
        result = await orchestrator.save(query, answer, session_id="s1")
        assert not result.ok
        assert result.error.kind == ErrorKind.VALIDATION
        assert result.error.message == "query and answer are required"

    @pytest.mark.asyncio
    async def test_load_requires_query(self, orchestrator):
        result = await orchestrator.load(None)
        assert result.error.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_query_without_word_characters_rejected(self, orchestrator, provider):
        result = await orchestrator.query("?!?", session_id="s1")
        assert result.error.kind == ErrorKind.VALIDATION
        provider.invoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_without_word_characters_rejected(self, orchestrator, kv):
        result = await orchestrator.save("?!?", "answer", session_id="s1")
        assert result.error.kind == ErrorKind.VALIDATION
        assert await kv.get("truth:") is None


class TestQueryFlow:
    """Model-backed answers and the promoted fast path."""

    @pytest.mark.asyncio
    async def test_miss_invokes_provider_and_records_answer(self, orchestrator, provider):
        result = await orchestrator.query("Why is the sky blue?", session_id="s1")

        assert result.ok
        assert result.data.answer == "Truth is what the model says."
        assert result.data.source == AnswerSource.MODEL
        assert result.data.session_id == "s1"
        provider.invoke.assert_awaited_once_with("Why is the sky blue?")

        record = await orchestrator.engine.get_canonical("why-is-the-sky-blue")
        assert record.last_edited_by == "ai"
        assert record.edited is False
        assert await orchestrator.engine.records.get_count("why-is-the-sky-blue") == 1

        history = (await orchestrator.get_history("s1")).data
        assert [m.role.value for m in history.messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_five_events_do_not_promote(self, orchestrator, provider):
        for _ in range(5):
            await orchestrator.query("popular question", session_id="s1")
        assert await orchestrator.engine.records.get_promoted("popular-question") is None

        await orchestrator.query("popular question", session_id="s1")
        assert provider.invoke.await_count == 6

    @pytest.mark.asyncio
    async def test_sixth_event_promotes_and_bypasses_provider(self, orchestrator, provider):
        for _ in range(6):
            await orchestrator.query("popular question", session_id="s1")
        assert provider.invoke.await_count == 6

        for _ in range(3):
            result = await orchestrator.query("Popular question!", session_id="s1")
            assert result.data.source == AnswerSource.PROMOTED
            assert result.data.answer == "Truth is what the model says."
        assert provider.invoke.await_count == 6

    @pytest.mark.asyncio
    async def test_promoted_hits_do_not_count_or_touch_canonical(self, orchestrator, clock):
        for _ in range(6):
            await orchestrator.save("q", "edited", session_id="s1")
        before = await orchestrator.engine.get_canonical("q")

        clock.advance(1_000)
        await orchestrator.query("q", session_id="s1")

        assert await orchestrator.engine.records.get_count("q") == 6
        assert await orchestrator.engine.get_canonical("q") == before

    @pytest.mark.asyncio
    async def test_promoted_hit_is_logged_to_session(self, orchestrator):
        for _ in range(6):
            await orchestrator.save("q", "edited", session_id="s1")
        await orchestrator.query("q", session_id="s2")
        history = (await orchestrator.get_history("s2")).data
        assert [m.content for m in history.messages] == ["q", "edited"]

    @pytest.mark.asyncio
    async def test_saves_and_queries_share_counter(self, orchestrator, provider):
        for _ in range(3):
            await orchestrator.save("mixed", "human answer", session_id="s1")
        for _ in range(3):
            await orchestrator.query("mixed", session_id="s1")

        result = await orchestrator.query("mixed", session_id="s1")
        assert result.data.source == AnswerSource.PROMOTED
        assert result.data.answer == "Truth is what the model says."
        assert provider.invoke.await_count == 3

    @pytest.mark.asyncio
    async def test_load_after_promotion_reads_canonical(self, orchestrator):
        for _ in range(6):
            await orchestrator.query("q", session_id="s1")
        await orchestrator.save("q", "human fix", session_id="s1")

        assert (await orchestrator.load("q")).data.answer == "human fix"
        assert (await orchestrator.query("q", session_id="s1")).data.answer == "human fix"


class TestProviderFailures:
    """Provider errors leave no trace in cache tiers or sessions."""

    async def _assert_untouched(self, orchestrator, key, session_id):
        records = orchestrator.engine.records
        assert await records.get_canonical(key) is None
        assert await records.get_promoted(key) is None
        assert await records.get_count(key) == 0
        assert (await orchestrator.get_history(session_id)).data.messages == []

    @pytest.mark.asyncio
    async def test_provider_error_is_returned_as_value(self, orchestrator, provider):
        provider.invoke = AsyncMock(side_effect=ProviderError("OpenRouter error: 500"))
        result = await orchestrator.query("broken", session_id="s1")

        assert not result.ok
        assert result.error.kind == ErrorKind.PROVIDER
        assert "500" in result.error.message
        await self._assert_untouched(orchestrator, "broken", "s1")

    @pytest.mark.asyncio
    async def test_unexpected_provider_exception_becomes_provider_error(self, orchestrator, provider):
        provider.invoke = AsyncMock(side_effect=KeyError("choices"))
        result = await orchestrator.query("broken", session_id="s1")
        assert result.error.kind == ErrorKind.PROVIDER
        await self._assert_untouched(orchestrator, "broken", "s1")

    @pytest.mark.asyncio
    async def test_provider_timeout(self, kv, clock):
        async def slow(prompt):
            await asyncio.sleep(1)
            return "late"

        provider = AsyncMock()
        provider.invoke = slow
        orchestrator = QueryOrchestrator.create(
            kv, provider, EngineConfig(provider_timeout_seconds=0.01), clock=clock
        )
        result = await orchestrator.query("slow", session_id="s1")

        assert result.error.kind == ErrorKind.PROVIDER
        assert "timed out" in result.error.message
        await self._assert_untouched(orchestrator, "slow", "s1")

    @pytest.mark.asyncio
    async def test_failed_call_does_not_advance_promotion(self, orchestrator, provider):
        for _ in range(5):
            await orchestrator.query("q", session_id="s1")
        provider.invoke.side_effect = ProviderError("down")
        await orchestrator.query("q", session_id="s1")

        assert await orchestrator.engine.records.get_count("q") == 5
        assert await orchestrator.engine.records.get_promoted("q") is None

    @pytest.mark.asyncio
    async def test_stats_track_provider_calls(self, orchestrator, provider):
        await orchestrator.query("q", session_id="s1")
        provider.invoke.side_effect = ProviderError("down")
        await orchestrator.query("other", session_id="s1")

        stats = orchestrator.get_stats()
        assert stats["model_calls"] == 2
        assert stats["provider_failures"] == 1
        assert stats["ai_answers"] == 1


class TestFollowUpPrompt:
    """Context block construction for follow-up queries."""

    @pytest.mark.asyncio
    async def test_plain_query_prompt_is_verbatim(self, orchestrator):
        await orchestrator.append_exchange("s1", "earlier", "context")
        assert await orchestrator.build_prompt("Raw Query?", False, "s1") == "Raw Query?"

    @pytest.mark.asyncio
    async def test_follow_up_uses_last_two_assistant_messages(self, orchestrator, provider):
        await orchestrator.append_exchange("s1", "user secret one", "answer one")
        await orchestrator.append_exchange("s1", "user secret two", "answer two")
        await orchestrator.append_exchange("s1", "user secret three", "answer three")

        await orchestrator.query("And then?", is_follow_up=True, session_id="s1")
        prompt = provider.invoke.await_args.args[0]

        context_line, query_line = prompt.split("\n")
        assert query_line == "Query: And then?"
        context = json.loads(context_line[len("Context: "):])
        assert context == [
            {"role": "assistant", "content": "answer two"},
            {"role": "assistant", "content": "answer three"},
        ]
        assert "user secret" not in prompt

    @pytest.mark.asyncio
    async def test_follow_up_on_empty_session(self, orchestrator):
        prompt = await orchestrator.build_prompt("hello", True, "fresh")
        assert prompt == "Context: []\nQuery: hello"


class TestSessionOperations:
    """Session operations exposed through the orchestrator."""

    @pytest.mark.asyncio
    async def test_append_exchange_requires_both_messages(self, orchestrator):
        result = await orchestrator.append_exchange("s1", "q", None)
        assert result.error.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_export_import_round_trip(self, orchestrator):
        await orchestrator.append_exchange("s1", "q", "a")
        exported = (await orchestrator.export_session("s1")).data
        before = (await orchestrator.get_history("s1")).data

        result = await orchestrator.import_session("s1", exported)
        assert result.ok
        assert result.data.message == "Session imported"
        assert (await orchestrator.get_history("s1")).data == before

    @pytest.mark.asyncio
    async def test_import_errors_have_distinct_kinds(self, orchestrator):
        exported = (await orchestrator.export_session("s2")).data
        mismatch = await orchestrator.import_session("s1", exported)
        malformed = await orchestrator.import_session("s1", "{oops")

        assert mismatch.error.kind == ErrorKind.VALIDATION
        assert mismatch.error.message == "Invalid session ID"
        assert malformed.error.kind == ErrorKind.PARSE

    @pytest.mark.asyncio
    async def test_session_id_required(self, orchestrator):
        result = await orchestrator.get_history("")
        assert result.error.kind == ErrorKind.VALIDATION


class TestTopQueriesAndFailures:
    """Ranking through the orchestrator and store failure reporting."""

    @pytest.mark.asyncio
    async def test_top_queries(self, orchestrator):
        for _ in range(3):
            await orchestrator.query("often", session_id="s1")
        await orchestrator.query("rarely", session_id="s1")

        result = await orchestrator.top_queries()
        assert [(e.query, e.count) for e in result.data] == [("often", 3), ("rarely", 1)]

    @pytest.mark.asyncio
    async def test_store_failure_is_store_error(self, orchestrator, kv):
        kv.get = AsyncMock(side_effect=OSError("disk gone"))
        result = await orchestrator.load("q")
        assert result.error.kind == ErrorKind.STORE

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_internal_error(self, orchestrator):
        orchestrator.ranker.top_queries = AsyncMock(side_effect=RuntimeError("boom"))
        result = await orchestrator.top_queries()
        assert result.error.kind == ErrorKind.INTERNAL
        assert result.error.message == "boom"

    @pytest.mark.asyncio
    async def test_store_error_passes_through_kind(self, orchestrator):
        orchestrator.engine.load = AsyncMock(side_effect=StoreError("unavailable"))
        result = await orchestrator.load("q")
        assert result.error.kind == ErrorKind.STORE
        assert result.error.message == "unavailable"
