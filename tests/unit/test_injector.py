"""Tests for the recall-side context injector."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from memory_bridge.client import ContextResult, MemoryApiError
from memory_bridge.recall.injector import ContextInjector, wrap_context

QUESTION = "What did we decide about the AWS migration budget last quarter?"


def _event(text: str) -> dict:
    return {"messages": [{"role": "user", "content": text}]}


@pytest.fixture
def source() -> AsyncMock:
    mock = AsyncMock()
    mock.get_context = AsyncMock(
        return_value=ContextResult(context="- Budget capped at $40k", decisions_included=1)
    )
    return mock


@pytest.fixture
def injector(source) -> ContextInjector:
    return ContextInjector(source, max_tokens=2000)


class TestBeforeAgentStart:
    """Tests for ContextInjector.before_agent_start."""

    async def test_injects_wrapped_context(self, injector, source):
        result = await injector.before_agent_start(_event(QUESTION))

        source.get_context.assert_awaited_once_with(QUESTION, max_tokens=2000)
        assert result == {
            "prepend_context": (
                '<decision-memory source="team-decisions">\n'
                "- Budget capped at $40k\n"
                "</decision-memory>"
            )
        }

    @pytest.mark.parametrize("text", ["hey", "ok", "thanks, that's really helpful for the team!"])
    async def test_casual_chat_skips_lookup(self, injector, source, text):
        assert await injector.before_agent_start(_event(text)) == {}
        source.get_context.assert_not_awaited()

    async def test_missing_messages_skip_lookup(self, injector, source):
        assert await injector.before_agent_start({}) == {}
        source.get_context.assert_not_awaited()

    async def test_query_is_truncated(self, injector, source):
        long_text = "Why did we choose the vendor " + "x" * 1000
        await injector.before_agent_start(_event(long_text))
        sent = source.get_context.await_args.args[0]
        assert sent == long_text[:500]

    async def test_uses_prompt_fallback(self, injector, source):
        await injector.before_agent_start({"prompt": QUESTION})
        assert source.get_context.await_args.args[0] == QUESTION

    async def test_failure_degrades_to_empty(self, injector, source):
        source.get_context.side_effect = MemoryApiError("Memory API error (500): x", 500)
        assert await injector.before_agent_start(_event(QUESTION)) == {}

    async def test_unexpected_error_degrades_to_empty(self, injector, source):
        source.get_context.side_effect = RuntimeError("boom")
        assert await injector.before_agent_start(_event(QUESTION)) == {}

    @pytest.mark.parametrize(
        "result",
        [
            ContextResult(context="", decisions_included=2),
            ContextResult(context="something", decisions_included=0),
        ],
    )
    async def test_nothing_useful_returns_empty(self, injector, source, result):
        source.get_context.return_value = result
        assert await injector.before_agent_start(_event(QUESTION)) == {}


def test_wrap_context():
    assert wrap_context("x") == '<decision-memory source="team-decisions">\nx\n</decision-memory>'
