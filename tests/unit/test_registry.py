"""Unit tests for ConversationBufferRegistry (flush policy and shutdown drain).

The extraction service is an AsyncMock; silence windows are shortened so
debounce behaviour can be observed in real time.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from memory_bridge.capture.models import FlushStatus
from memory_bridge.capture.registry import ConversationBufferRegistry
from memory_bridge.client import ExtractionResult, MemoryApiError

WINDOW = 0.1
SOURCE = "test-runtime"


@pytest.fixture
def extractor() -> AsyncMock:
    """Extraction service mock that always succeeds."""
    mock = AsyncMock()
    mock.extract = AsyncMock(return_value=ExtractionResult(decisions_found=2))
    return mock


@pytest.fixture
def registry(extractor: AsyncMock) -> ConversationBufferRegistry:
    return ConversationBufferRegistry(extractor, source=SOURCE, silence_window=WINDOW)


def _sent_batches(extractor: AsyncMock) -> list[tuple[list, str, str]]:
    """(messages, source, channel) for every extract call."""
    return [
        (list(call.args[0]), call.kwargs["source"], call.kwargs["channel"])
        for call in extractor.extract.await_args_list
    ]


class TestConstructor:
    """Tests for ConversationBufferRegistry.__init__."""

    def test_rejects_overlap_not_smaller_than_max(self, extractor):
        with pytest.raises(ValueError, match="overlap_size"):
            ConversationBufferRegistry(extractor, source=SOURCE, max_buffer_size=4, overlap_size=4)

    def test_instances_are_independent(self, extractor, make_messages):
        first = ConversationBufferRegistry(extractor, source=SOURCE)
        second = ConversationBufferRegistry(extractor, source=SOURCE)
        first.store.append("chan", make_messages(2))
        assert second.store.size("chan") == 0


class TestAppend:
    """Tests for ConversationBufferRegistry.append."""

    async def test_append_arms_timer(self, registry, make_messages):
        assert await registry.append("chan", make_messages(2)) is None
        assert registry.store.size("chan") == 2
        assert registry.debouncer.pending("chan")

    async def test_empty_append_has_no_timer_side_effect(self, registry):
        assert await registry.append("chan", []) is None
        assert "chan" not in registry.store
        assert not registry.debouncer.pending("chan")

    async def test_at_most_one_timer_per_channel(self, registry, make_messages):
        for index, key in enumerate(["a", "b", "a", "a", "c", "b"]):
            await registry.append(key, make_messages(1, start=index))
        assert sorted(registry.debouncer.pending_keys()) == ["a", "b", "c"]
        assert registry.stats() == {"channels": 3, "messages": 6, "pending_timers": 3}

    async def test_silence_flushes_whole_buffer_once(self, registry, extractor, make_messages):
        messages = make_messages(5)
        for message in messages:
            await registry.append("chan", [message])
            await asyncio.sleep(WINDOW / 4)

        await asyncio.sleep(WINDOW * 3)
        await registry.debouncer.wait_idle()

        assert _sent_batches(extractor) == [(messages, SOURCE, "chan")]
        assert "chan" not in registry.store
        assert not registry.debouncer.pending("chan")


class TestFlush:
    """Tests for ConversationBufferRegistry.flush."""

    async def test_fewer_than_four_messages_are_discarded(
        self, registry, extractor, make_messages
    ):
        await registry.append("chan", make_messages(3))
        outcome = await registry.flush("chan")

        assert outcome.status == FlushStatus.DISCARDED
        assert outcome.message_count == 3
        assert not outcome.called_collaborator
        extractor.extract.assert_not_awaited()
        assert "chan" not in registry.store

    async def test_exactly_four_messages_are_extracted_in_order(
        self, registry, extractor, make_messages
    ):
        messages = make_messages(4)
        await registry.append("chan", messages)
        outcome = await registry.flush("chan")

        assert outcome.status == FlushStatus.EXTRACTED
        assert outcome.message_count == 4
        assert outcome.decisions_found == 2
        assert _sent_batches(extractor) == [(messages, SOURCE, "chan")]
        assert registry.store.size("chan") == 0

    async def test_flush_cancels_pending_timer(self, registry, make_messages):
        await registry.append("chan", make_messages(4))
        await registry.flush("chan")
        assert not registry.debouncer.pending("chan")

    async def test_unknown_key_is_benign(self, registry, extractor):
        outcome = await registry.flush("never-seen")
        assert outcome.status == FlushStatus.EMPTY
        extractor.extract.assert_not_awaited()

    async def test_failure_still_clears_buffer(self, registry, extractor, make_messages):
        extractor.extract.side_effect = MemoryApiError("Memory API error (500): boom", 500)
        await registry.append("chan", make_messages(6))

        outcome = await registry.flush("chan")

        assert outcome.status == FlushStatus.FAILED
        assert "500" in (outcome.error or "")
        assert extractor.extract.await_count == 1
        assert "chan" not in registry.store

    async def test_unexpected_errors_are_contained(self, registry, extractor, make_messages):
        extractor.extract.side_effect = RuntimeError("socket closed")
        await registry.append("chan", make_messages(4))
        outcome = await registry.flush("chan")
        assert outcome.status == FlushStatus.FAILED

    async def test_no_growth_beyond_max_after_failures(self, registry, extractor, make_messages):
        extractor.extract.side_effect = MemoryApiError("down")
        for start in range(0, 60, 3):
            await registry.append("chan", make_messages(3, start=start))
            assert registry.store.size("chan") < 20
        # Failed batches are dropped, not replayed
        sizes = [len(call.args[0]) for call in extractor.extract.await_args_list]
        assert all(size <= 20 for size in sizes)

    async def test_messages_arriving_during_flush_start_new_buffer(
        self, registry, extractor, make_messages
    ):
        gate = asyncio.Event()

        async def slow_extract(messages, *, source, channel):
            await gate.wait()
            return ExtractionResult(decisions_found=0)

        extractor.extract.side_effect = slow_extract
        first = make_messages(4)
        await registry.append("chan", first)

        flush_task = asyncio.create_task(registry.flush("chan"))
        await asyncio.sleep(0)
        late = make_messages(2, start=4)
        await registry.append("chan", late)
        gate.set()
        outcome = await flush_task

        assert outcome.message_count == 4
        assert list(registry.store.snapshot("chan")) == late
        assert registry.debouncer.pending("chan")


class TestOverflow:
    """Tests for the forced flush at max_buffer_size."""

    async def test_twenty_messages_flush_immediately_with_overlap(
        self, registry, extractor, make_messages
    ):
        messages = make_messages(20)
        outcome = await registry.append("chan", messages)

        assert outcome is not None
        assert outcome.status == FlushStatus.EXTRACTED
        assert outcome.channel == "chan"
        assert _sent_batches(extractor) == [(messages[:16], SOURCE, "chan")]
        assert list(registry.store.snapshot("chan")) == messages[16:]
        assert "chan__flush" not in registry.store

    async def test_overflow_leaves_lookalike_channel_untouched(
        self, registry, extractor, make_messages
    ):
        lookalike = make_messages(2, start=100)
        await registry.append("chan__flush", lookalike)

        messages = make_messages(20)
        await registry.append("chan", messages)

        assert list(registry.store.snapshot("chan__flush")) == lookalike
        assert registry.debouncer.pending("chan__flush")
        assert _sent_batches(extractor) == [(messages[:16], SOURCE, "chan")]

    async def test_overlap_seed_gets_a_silence_timer(self, registry, extractor, make_messages):
        messages = make_messages(20)
        await registry.append("chan", messages)
        assert registry.debouncer.pending("chan")

        await asyncio.sleep(WINDOW * 3)
        await registry.debouncer.wait_idle()

        batches = _sent_batches(extractor)
        assert [batch[0] for batch in batches] == [messages[:16], messages[16:]]
        assert "chan" not in registry.store

    async def test_overflow_reached_across_appends(self, registry, extractor, make_messages):
        await registry.append("chan", make_messages(18))
        extractor.extract.assert_not_awaited()

        outcome = await registry.append("chan", make_messages(3, start=18))

        assert outcome is not None
        assert len(extractor.extract.await_args.args[0]) == 17
        assert [m.content for m in registry.store.snapshot("chan")] == [
            f"conversation turn number {i}" for i in range(17, 21)
        ]

    async def test_live_buffer_present_during_remote_call(
        self, registry, extractor, make_messages
    ):
        seen_sizes: list[int] = []

        async def observing_extract(messages, *, source, channel):
            seen_sizes.append(registry.store.size("chan"))
            return ExtractionResult()

        extractor.extract.side_effect = observing_extract
        await registry.append("chan", make_messages(20))
        assert seen_sizes == [4]

    async def test_overflow_failure_keeps_overlap(self, registry, extractor, make_messages):
        extractor.extract.side_effect = MemoryApiError("down")
        messages = make_messages(20)
        outcome = await registry.append("chan", messages)

        assert outcome is not None
        assert outcome.status == FlushStatus.FAILED
        assert list(registry.store.snapshot("chan")) == messages[16:]


class TestDrainAll:
    """Tests for the shutdown drain."""

    async def test_flushes_sequentially_in_registration_order(
        self, registry, extractor, make_messages
    ):
        channel_a = make_messages(5)
        await registry.append("A", channel_a)
        await registry.append("B", make_messages(2, start=5))
        assert sorted(registry.debouncer.pending_keys()) == ["A", "B"]

        outcomes = await registry.drain_all()

        assert [(o.channel, o.status) for o in outcomes] == [
            ("A", FlushStatus.EXTRACTED),
            ("B", FlushStatus.DISCARDED),
        ]
        assert _sent_batches(extractor) == [(channel_a, SOURCE, "A")]
        assert len(registry.debouncer) == 0
        assert len(registry.store) == 0

    async def test_no_timer_fires_after_drain(self, registry, extractor, make_messages):
        await registry.append("A", make_messages(2))
        await registry.drain_all()

        await asyncio.sleep(WINDOW * 3)
        extractor.extract.assert_not_awaited()

    async def test_drain_with_nothing_buffered(self, registry, extractor):
        assert await registry.drain_all() == []
        extractor.extract.assert_not_awaited()

    async def test_drain_survives_extraction_failures(self, registry, extractor, make_messages):
        extractor.extract.side_effect = MemoryApiError("down")
        await registry.append("A", make_messages(4))
        await registry.append("B", make_messages(4, start=4))

        outcomes = await registry.drain_all()

        assert [o.status for o in outcomes] == [FlushStatus.FAILED, FlushStatus.FAILED]
        assert extractor.extract.await_count == 2
        assert len(registry.store) == 0

    async def test_drain_waits_for_in_flight_timer_flush(
        self, registry, extractor, make_messages
    ):
        gate = asyncio.Event()
        finished: list[str] = []

        async def slow_extract(messages, *, source, channel):
            await gate.wait()
            finished.append(channel)
            return ExtractionResult()

        extractor.extract.side_effect = slow_extract
        await registry.append("A", make_messages(4))
        await asyncio.sleep(WINDOW * 2)  # timer fired, extraction blocked

        drain = asyncio.create_task(registry.drain_all())
        await asyncio.sleep(0.01)
        assert not drain.done()

        gate.set()
        await drain
        assert finished == ["A"]
