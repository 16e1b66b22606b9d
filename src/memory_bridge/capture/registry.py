"""Conversation buffer registry: capture-side orchestration.

Owns one ``ChannelBufferStore`` and one ``Debouncer`` for the lifetime of a
service and decides when a channel's buffer goes to the extraction service:

* after a silence window with no new messages (whole buffer is consumed),
* immediately when a buffer reaches ``max_buffer_size`` (the trailing
  ``overlap_size`` messages stay behind to seed the next batch),
* on shutdown, for every channel still holding messages.

Every flush consumes its buffer exactly once. Extraction failures are logged
and the batch is dropped; nothing is retried and nothing is raised to the
host runtime.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from memory_bridge.capture.debounce import Debouncer
from memory_bridge.capture.models import BufferedMessage, FlushOutcome, FlushStatus
from memory_bridge.capture.store import ChannelBufferStore
from memory_bridge.constants import (
    FLUSH_KEY_SUFFIX,
    MAX_BUFFER_SIZE,
    MIN_FLUSH_SIZE,
    OVERLAP_SIZE,
    SILENCE_WINDOW_SECONDS,
)
from memory_bridge.logging import get_logger
from memory_bridge.utils import timed_operation

log = get_logger("memory_bridge.capture.registry")


class ExtractionSink(Protocol):
    """Anything that can receive a conversation batch for extraction."""

    async def extract(
        self,
        messages: Sequence[BufferedMessage],
        *,
        source: str,
        channel: str,
    ) -> Any:
        """Submit a batch. The result should expose ``decisions_found``."""
        ...


class ConversationBufferRegistry:
    """Per-service owner of channel buffers, silence timers and flush policy."""

    def __init__(
        self,
        extractor: ExtractionSink,
        *,
        source: str,
        silence_window: float = SILENCE_WINDOW_SECONDS,
        max_buffer_size: int = MAX_BUFFER_SIZE,
        overlap_size: int = OVERLAP_SIZE,
        min_flush_size: int = MIN_FLUSH_SIZE,
    ) -> None:
        if overlap_size >= max_buffer_size:
            raise ValueError("overlap_size must be smaller than max_buffer_size")
        self._extractor = extractor
        self._source = source
        self._max_buffer_size = max_buffer_size
        self._overlap_size = overlap_size
        self._min_flush_size = min_flush_size
        self._store = ChannelBufferStore()
        # Overflow batches awaiting extraction, kept apart from live channel keys
        self._overflow = ChannelBufferStore()
        self._debouncer = Debouncer(silence_window)
        self._draining = False

    @property
    def store(self) -> ChannelBufferStore:
        return self._store

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def append(
        self, key: str, messages: Iterable[BufferedMessage]
    ) -> FlushOutcome | None:
        """Buffer messages for a channel and reset its silence clock.

        Returns the outcome of the overflow flush when this append filled the
        buffer, otherwise ``None``.
        """
        added = self._store.append(key, messages)
        if not added:
            return None

        size = self._store.size(key)
        if size >= self._max_buffer_size:
            log.info("buffer_full_extracting_now", channel=key, size=size)
            return await self._flush_overflow(key)

        self._arm(key)
        return None

    def _arm(self, key: str) -> None:
        # Shutdown drain picks up late arrivals itself
        if not self._draining:
            self._debouncer.arm(key, self.flush)

    async def _flush_overflow(self, key: str) -> FlushOutcome:
        self._debouncer.cancel(key)
        buffer = self._store.take(key)
        split = len(buffer) - self._overlap_size
        batch, overlap = buffer[:split], buffer[split:]

        self._store.replace(key, overlap)
        if overlap:
            self._arm(key)

        transient_key = f"{key}{FLUSH_KEY_SUFFIX}"
        self._overflow.replace(transient_key, batch)
        return await self._flush_key(self._overflow, transient_key, channel=key)

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    async def flush(self, key: str) -> FlushOutcome:
        """Consume a channel's whole buffer and hand it to the extractor."""
        self._debouncer.cancel(key)
        return await self._flush_key(self._store, key, channel=key)

    async def _flush_key(
        self, store: ChannelBufferStore, key: str, *, channel: str
    ) -> FlushOutcome:
        # Detach before the first await so new arrivals start a fresh buffer
        messages = store.take(key)
        if not messages:
            log.debug("flush_skipped_empty", channel=channel)
            return FlushOutcome(channel=channel, status=FlushStatus.EMPTY)

        if len(messages) < self._min_flush_size:
            log.debug(
                "flush_discarded_too_small",
                channel=channel,
                message_count=len(messages),
                minimum=self._min_flush_size,
            )
            return FlushOutcome(
                channel=channel,
                status=FlushStatus.DISCARDED,
                message_count=len(messages),
            )

        try:
            async with timed_operation(
                "extract_batch", log=log, channel=channel, message_count=len(messages)
            ):
                result = await self._extractor.extract(
                    messages, source=self._source, channel=channel
                )
        except Exception as exc:
            log.warning(
                "auto_capture_failed",
                channel=channel,
                message_count=len(messages),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return FlushOutcome(
                channel=channel,
                status=FlushStatus.FAILED,
                message_count=len(messages),
                error=str(exc),
            )

        decisions_found = int(getattr(result, "decisions_found", 0) or 0)
        if decisions_found > 0:
            log.info("decisions_captured", channel=channel, decisions_found=decisions_found)
        return FlushOutcome(
            channel=channel,
            status=FlushStatus.EXTRACTED,
            message_count=len(messages),
            decisions_found=decisions_found,
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def drain_all(self) -> list[FlushOutcome]:
        """Cancel all timers and flush every buffered channel, one at a time."""
        self._draining = True
        try:
            cancelled = self._debouncer.cancel_all()
            outcomes: list[FlushOutcome] = []
            while keys := self._store.keys():
                for key in keys:
                    outcomes.append(await self.flush(key))
            await self._debouncer.wait_idle()
        finally:
            self._draining = False

        log.info(
            "buffers_drained",
            timers_cancelled=len(cancelled),
            channels=len(outcomes),
            extracted=sum(1 for o in outcomes if o.status == FlushStatus.EXTRACTED),
        )
        return outcomes

    def stats(self) -> dict[str, int]:
        """Buffered channel/message counts plus pending timers."""
        return {**self._store.stats(), "pending_timers": len(self._debouncer)}
