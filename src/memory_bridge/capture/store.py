"""Per-channel message buffers.

The store owns buffer contents and nothing else: it has no timers and never
talks to the network. Keys keep their registration order so shutdown drains
channels in the order they first received messages.
"""

from __future__ import annotations

from collections.abc import Iterable

from memory_bridge.capture.models import BufferedMessage
from memory_bridge.logging import get_logger

log = get_logger("memory_bridge.capture.store")


class ChannelBufferStore:
    """Ordered message buffers keyed by channel."""

    def __init__(self) -> None:
        self._buffers: dict[str, list[BufferedMessage]] = {}

    def append(self, key: str, messages: Iterable[BufferedMessage]) -> int:
        """Append messages to a channel buffer, creating it if needed.

        Returns the number of messages appended. Appending nothing leaves the
        store untouched (no empty buffer is created).
        """
        batch = list(messages)
        if not batch:
            return 0
        buffer = self._buffers.setdefault(key, [])
        buffer.extend(batch)
        log.debug("buffer_appended", channel=key, added=len(batch), size=len(buffer))
        return len(batch)

    def size(self, key: str) -> int:
        """Number of messages buffered for a channel (0 if none)."""
        return len(self._buffers.get(key, ()))

    def snapshot(self, key: str) -> tuple[BufferedMessage, ...]:
        """Read-only copy of a channel buffer in arrival order."""
        return tuple(self._buffers.get(key, ()))

    def clear(self, key: str) -> None:
        """Remove a channel buffer entirely. Unknown keys are ignored."""
        self._buffers.pop(key, None)

    def replace(self, key: str, messages: Iterable[BufferedMessage]) -> None:
        """Replace a channel buffer's contents; an empty sequence removes the key."""
        batch = list(messages)
        if batch:
            self._buffers[key] = batch
        else:
            self._buffers.pop(key, None)

    def take(self, key: str) -> list[BufferedMessage]:
        """Detach and return a channel buffer, leaving no entry behind."""
        return self._buffers.pop(key, [])

    def keys(self) -> list[str]:
        """Channels with a non-empty buffer, in registration order."""
        return [key for key, buffer in self._buffers.items() if buffer]

    def stats(self) -> dict[str, int]:
        """Aggregate counts for status reporting."""
        return {
            "channels": len(self.keys()),
            "messages": sum(len(buffer) for buffer in self._buffers.values()),
        }

    def __contains__(self, key: object) -> bool:
        return key in self._buffers

    def __len__(self) -> int:
        return len(self._buffers)
