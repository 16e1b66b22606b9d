"""Silence-window debouncer.

Each channel has at most one pending timer. Arming a channel cancels the
previous timer first, so the callback only runs after a full silence window
with no new activity. Timers are ``loop.call_later`` handles; when one fires,
its handle is dropped *before* the callback is scheduled, which lets the
callback (or anything it triggers) re-arm the same channel safely.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from memory_bridge.constants import SILENCE_WINDOW_SECONDS
from memory_bridge.logging import get_logger

log = get_logger("memory_bridge.capture.debounce")

FireCallback = Callable[[str], Awaitable[Any]]


class Debouncer:
    """Per-channel one-shot timers with debounce semantics."""

    def __init__(self, silence_window: float = SILENCE_WINDOW_SECONDS) -> None:
        if silence_window <= 0:
            raise ValueError("silence_window must be > 0")
        self._silence_window = silence_window
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._running: set[asyncio.Task[Any]] = set()

    @property
    def silence_window(self) -> float:
        return self._silence_window

    def arm(self, key: str, on_fire: FireCallback) -> None:
        """(Re)start the silence timer for ``key``.

        Must be called from within a running event loop.
        """
        loop = asyncio.get_running_loop()
        self.cancel(key)
        self._timers[key] = loop.call_later(self._silence_window, self._fire, key, on_fire)
        log.debug("timer_armed", channel=key, window_seconds=self._silence_window)

    def cancel(self, key: str) -> bool:
        """Cancel the pending timer for ``key``. Returns whether one existed."""
        handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        log.debug("timer_cancelled", channel=key)
        return True

    def cancel_all(self) -> list[str]:
        """Cancel every pending timer and return the affected keys."""
        keys = list(self._timers)
        for key in keys:
            self._timers.pop(key).cancel()
        if keys:
            log.info("timers_cancelled", count=len(keys))
        return keys

    def pending(self, key: str) -> bool:
        return key in self._timers

    def pending_keys(self) -> list[str]:
        return list(self._timers)

    async def wait_idle(self) -> None:
        """Wait for callbacks that already fired and are still running."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def _fire(self, key: str, on_fire: FireCallback) -> None:
        self._timers.pop(key, None)
        log.debug("timer_fired", channel=key)
        task = asyncio.ensure_future(on_fire(key))
        self._running.add(task)
        task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Task[Any]) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("timer_callback_failed", error=str(exc), error_type=type(exc).__name__)

    def __len__(self) -> int:
        return len(self._timers)
