"""Shared fixtures for the Memory Bridge test suite."""

from __future__ import annotations

import os
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import pytest

from memory_bridge.capture.models import BufferedMessage, Role
from memory_bridge.config import get_settings

BASE_TIME = datetime(2026, 3, 2, 9, 30, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep MEMORY_BRIDGE_* variables from the real environment out of tests."""
    for name in list(os.environ):
        if name.upper().startswith("MEMORY_BRIDGE_"):
            monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _make_messages(count: int, *, start: int = 0) -> list[BufferedMessage]:
    """Alternating user/assistant messages with distinct, qualifying content."""
    return [
        BufferedMessage(
            role=Role.USER if index % 2 == 0 else Role.ASSISTANT,
            content=f"conversation turn number {index}",
            timestamp=BASE_TIME + timedelta(seconds=index),
        )
        for index in range(start, start + count)
    ]


@pytest.fixture
def make_messages():
    """Factory fixture for buffered conversation messages."""
    return _make_messages
