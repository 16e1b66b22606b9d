"""Conversation capture: per-channel buffering and debounced extraction.

This package provides:
- ChannelBufferStore: ordered message buffers keyed by channel
- Debouncer: one silence timer per channel
- ConversationBufferRegistry: flush policy, overflow overlap and shutdown drain
"""

from memory_bridge.capture.debounce import Debouncer
from memory_bridge.capture.models import BufferedMessage, FlushOutcome, FlushStatus, Role
from memory_bridge.capture.registry import ConversationBufferRegistry, ExtractionSink
from memory_bridge.capture.store import ChannelBufferStore

__all__ = [
    "BufferedMessage",
    "ChannelBufferStore",
    "ConversationBufferRegistry",
    "Debouncer",
    "ExtractionSink",
    "FlushOutcome",
    "FlushStatus",
    "Role",
]
