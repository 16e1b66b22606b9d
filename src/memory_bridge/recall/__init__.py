"""Decision recall: relevance filtering and prompt context injection."""

from memory_bridge.recall.injector import ContextInjector
from memory_bridge.recall.relevance import (
    RelevanceVerdict,
    classify,
    looks_like_casual_chat,
    should_consult_memory,
)

__all__ = [
    "ContextInjector",
    "RelevanceVerdict",
    "classify",
    "looks_like_casual_chat",
    "should_consult_memory",
]
