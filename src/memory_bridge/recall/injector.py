"""Prompt context injection for the ``before_agent_start`` hook.

Looks at the latest user message, skips casual chat, and asks the memory
service for decision context. When the service returns something useful the
hook result carries a ``prepend_context`` block; any failure degrades to an
empty result so the agent turn always proceeds.
"""

from __future__ import annotations

from typing import Any, Protocol

from memory_bridge.capture.events import recall_query
from memory_bridge.constants import MAX_RECALL_QUERY_CHARS, RECALL_MAX_TOKENS
from memory_bridge.logging import get_logger
from memory_bridge.recall.relevance import classify

log = get_logger("memory_bridge.recall.injector")

CONTEXT_OPEN_TAG = '<decision-memory source="team-decisions">'
CONTEXT_CLOSE_TAG = "</decision-memory>"


class ContextSource(Protocol):
    """Anything that can turn a query into decision context."""

    async def get_context(self, query: str, *, max_tokens: int) -> Any:
        """Return an object exposing ``context`` and ``decisions_included``."""
        ...


def wrap_context(context: str) -> str:
    """Wrap retrieved context in the tag block prepended to the prompt."""
    return f"{CONTEXT_OPEN_TAG}\n{context}\n{CONTEXT_CLOSE_TAG}"


class ContextInjector:
    """Builds the recall hook result for an agent start event."""

    def __init__(self, source: ContextSource, *, max_tokens: int = RECALL_MAX_TOKENS) -> None:
        self._source = source
        self._max_tokens = max_tokens

    async def before_agent_start(self, event: Any) -> dict[str, str]:
        """Hook handler: returns ``{"prepend_context": ...}`` or ``{}``."""
        query = recall_query(event)
        verdict = classify(query)
        if not verdict.consider:
            log.debug("auto_recall_skipped", reason=verdict.reason, length=len(query))
            return {}

        log.info("auto_recall_check", preview=query[:80])

        try:
            result = await self._source.get_context(
                query[:MAX_RECALL_QUERY_CHARS], max_tokens=self._max_tokens
            )
        except Exception as exc:
            log.warning("auto_recall_failed", error=str(exc), error_type=type(exc).__name__)
            return {}

        context = getattr(result, "context", "") or ""
        included = int(getattr(result, "decisions_included", 0) or 0)
        if not context or included <= 0:
            return {}

        log.info("auto_recall_injecting", decisions_included=included)
        return {"prepend_context": wrap_context(context)}
