"""Agent tools backed by the memory service.

Built-in tools cover search, direct stores, topic context and activity
summaries. Integration tools (Gmail, Slack, Notion, ...) are discovered from
the service's capabilities endpoint and proxied through ``execute_tool``.
Tool handlers never raise: failures come back as a text result.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from memory_bridge.client import MemoryApiClient
from memory_bridge.constants import (
    DEFAULT_CONTEXT_MAX_TOKENS,
    DEFAULT_SEARCH_LIMIT,
    SUMMARY_ITEMS_PER_SOURCE,
)
from memory_bridge.logging import get_logger
from memory_bridge.utils import format_relative_date

log = get_logger("memory_bridge.tools")

DECISION_SOURCES = ["gmail", "github", "notion", "slack", "discord", "openclaw"]
DECISION_TYPES = [
    "approval",
    "rejection",
    "selection",
    "delegation",
    "commitment",
    "direction",
    "confirmation",
    "cancellation",
    "negotiation",
    "prioritization",
]

_LABEL_PREFIXES = {
    "gmail": "Gmail",
    "notion": "Notion",
    "github": "GitHub",
    "linear": "Linear",
    "slack": "Slack",
    "discord": "Discord",
    "memory": "Memory",
}


@dataclass
class ToolResult:
    """Text returned to the agent plus optional structured details."""

    text: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.details:
            payload["details"] = self.details
        return payload


ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    """A tool as registered with the host runtime."""

    name: str
    label: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler

    async def execute(self, params: dict[str, Any] | None = None) -> ToolResult:
        return await self.handler(params or {})


def tool_name_to_label(name: str) -> str:
    """Turn ``gmail_send_email`` into ``Gmail: Send Email``."""
    prefix, _, rest = name.partition("_")
    label_prefix = _LABEL_PREFIXES.get(prefix, prefix)
    words = " ".join(word[:1].upper() + word[1:] for word in rest.split("_") if word)
    return f"{label_prefix}: {words}"


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _format_search_results(hits: list[Any]) -> str:
    blocks = []
    for index, hit in enumerate(hits, start=1):
        block = (
            f"{index}. **{hit.title}** ({hit.source}, {format_relative_date(hit.source_date)})\n"
            f"   {hit.summary}\n"
            f"   Type: {hit.decision_type} | Confidence: {hit.confidence}"
        )
        if hit.involved_persons:
            block += f"\n   People: {', '.join(hit.involved_persons)}"
        blocks.append(block)
    return "\n\n".join(blocks)


def _format_summary(data: dict[str, Any], per_source: int = SUMMARY_ITEMS_PER_SOURCE) -> str:
    header = f"**Team Activity ({data.get('period')})**: {data.get('totalDecisions')} decisions"
    lines = [header, ""]
    for source, info in (data.get("bySource") or {}).items():
        count = info.get("count", 0)
        lines.append(f"### {source[:1].upper()}{source[1:]} ({count})")
        for decision in (info.get("decisions") or [])[:per_source]:
            line = f"- {decision.get('title')}"
            if decision.get("decisionType"):
                line += f" ({decision['decisionType']})"
            lines.append(line)
        if count > per_source:
            lines.append(f"- ... and {count - per_source} more")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


# ---------------------------------------------------------------------------
# Built-in tools
# ---------------------------------------------------------------------------


def build_memory_tools(client: MemoryApiClient, *, source: str) -> list[ToolDefinition]:
    """Create the built-in memory tools bound to a client."""

    async def search(params: dict[str, Any]) -> ToolResult:
        try:
            hits = await client.search(
                params["query"],
                limit=int(params.get("limit") or DEFAULT_SEARCH_LIMIT),
                source=params.get("source"),
            )
        except Exception as exc:
            log.warning("tool_failed", tool="memory_search", error=str(exc))
            return ToolResult(f"Search failed: {exc}")
        if not hits:
            return ToolResult("No relevant decisions found.")
        return ToolResult(_format_search_results(hits), {"result_count": len(hits)})

    async def store(params: dict[str, Any]) -> ToolResult:
        try:
            result = await client.store_decision(
                title=params["title"],
                summary=params["summary"],
                decision_type=params.get("decision_type") or "direction",
                confidence=params.get("confidence") or "medium",
                rationale=params.get("rationale") or "",
                involved_persons=params.get("involved_persons") or [],
                source=source,
            )
        except Exception as exc:
            log.warning("tool_failed", tool="memory_store", error=str(exc))
            return ToolResult(f"Store failed: {exc}")
        return ToolResult(
            f'Stored: "{params["title"]}" ({result.stored} saved, {result.graphed} graphed)'
        )

    async def context(params: dict[str, Any]) -> ToolResult:
        try:
            result = await client.get_context(
                params["query"],
                max_tokens=int(params.get("max_tokens") or DEFAULT_CONTEXT_MAX_TOKENS),
            )
        except Exception as exc:
            log.warning("tool_failed", tool="memory_context", error=str(exc))
            return ToolResult(f"Context retrieval failed: {exc}")
        if not result.context:
            return ToolResult("No relevant context found.")
        return ToolResult(
            result.context,
            {
                "decisions_included": result.decisions_included,
                "estimated_tokens": result.estimated_tokens,
            },
        )

    async def summary(params: dict[str, Any]) -> ToolResult:
        period = params.get("period") or "week"
        try:
            data = await client.summary(period)
        except Exception as exc:
            log.warning("tool_failed", tool="memory_summary", error=str(exc))
            return ToolResult(f"Summary failed: {exc}")
        if not data.get("totalDecisions"):
            return ToolResult(f"No activity found for {params.get('period') or 'this week'}.")
        return ToolResult(_format_summary(data), {"total_decisions": data["totalDecisions"]})

    return [
        ToolDefinition(
            name="memory_search",
            label="Search Decision Memory",
            description=(
                "Search your team's decision memory across Gmail, GitHub, Notion, Slack, "
                "and Discord. Returns relevant decisions with context, people involved, "
                "and source links."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "What to search for (natural language)",
                    },
                    "limit": {"type": "number", "description": "Max results (default 5, max 20)"},
                    "source": {
                        "type": "string",
                        "enum": DECISION_SOURCES,
                        "description": "Filter by source (optional)",
                    },
                },
                "required": ["query"],
            },
            handler=search,
        ),
        ToolDefinition(
            name="memory_store",
            label="Store in Decision Memory",
            description=(
                "Save a decision, commitment, or important fact to team memory. "
                "Use this when you notice an important decision in the conversation."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Short title (5-10 words)"},
                    "summary": {
                        "type": "string",
                        "description": "1-2 sentence description of what was decided",
                    },
                    "decision_type": {
                        "type": "string",
                        "enum": DECISION_TYPES,
                        "description": "Type of decision",
                    },
                    "confidence": {
                        "type": "string",
                        "enum": ["high", "medium", "low"],
                        "description": "How clear is this decision",
                    },
                    "rationale": {"type": "string", "description": "Why this was decided"},
                    "involved_persons": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string"},
                                "role": {"type": "string"},
                            },
                        },
                        "description": "People involved in the decision",
                    },
                },
                "required": ["title", "summary"],
            },
            handler=store,
        ),
        ToolDefinition(
            name="memory_context",
            label="Get Decision Context",
            description=(
                "Retrieve formatted decision context for a topic. Use this to get "
                "background before answering a question about past work."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Topic to get context for"},
                    "max_tokens": {
                        "type": "number",
                        "description": "Max context size in tokens (default 4000)",
                    },
                },
                "required": ["query"],
            },
            handler=context,
        ),
        ToolDefinition(
            name="memory_summary",
            label="Team Activity Summary",
            description=(
                "Get a summary of team activity for a time period, "
                "grouped by source (Gmail, GitHub, Slack, etc.)."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "period": {
                        "type": "string",
                        "enum": ["today", "week", "month"],
                        "description": "Time period (default: week)",
                    },
                },
            },
            handler=summary,
        ),
    ]


# ---------------------------------------------------------------------------
# Integration tools
# ---------------------------------------------------------------------------


def _integration_handler(client: MemoryApiClient, name: str) -> ToolHandler:
    async def handler(params: dict[str, Any]) -> ToolResult:
        try:
            data = await client.execute_tool(name, params)
        except Exception as exc:
            log.warning("tool_failed", tool=name, error=str(exc))
            return ToolResult(f"{name} failed: {exc}")
        if not data.get("success"):
            return ToolResult(f"Failed: {data.get('error')}")
        result = data.get("result")
        text = result if isinstance(result, str) else json.dumps(result, indent=2)
        return ToolResult(text)

    return handler


def build_integration_tools(
    client: MemoryApiClient,
    capabilities: dict[str, Any],
    *,
    reserved: set[str] | None = None,
) -> list[ToolDefinition]:
    """Proxy tools advertised by the service, skipping reserved names."""
    if not capabilities.get("success"):
        return []
    reserved = reserved or set()
    tools: list[ToolDefinition] = []
    for advertised in capabilities.get("tools") or []:
        name = advertised.get("name") if isinstance(advertised, dict) else None
        if not name or name in reserved:
            continue
        tools.append(
            ToolDefinition(
                name=name,
                label=tool_name_to_label(name),
                description=advertised.get("description", ""),
                parameters=advertised.get("parameters") or {"type": "object", "properties": {}},
                handler=_integration_handler(client, name),
            )
        )
    return tools
