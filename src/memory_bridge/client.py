"""Async client for the remote decision-memory service.

Wraps the service's ``/api/ext`` REST endpoints: batch extraction, context
retrieval for recall, search, direct stores, activity summaries, and the
integration-tool proxy. Every failure (transport error or non-2xx response)
surfaces as a single ``MemoryApiError`` so callers have one thing to catch.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from memory_bridge.capture.models import BufferedMessage
from memory_bridge.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SEARCH_LIMIT,
    MAX_SEARCH_LIMIT,
)
from memory_bridge.logging import get_logger

log = get_logger("memory_bridge.client")


class MemoryApiError(Exception):
    """Raised when a memory service request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ExtractionResult:
    """Response from the batch extraction endpoint."""

    decisions_found: int = 0
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExtractionResult:
        return cls(decisions_found=int(data.get("decisionsFound") or 0), raw=data)


@dataclass
class ContextResult:
    """Formatted decision context for a query."""

    context: str = ""
    decisions_included: int = 0
    estimated_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContextResult:
        return cls(
            context=data.get("context") or "",
            decisions_included=int(data.get("decisionsIncluded") or 0),
            estimated_tokens=data.get("estimatedTokens"),
        )


@dataclass
class DecisionHit:
    """A single search result."""

    title: str
    summary: str = ""
    source: str = ""
    source_date: str | None = None
    decision_type: str | None = None
    confidence: str | None = None
    involved_persons: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DecisionHit:
        persons = [
            person.get("name", "")
            for person in data.get("involvedPersons") or []
            if isinstance(person, dict)
        ]
        return cls(
            title=data.get("title", ""),
            summary=data.get("summary", ""),
            source=data.get("source", ""),
            source_date=data.get("sourceDate"),
            decision_type=data.get("decisionType"),
            confidence=data.get("confidence"),
            involved_persons=[name for name in persons if name],
        )


@dataclass
class StoreResult:
    """Response from storing decisions directly."""

    stored: int = 0
    graphed: int = 0


class MemoryApiClient:
    """Async client bound to one memory service account."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Base URL of the memory service.
            api_key: Bearer token for the service.
            timeout: HTTP request timeout in seconds.
        """
        if not api_key:
            raise ValueError("api_key is required")
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    @property
    def api_url(self) -> str:
        return self._api_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._api_url}{path}"
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.request(
                    method, url, headers=self._headers(), params=params, json=json
                )
            except httpx.RequestError as exc:
                log.debug("memory_api_transport_error", path=path, error=str(exc))
                raise MemoryApiError(f"Memory API request failed: {exc}") from exc

        if response.status_code >= 400:
            body = response.text[:200] or "Unknown error"
            raise MemoryApiError(
                f"Memory API error ({response.status_code}): {body}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MemoryApiError("Memory API returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise MemoryApiError("Memory API returned an unexpected payload")
        return data

    # ------------------------------------------------------------------
    # Capture and recall
    # ------------------------------------------------------------------

    async def extract(
        self,
        messages: Sequence[BufferedMessage],
        *,
        source: str,
        channel: str,
    ) -> ExtractionResult:
        """Send one conversation batch for decision extraction."""
        data = await self._request(
            "POST",
            "/api/ext/extract",
            json={
                "messages": [message.to_dict() for message in messages],
                "source": source,
                "channel": channel,
            },
        )
        return ExtractionResult.from_dict(data)

    async def get_context(self, query: str, *, max_tokens: int) -> ContextResult:
        """Retrieve formatted decision context for a query."""
        data = await self._request(
            "GET",
            "/api/ext/context",
            params={"query": query, "maxTokens": str(max_tokens)},
        )
        return ContextResult.from_dict(data)

    # ------------------------------------------------------------------
    # Tool endpoints
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        limit: int = DEFAULT_SEARCH_LIMIT,
        source: str | None = None,
    ) -> list[DecisionHit]:
        """Search stored decisions. ``limit`` is clamped to 1..20."""
        params = {
            "query": query,
            "limit": str(max(1, min(limit, MAX_SEARCH_LIMIT))),
        }
        if source:
            params["source"] = source
        data = await self._request("GET", "/api/ext/search", params=params)
        if not data.get("success", True):
            return []
        return [
            DecisionHit.from_dict(item)
            for item in data.get("results") or []
            if isinstance(item, dict)
        ]

    async def store_decision(
        self,
        *,
        title: str,
        summary: str,
        decision_type: str = "direction",
        confidence: str = "medium",
        rationale: str = "",
        involved_persons: list[dict[str, str]] | None = None,
        source: str,
    ) -> StoreResult:
        """Store a single decision directly."""
        data = await self._request(
            "POST",
            "/api/ext/store",
            json={
                "decisions": [
                    {
                        "title": title,
                        "summary": summary,
                        "decisionType": decision_type,
                        "confidence": confidence,
                        "rationale": rationale,
                        "involvedPersons": involved_persons or [],
                        "source": source,
                    }
                ]
            },
        )
        return StoreResult(
            stored=int(data.get("stored") or 0),
            graphed=int(data.get("neo4jSynced") or 0),
        )

    async def summary(self, period: str = "week") -> dict[str, Any]:
        """Activity summary grouped by source."""
        return await self._request("GET", "/api/ext/summary", params={"period": period})

    async def capabilities(self) -> dict[str, Any]:
        """Connected integrations and the tools they expose."""
        return await self._request("GET", "/api/ext/capabilities")

    async def execute_tool(self, name: str, params: dict[str, Any]) -> dict[str, Any]:
        """Run an integration tool on the service side."""
        return await self._request(
            "POST",
            "/api/ext/tools/execute",
            json={"tool": name, "params": params},
        )
