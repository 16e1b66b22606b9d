"""Data models for conversation capture.

Plain dataclasses with ``to_dict`` for the wire format expected by the
extraction endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    """Conversation roles that are eligible for capture."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class BufferedMessage:
    """A single conversation turn waiting in a channel buffer."""

    role: Role
    content: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": str(self.role),
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }


class FlushStatus(StrEnum):
    """What happened when a channel buffer was flushed."""

    EMPTY = "empty"  # nothing buffered for the key
    DISCARDED = "discarded"  # below the minimum batch size
    EXTRACTED = "extracted"
    FAILED = "failed"


@dataclass
class FlushOutcome:
    """Result of a single flush attempt."""

    channel: str
    status: FlushStatus
    message_count: int = 0
    decisions_found: int = 0
    error: str | None = None

    @property
    def called_collaborator(self) -> bool:
        """Whether the extraction service was contacted for this flush."""
        return self.status in (FlushStatus.EXTRACTED, FlushStatus.FAILED)
