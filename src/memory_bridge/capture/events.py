"""Host event parsing for the capture and recall hooks.

Host runtimes deliver events as loosely-typed mappings. Everything here
tolerates missing or malformed fields: a bad payload simply yields no
messages and no query text.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from memory_bridge.capture.models import BufferedMessage, Role
from memory_bridge.constants import DEFAULT_CHANNEL_KEY, MIN_CAPTURE_CONTENT_LENGTH

_CAPTURE_ROLES = frozenset(role.value for role in Role)


def channel_key_for(event: Any) -> str:
    """Derive the channel key from the event's session identity."""
    if not isinstance(event, Mapping):
        return DEFAULT_CHANNEL_KEY
    session = event.get("session")
    if not isinstance(session, Mapping):
        return DEFAULT_CHANNEL_KEY
    for field_name in ("channelId", "channel_id", "id"):
        value = session.get(field_name)
        if value:
            return str(value)
    return DEFAULT_CHANNEL_KEY


def flatten_content(content: Any, separator: str = "\n") -> str:
    """Collapse message content into plain text.

    Strings pass through. Lists of content parts keep only ``type == "text"``
    parts, joined with ``separator``. Anything else becomes an empty string.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [
            part["text"]
            for part in content
            if isinstance(part, Mapping)
            and part.get("type") == "text"
            and isinstance(part.get("text"), str)
        ]
        return separator.join(texts)
    return ""


def _event_messages(event: Any) -> list[Any]:
    if not isinstance(event, Mapping):
        return []
    messages = event.get("messages")
    if not isinstance(messages, list):
        return []
    return messages


def capture_messages(event: Any, now: datetime | None = None) -> list[BufferedMessage]:
    """Extract the qualifying messages from an ``agent_end`` event.

    A message qualifies when its role is user or assistant and its flattened
    content is longer than five characters. All messages from one event share
    the same capture timestamp.
    """
    timestamp = now or datetime.now(UTC)
    captured: list[BufferedMessage] = []
    for message in _event_messages(event):
        if not isinstance(message, Mapping):
            continue
        role = message.get("role")
        if not isinstance(role, str) or role not in _CAPTURE_ROLES:
            continue
        content = flatten_content(message.get("content"))
        if len(content) > MIN_CAPTURE_CONTENT_LENGTH:
            captured.append(BufferedMessage(role=Role(role), content=content, timestamp=timestamp))
    return captured


def recall_query(event: Any) -> str:
    """Pick the text the recall path should evaluate.

    The latest user message wins; when the event carries no messages, a
    flat ``prompt`` string is used instead.
    """
    for message in reversed(_event_messages(event)):
        if isinstance(message, Mapping) and message.get("role") == Role.USER:
            text = flatten_content(message.get("content"), separator=" ")
            if text:
                return text
            break

    if isinstance(event, Mapping):
        prompt = event.get("prompt")
        if isinstance(prompt, str):
            return prompt
    return ""
