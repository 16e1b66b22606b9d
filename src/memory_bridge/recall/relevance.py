"""Relevance filter for the recall path.

Decides whether a user message deserves a memory lookup. Rules run in a
fixed order and the first one that matches wins:

1. empty text                          -> skip
2. shorter than ``MIN_RECALL_LENGTH``  -> skip
3. leading casual pattern (greeting, thanks, ack, farewell, yes/no,
   laughter, small talk), any length   -> skip
4. short, no ``?`` and no memory keyword -> skip
5. everything else                     -> consider

Pure functions only: no I/O, no state.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from memory_bridge.constants import CASUAL_LENGTH_THRESHOLD, MIN_RECALL_LENGTH

# ---------------------------------------------------------------------------
# Casual-chat patterns (matched against lower-cased, stripped text)
# ---------------------------------------------------------------------------

_CASUAL_PATTERNS = [
    # Greetings
    re.compile(r"^(?:hi|hey|hello|yo|sup|hola|howdy|hiya|heya)\b"),
    re.compile(r"^good\s*(?:morning|afternoon|evening|night)\b"),
    # Thanks
    re.compile(r"^(?:thanks|thank you|thx|ty)\b"),
    # Acknowledgements
    re.compile(r"^(?:ok|okay|sure|got it|sounds good|cool|nice|great|awesome|perfect)\b"),
    # Farewells
    re.compile(r"^(?:bye|goodbye|see you|later|gn|ttyl)\b"),
    # Yes / no
    re.compile(r"^(?:yes|no|yep|nope|yeah|nah)\b"),
    # Laughter and emoji openers
    re.compile(r"^(?:lol|lmao|haha|heh|\U0001F602|\U0001F44D|\U0001F64F)"),
    # Small talk
    re.compile(r"^(?:how are you|what's up|whats up|wassup)\b"),
]

# Substrings that suggest decision, commitment, status or scheduling context
MEMORY_KEYWORDS = (
    "decide",
    "decision",
    "chose",
    "choice",
    "agreed",
    "approved",
    "committed",
    "plan",
    "strategy",
    "priorit",
    "delegate",
    "what did",
    "when did",
    "who said",
    "remember",
    "last time",
    "previously",
    "before",
    "history",
    "recap",
    "summary",
    "meeting",
    "discussed",
    "update",
    "status",
    "progress",
    "deadline",
    "schedule",
    "budget",
    "roadmap",
    "milestone",
)


@dataclass(frozen=True)
class RelevanceVerdict:
    """Outcome of classifying one candidate message."""

    consider: bool
    reason: str


def has_memory_keywords(text: str) -> bool:
    """Case-insensitive substring check against ``MEMORY_KEYWORDS``."""
    lower = text.lower()
    return any(keyword in lower for keyword in MEMORY_KEYWORDS)


def matches_casual_pattern(text: str) -> bool:
    """Check whether the text opens like small talk."""
    lower = text.lower().strip()
    return any(pattern.search(lower) for pattern in _CASUAL_PATTERNS)


def looks_like_casual_chat(text: str) -> bool:
    """Casual when a leading pattern matches, or when short with no signal."""
    return matches_casual_pattern(text) or _is_low_signal(text)


# ---------------------------------------------------------------------------
# Rule list
# ---------------------------------------------------------------------------


def _is_empty(text: str) -> bool:
    return not text


def _is_too_short(text: str) -> bool:
    return len(text) < MIN_RECALL_LENGTH


def _is_low_signal(text: str) -> bool:
    lower = text.lower().strip()
    return (
        len(lower) < CASUAL_LENGTH_THRESHOLD
        and "?" not in lower
        and not has_memory_keywords(lower)
    )


_SKIP_RULES: list[tuple[str, Callable[[str], bool]]] = [
    ("empty", _is_empty),
    ("too_short", _is_too_short),
    ("casual_pattern", matches_casual_pattern),
    ("low_signal", _is_low_signal),
]


def classify(candidate_text: str | None) -> RelevanceVerdict:
    """Run the rule list and report which rule decided."""
    text = candidate_text if isinstance(candidate_text, str) else ""
    for reason, rule in _SKIP_RULES:
        if rule(text):
            return RelevanceVerdict(consider=False, reason=reason)
    return RelevanceVerdict(consider=True, reason="consider")


def should_consult_memory(candidate_text: str | None) -> bool:
    """True when the message is worth a memory lookup."""
    return classify(candidate_text).consider
