"""Format detection and the transcript parse cascade.

Tiers are tried in a fixed order and the first one that produces messages
wins:

1. JSON array of ``{"from", "value"}`` objects
2. structured extraction over known chat-export markup
3. regex patterns for loosely structured markup or pasted text
4. the whole cleaned input as a single ``unknown`` message

Each tier returns a :class:`ParseResult` or ``None`` for "no match"; only the
last tier always produces output. :func:`parse_transcript` never raises.
"""
from __future__ import annotations

import json
import logging
from typing import Callable, List, Optional

from .extract.patterns import extract_messages
from .extract.structured import Target, extract
from .sanitize import clean_html, sanitize_html
from .types import Format, Message, ParseResult, Role, make_message

logger = logging.getLogger(__name__)

JSON_ROLES = frozenset({"human", "gpt", "user", "assistant"})

# Presence of either marker is what qualifies input for the structured tier.
STRUCTURE_MARKERS = ("data-message-author-role", "message-content")

EXPORT_TARGETS = [
    Target("user_messages", '[data-message-author-role="user"]'),
    Target("assistant_messages", '[data-message-author-role="assistant"]'),
    Target("message_texts", ".message-content"),
    Target("user_texts", '[data-message-author-role="user"] .message-content'),
    Target("assistant_texts", '[data-message-author-role="assistant"] .message-content'),
]

Tier = Callable[[str], Optional[ParseResult]]


# -----------------------------
# Tier 1: JSON
# -----------------------------
def _load_conversation_json(text: str) -> Optional[list]:
    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, list) or not data:
        return None
    for item in data:
        if not isinstance(item, dict):
            return None
        if not isinstance(item.get("from"), str) or not isinstance(item.get("value"), str):
            return None
        if item["from"] not in JSON_ROLES:
            return None
    return data


def is_conversation_json(text: str) -> bool:
    return _load_conversation_json(text) is not None


def parse_json_tier(text: str) -> Optional[ParseResult]:
    data = _load_conversation_json(text)
    if data is None:
        return None
    logger.info("Detected JSON conversation format (%d messages)", len(data))
    messages = [
        make_message(Role.USER if item["from"] in ("human", "user") else Role.ASSISTANT, sanitize_html(item["value"]))
        for item in data
    ]
    return ParseResult(messages=messages, format=Format.JSON)


# -----------------------------
# Tier 2: structured export markup
# -----------------------------
def has_structure_markers(text: str) -> bool:
    return any(marker in text for marker in STRUCTURE_MARKERS)


def parse_structured_tier(text: str, *, multi_turn: bool = False) -> Optional[ParseResult]:
    """Structured extraction over chat-export markup.

    By default only the last user text and the last assistant text survive,
    giving at most ``[user, assistant]``. ``multi_turn=True`` keeps every
    matched text in document order.
    """
    if not has_structure_markers(text):
        return None
    try:
        found = extract(text, EXPORT_TARGETS)
    except Exception as e:
        logger.warning("Structured extraction failed, falling back to patterns: %s", e)
        return None

    messages: List[Message] = []
    if multi_turn:
        for name, value in found.sequence:
            if name == "user_texts":
                messages.append(make_message(Role.USER, clean_html(value)))
            elif name == "assistant_texts":
                messages.append(make_message(Role.ASSISTANT, clean_html(value)))
    else:
        user_text = found.get("user_texts")
        assistant_text = found.get("assistant_texts")
        if user_text:
            messages.append(make_message(Role.USER, clean_html(user_text)))
        if assistant_text:
            messages.append(make_message(Role.ASSISTANT, clean_html(assistant_text)))

    messages = [m for m in messages if m["content"]]
    if not messages:
        return None
    logger.info("Parsed export markup with structured extraction (%d messages)", len(messages))
    return ParseResult(messages=messages, format=Format.HTMLREWRITER)


# -----------------------------
# Tier 3: regex patterns
# -----------------------------
def parse_pattern_tier(text: str) -> Optional[ParseResult]:
    messages = extract_messages(text)
    if not messages:
        return None
    logger.info("Parsed transcript with pattern fallback (%d messages)", len(messages))
    return ParseResult(messages=messages, format=Format.PARSED)


# -----------------------------
# Tier 4: single blob
# -----------------------------
def fallback_result(text: str, error: Optional[str] = None) -> ParseResult:
    return ParseResult(
        messages=[make_message(Role.UNKNOWN, clean_html(text))],
        format=Format.FALLBACK,
        error=error,
    )


def parse_transcript(text: str, *, multi_turn: bool = False) -> ParseResult:
    """Parse submitted text into a :class:`ParseResult`. Never raises."""
    if not isinstance(text, str):
        return fallback_result("", error="input is not text")

    tiers: List[Tier] = [
        parse_json_tier,
        lambda t: parse_structured_tier(t, multi_turn=multi_turn),
        parse_pattern_tier,
    ]
    try:
        for tier in tiers:
            result = tier(text)
            if result is not None:
                return result
    except Exception as e:
        logger.exception("Parse error: %s", e)
        return fallback_result(text, error=str(e) or e.__class__.__name__)

    logger.info("No transcript structure recognized; storing as a single message")
    return fallback_result(text)
