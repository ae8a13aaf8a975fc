"""Regex fallback for loosely structured or plain-text transcripts."""
from __future__ import annotations

import re
from typing import List, Optional

from ..sanitize import clean_html
from ..types import Message, make_message, resolve_role

_ROLE_LABELS = r"(?:User|Human|Assistant|AI)"

# Tried in order; the first pattern with any match wins and the rest are not consulted.
PATTERNS: List[re.Pattern] = [
    # Chat UI export: <div data-message-author-role="user">...</div>
    re.compile(
        r'<div[^>]*data-message-author-role="(user|assistant)"[^>]*>(.*?)</div>',
        re.IGNORECASE | re.DOTALL,
    ),
    # Copied conversations: <div class="... message ...">...</div>
    re.compile(
        r'<div[^>]*class="[^"]*message[^"]*"[^>]*>(.*?)</div>',
        re.IGNORECASE | re.DOTALL,
    ),
    # Pasted text: line-anchored "User: ..." turns; the body is the rest of that line.
    re.compile(
        rf"^({_ROLE_LABELS}):[^\S\n]*(.*?)(?=^{_ROLE_LABELS}:|$)",
        re.IGNORECASE | re.DOTALL | re.MULTILINE,
    ),
]


def extract_messages(text: str, patterns: Optional[List[re.Pattern]] = None) -> Optional[List[Message]]:
    """Return messages from the first pattern that matches, or ``None``.

    Two-group patterns capture ``(role label, body)``; one-group patterns
    capture the body and the role is inferred from the whole match.
    """
    for pattern in patterns or PATTERNS:
        matches = list(pattern.finditer(text))
        if not matches:
            continue

        messages: List[Message] = []
        for m in matches:
            if pattern.groups >= 2:
                role = resolve_role(m.group(1))
                body = m.group(2)
            else:
                role = resolve_role(m.group(0))
                body = m.group(1)
            messages.append(make_message(role, clean_html(body or "")))
        return messages
    return None
