"""Strip transport artifacts from submitted bodies before parsing."""
from __future__ import annotations

import re
from typing import Any

# Line-anchored multipart leftovers (boundary lines and part headers).
_ARTIFACT_PATTERNS = [
    re.compile(r"^-{20,}\d{15,}-{0,2}$", re.MULTILINE),
    re.compile(r"^Content-Disposition:.*$", re.MULTILINE),
    re.compile(r"^Content-Type:.*$", re.MULTILINE),
    re.compile(r"^Content-Length:.*$", re.MULTILINE),
    re.compile(r"^boundary=.*$", re.MULTILINE),
    re.compile(r'^name=".*?"$', re.MULTILINE),
]
_BLANK_LINE = re.compile(r"^[^\S\n]*$", re.MULTILINE)
_NEWLINE_RUN = re.compile(r"\n{3,}")


def normalize_content(content: Any) -> str:
    """Return ``content`` without multipart artifacts, blank-line runs or outer whitespace.

    Non-string input yields an empty string.
    """
    if not content or not isinstance(content, str):
        return ""

    text = content.replace("\r\n", "\n")
    for pat in _ARTIFACT_PATTERNS:
        text = pat.sub("", text)
    text = _BLANK_LINE.sub("", text)
    text = _NEWLINE_RUN.sub("\n\n", text)
    return text.strip()
