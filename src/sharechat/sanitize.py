"""Markup sanitizing and cleaning passes.

Two sibling passes with different goals:

- :func:`sanitize_html` defangs dangerous markup but keeps the rest (tables,
  code blocks, inline formatting) so the content can be redisplayed as HTML.
- :func:`clean_html` flattens markup into plain flowed text for message bodies.

Both are pure ``str -> str`` functions that never raise; anything that is not
a string maps to ``""``.
"""
from __future__ import annotations

import re
from typing import Any, Callable, List, Tuple

# -----------------------------
# Shared patterns
# -----------------------------
_DANGEROUS_BLOCKS = [
    re.compile(rf"<{tag}\b[^>]*>.*?</{tag}\s*>", re.IGNORECASE | re.DOTALL)
    for tag in ("script", "style", "iframe", "noscript")
]
# Unpaired openers/closers of the same tags; whatever they wrapped stays as inert text.
_DANGEROUS_TAGS = re.compile(r"</?(?:script|style|iframe|noscript)\b[^>]*>", re.IGNORECASE)

_START_TAG = re.compile(r"""(<[a-zA-Z][\w:-]*)((?:[^>"']|"[^"]*"|'[^']*')*)""")
# One attribute inside a start tag; quoted values are consumed whole.
_ATTRIBUTE = re.compile(r"""(\s*)([^\s=/>"']+)(?:\s*=\s*("[^"]*"|'[^']*'|[^\s"'>]*))?""")
_JS_URI = re.compile(r"javascript\s*:", re.IGNORECASE)

_MULTIPART_LINES = [
    re.compile(r"^[^\S\n]*-{10,}\d{10,}-{0,2}[^\S\n]*$", re.MULTILINE),
    re.compile(r"^[^\S\n]*(?:Content-|boundary=).*$", re.MULTILINE),
]


def _until_stable(fn: Callable[[str], str], text: str) -> str:
    # Every pass only ever removes or shortens text, so this terminates.
    while True:
        out = fn(text)
        if out == text:
            return out
        text = out


def _drop_dangerous_blocks(text: str) -> str:
    for pat in _DANGEROUS_BLOCKS:
        text = pat.sub("", text)
    return _DANGEROUS_TAGS.sub("", text)


# -----------------------------
# Markup-preserving sanitizer
# -----------------------------
def _defang_attribute(m: re.Match) -> str:
    name, value = m.group(2), m.group(3)
    if name.lower().startswith("on"):
        return ""
    if value is None or not _JS_URI.search(value):
        return m.group(0)
    start = m.start(3) - m.start(0)
    return m.group(0)[:start] + _until_stable(lambda v: _JS_URI.sub("", v), value)


def _defang_tag(m: re.Match) -> str:
    return m.group(1) + _ATTRIBUTE.sub(_defang_attribute, m.group(2))


def _sanitize_pass(text: str) -> str:
    # Handlers and javascript: URIs are only touched inside start tags; text between tags is left alone.
    text = _drop_dangerous_blocks(text)
    return _START_TAG.sub(_defang_tag, text)


def sanitize_html(html: Any) -> str:
    """Remove scripts, styles, iframes, noscript, event handlers and ``javascript:`` URIs.

    All other tags are left alone. Passes repeat until nothing changes, so
    fragments such as ``<scr<script></script>ipt>`` cannot reassemble.
    """
    if not html or not isinstance(html, str):
        return ""
    return _until_stable(_sanitize_pass, html)


# -----------------------------
# Markup-stripping cleaner
# -----------------------------
_STRUCTURAL: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</p\s*>", re.IGNORECASE), "\n\n"),
    (re.compile(r"</div\s*>", re.IGNORECASE), "\n"),
    (re.compile(r"</h[1-6]\s*>", re.IGNORECASE), "\n\n"),
    (re.compile(r"<li\b[^>]*>", re.IGNORECASE), "• "),
    (re.compile(r"</li\s*>", re.IGNORECASE), "\n"),
]
_ANY_TAG = re.compile(r"<[^>]*>")

# "&amp;amp;..." collapses in one step; the remaining table is applied after it.
_AMP_RUN = re.compile(r"&(?:amp;)+")
ENTITY_TABLE: List[Tuple[str, str]] = [
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#x27;", "'"),
    ("&#x2F;", "/"),
    ("&#39;", "'"),
    ("&apos;", "'"),
    ("&hellip;", "..."),
    ("&mdash;", "—"),
    ("&ndash;", "–"),
]
_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
_NEWLINE_RUN = re.compile(r"\n{3,}")
_INLINE_SPACE = re.compile(r"[^\S\n]+")
_LEADING_SPACE = re.compile(r"^ +", re.MULTILINE)
_TRAILING_SPACE = re.compile(r" +$", re.MULTILINE)


def decode_entities(text: str) -> str:
    text = _AMP_RUN.sub("&", text)
    for entity, char in ENTITY_TABLE:
        text = text.replace(entity, char)
    return text


def _strip_pass(text: str) -> str:
    for pat in _MULTIPART_LINES:
        text = pat.sub("", text)
    text = _drop_dangerous_blocks(text)
    for pat, repl in _STRUCTURAL:
        text = pat.sub(repl, text)
    text = _ANY_TAG.sub("", text)
    return decode_entities(text)


def clean_html(content: Any) -> str:
    """Flatten markup into plain text.

    Decoded entities can spell out new tags (``&lt;b&gt;``), so stripping and
    decoding repeat until the text stops changing. The result carries no
    tags and no entities from :data:`ENTITY_TABLE`, and cleaning it again is
    a no-op.
    """
    if not content or not isinstance(content, str):
        return ""

    text = content.replace("\r\n", "\n").replace("\r", "\n")
    text = _ZERO_WIDTH.sub("", text)
    text = _until_stable(_strip_pass, text)

    text = _INLINE_SPACE.sub(" ", text)
    text = _LEADING_SPACE.sub("", text)
    text = _TRAILING_SPACE.sub("", text)
    text = _NEWLINE_RUN.sub("\n\n", text)
    return text.strip()
