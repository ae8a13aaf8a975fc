"""Streaming, selector-driven extraction over chat-export markup.

The scanner makes one pass with :class:`html.parser.HTMLParser`. No document
tree is built: only the stack of currently open elements is kept so that
descendant selectors can be evaluated when an element starts.

Each :class:`Target` names a selector and, optionally, an attribute. Text
targets collect every text fragment inside the matching element until it
closes; attribute targets capture the attribute value on the start tag.

``Extraction.values`` keeps only the latest value per target name, so a
selector that matches several elements (several user turns, say) reports the
last one. ``Extraction.sequence`` records every match in document order for
callers that explicitly want all of them.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

# Only this minimal set is decoded inside captured text.
_MINIMAL_ENTITIES: List[Tuple[str, str]] = [
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#x27;", "'"),
    ("&#x2F;", "/"),
    ("&amp;", "&"),
]

_VOID_ELEMENTS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "param", "source", "track", "wbr"}
)
# Raw-text elements whose content never counts as message text.
_SKIP_TEXT = frozenset({"script", "style", "noscript", "iframe"})

_COMPOUND_RE = re.compile(
    r"""
    (?P<tag>[a-zA-Z][\w-]*|\*)
    | \.(?P<cls>[\w-]+)
    | \#(?P<id>[\w-]+)
    | \[\s*(?P<attr>[\w:-]+)\s*(?:=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\]\s]+))\s*)?\]
    """,
    re.VERBOSE,
)


def decode_minimal_entities(text: str) -> str:
    for entity, char in _MINIMAL_ENTITIES:
        text = text.replace(entity, char)
    return text


# -----------------------------
# Selectors
# -----------------------------
@dataclass(frozen=True)
class Compound:
    """One compound selector such as ``div.message-content[data-x="y"]``."""

    tag: Optional[str] = None
    classes: Tuple[str, ...] = ()
    id: Optional[str] = None
    attrs: Tuple[Tuple[str, Optional[str]], ...] = ()

    def matches(self, tag: str, attrs: Dict[str, Optional[str]]) -> bool:
        if self.tag and self.tag != "*" and self.tag != tag:
            return False
        if self.id is not None and attrs.get("id") != self.id:
            return False
        if self.classes:
            have = set((attrs.get("class") or "").split())
            if not set(self.classes) <= have:
                return False
        for name, value in self.attrs:
            if name not in attrs:
                return False
            if value is not None and attrs[name] != value:
                return False
        return True


def parse_selector(selector: str) -> Tuple[Compound, ...]:
    """Parse a whitespace-separated chain of compound selectors.

    Raises ``ValueError`` on syntax this scanner does not understand.
    """
    chain: List[Compound] = []
    for part in selector.split():
        tag: Optional[str] = None
        classes: List[str] = []
        ident: Optional[str] = None
        attrs: List[Tuple[str, Optional[str]]] = []
        pos = 0
        while pos < len(part):
            m = _COMPOUND_RE.match(part, pos)
            if not m or m.end() == pos:
                raise ValueError(f"Unsupported selector syntax: {selector!r}")
            if m.group("tag"):
                if pos != 0:
                    raise ValueError(f"Type selector must come first: {selector!r}")
                tag = m.group("tag").lower()
            elif m.group("cls"):
                classes.append(m.group("cls"))
            elif m.group("id"):
                ident = m.group("id")
            else:
                value = next((v for v in (m.group("dq"), m.group("sq"), m.group("bare")) if v is not None), None)
                attrs.append((m.group("attr").lower(), value))
            pos = m.end()
        chain.append(Compound(tag=tag, classes=tuple(classes), id=ident, attrs=tuple(attrs)))
    if not chain:
        raise ValueError("Empty selector")
    return tuple(chain)


@dataclass(frozen=True)
class Target:
    name: str
    selector: str
    attribute: Optional[str] = None


@dataclass
class Extraction:
    values: Dict[str, str] = field(default_factory=dict)
    sequence: List[Tuple[str, str]] = field(default_factory=list)

    def get(self, name: str) -> Optional[str]:
        return self.values.get(name)

    def all(self, name: str) -> List[str]:
        return [v for n, v in self.sequence if n == name]


# -----------------------------
# Scanner
# -----------------------------
@dataclass
class _Open:
    tag: str
    attrs: Dict[str, Optional[str]]
    captures: List[Tuple[str, List[str]]] = field(default_factory=list)


class _SelectorScanner(HTMLParser):
    def __init__(self, targets: Sequence[Target]) -> None:
        # Character references are rebuilt verbatim and decoded with the minimal table.
        super().__init__(convert_charrefs=False)
        self._targets = [(t, parse_selector(t.selector)) for t in targets]
        self._stack: List[_Open] = []
        self.result = Extraction()

    # --------- matching ----------
    def _matches(self, chain: Tuple[Compound, ...], tag: str, attrs: Dict[str, Optional[str]]) -> bool:
        if not chain[-1].matches(tag, attrs):
            return False
        # Remaining compounds must match ancestors, innermost last, in order.
        pending = list(chain[:-1])
        for anc in reversed(self._stack):
            if not pending:
                break
            if pending[-1].matches(anc.tag, anc.attrs):
                pending.pop()
        return not pending

    def _emit(self, name: str, value: str) -> None:
        self.result.values[name] = value
        self.result.sequence.append((name, value))

    # --------- HTMLParser hooks ----------
    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        attr_map = {k.lower(): v for k, v in attrs}
        node = _Open(tag=tag, attrs=attr_map)
        for target, chain in self._targets:
            if not self._matches(chain, tag, attr_map):
                continue
            if target.attribute:
                value = attr_map.get(target.attribute.lower())
                if value is not None:
                    self._emit(target.name, value)
            else:
                node.captures.append((target.name, []))
        if tag not in _VOID_ELEMENTS:
            self._stack.append(node)
        else:
            self._finish(node)

    def handle_startendtag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        self.handle_starttag(tag, attrs)
        if tag not in _VOID_ELEMENTS and self._stack and self._stack[-1].tag == tag:
            self._finish(self._stack.pop())

    def handle_endtag(self, tag: str) -> None:
        # Stray closers are ignored; a closer for an outer element closes everything inside it.
        if not any(n.tag == tag for n in self._stack):
            return
        while self._stack:
            node = self._stack.pop()
            self._finish(node)
            if node.tag == tag:
                break

    def handle_data(self, data: str) -> None:
        self._append(data)

    def handle_entityref(self, name: str) -> None:
        self._append(f"&{name};")

    def handle_charref(self, name: str) -> None:
        self._append(f"&#{name};")

    def close(self) -> None:
        super().close()
        while self._stack:
            self._finish(self._stack.pop())

    # --------- capture bookkeeping ----------
    def _append(self, text: str) -> None:
        if any(n.tag in _SKIP_TEXT for n in self._stack):
            return
        for node in self._stack:
            for _, buf in node.captures:
                buf.append(text)

    def _finish(self, node: _Open) -> None:
        for name, buf in node.captures:
            self._emit(name, decode_minimal_entities("".join(buf)))


def extract(markup: str, targets: Iterable[Target]) -> Extraction:
    """Run one streaming pass over ``markup`` and collect every target.

    Malformed markup is tolerated; unknown selector syntax raises ``ValueError``.
    """
    scanner = _SelectorScanner(list(targets))
    scanner.feed(markup)
    scanner.close()
    return scanner.result
