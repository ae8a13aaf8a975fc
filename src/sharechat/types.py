"""Data model shared by the parser, the service and the HTTP layer."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict


class Message(TypedDict):
    """A single normalized transcript message."""

    role: str            # "user" | "assistant" | "unknown"
    content: str         # sanitized text


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    UNKNOWN = "unknown"


class Format(str, Enum):
    """Which cascade tier produced a result."""

    JSON = "json"
    HTMLREWRITER = "htmlrewriter"
    PARSED = "parsed"
    FALLBACK = "fallback"
    RAW = "raw"


# Labels accepted from input, mapped onto canonical roles.
ROLE_SYNONYMS: Dict[str, Role] = {
    "user": Role.USER,
    "human": Role.USER,
    "assistant": Role.ASSISTANT,
    "gpt": Role.ASSISTANT,
    "ai": Role.ASSISTANT,
}


def resolve_role(label: str) -> Role:
    """Map an input label onto a canonical role, substring-matching like a human would."""
    key = (label or "").strip().lower()
    if key in ROLE_SYNONYMS:
        return ROLE_SYNONYMS[key]
    if "user" in key or "human" in key:
        return Role.USER
    return Role.ASSISTANT


def make_message(role: Role, content: str) -> Message:
    return {"role": role.value, "content": content}


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ParseResult:
    messages: List[Message]
    format: Format
    error: Optional[str] = None

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "messages": [dict(m) for m in self.messages],
            "format": self.format.value,
            "messageCount": self.message_count,
        }
        if self.error:
            d["error"] = self.error
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParseResult":
        messages: List[Message] = [
            {"role": str(m.get("role", Role.UNKNOWN.value)), "content": str(m.get("content", ""))}
            for m in data.get("messages") or []
            if isinstance(m, dict)
        ]
        try:
            fmt = Format(data.get("format") or Format.RAW.value)
        except ValueError:
            fmt = Format.RAW
        return cls(messages=messages, format=fmt, error=data.get("error"))


@dataclass
class Metadata:
    size: int
    client_identity: str
    created: str = field(default_factory=_utc_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"created": self.created, "size": self.size, "clientIdentity": self.client_identity}


@dataclass
class ConversationRecord:
    """What gets persisted under an id. Never rewritten after creation."""

    id: str
    parsed: ParseResult
    raw: str
    metadata: Metadata

    @property
    def format(self) -> Format:
        return self.parsed.format

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": {
                "parsed": self.parsed.to_dict(),
                "raw": self.raw,
                "format": self.format.value,
                "metadata": self.metadata.to_dict(),
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationRecord":
        content = data.get("content") or {}
        parsed_raw = content.get("parsed")
        if isinstance(parsed_raw, dict):
            parsed = ParseResult.from_dict(parsed_raw)
        else:
            parsed = ParseResult(messages=[], format=Format.RAW)
        if not content.get("format"):
            # Records written without a format are served as raw passthrough.
            parsed.format = Format.RAW
        meta = content.get("metadata") or {}
        return cls(
            id=str(data.get("id", "")),
            parsed=parsed,
            raw=str(content.get("raw", "")),
            metadata=Metadata(
                size=int(meta.get("size", 0) or 0),
                client_identity=str(meta.get("clientIdentity") or meta.get("ip") or "unknown"),
                created=str(meta.get("created", "")),
            ),
        )
