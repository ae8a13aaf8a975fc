"""Submission and retrieval of shared conversations."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from .errors import ContentTooLargeError, EmptyContentError
from .ids import IdAllocator
from .normalize import normalize_content
from .parser import parse_transcript
from .ratelimit import RateLimiter
from .storage import KeyValueStore
from .types import ConversationRecord, Metadata

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTENT_CHARS = 1024 * 1024


class ShareService:
    """Wires the limiter, normalizer, parser and allocator around one store.

    Holds no per-request state; every call builds fresh records.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        limiter: Optional[RateLimiter] = None,
        allocator: Optional[IdAllocator] = None,
        max_content_chars: int = DEFAULT_MAX_CONTENT_CHARS,
        multi_turn: bool = False,
    ) -> None:
        self.store = store
        self.limiter = limiter or RateLimiter(store)
        self.allocator = allocator or IdAllocator(store)
        self.max_content_chars = int(max_content_chars)
        self.multi_turn = bool(multi_turn)
        self._id_re = re.compile(rf"^[a-zA-Z0-9]{{{self.allocator.length}}}$")

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], store: KeyValueStore) -> "ShareService":
        rl_cfg = cfg.get("rate_limit", {})
        id_cfg = cfg.get("ids", {})
        return cls(
            store,
            limiter=RateLimiter(
                store,
                limit=int(rl_cfg.get("limit", 10)),
                window_seconds=int(rl_cfg.get("window_seconds", 3600)),
            ),
            allocator=IdAllocator(
                store,
                length=int(id_cfg.get("length", 8)),
                max_attempts=int(id_cfg.get("max_attempts", 10)),
            ),
            max_content_chars=int(cfg.get("server", {}).get("max_content_chars", DEFAULT_MAX_CONTENT_CHARS)),
            multi_turn=bool(cfg.get("parser", {}).get("multi_turn", False)),
        )

    def is_valid_id(self, conversation_id: str) -> bool:
        return bool(self._id_re.match(conversation_id or ""))

    async def submit(self, body: str, client_identity: str = "unknown") -> ConversationRecord:
        """Store a transcript and return the record written.

        Raises RateLimitExceeded, EmptyContentError, ContentTooLargeError,
        IdAllocationError, or whatever the store raises.
        """
        await self.limiter.admit(client_identity)

        text = normalize_content(body)
        if not text:
            raise EmptyContentError()
        if len(text) > self.max_content_chars:
            raise ContentTooLargeError(len(text), self.max_content_chars)

        conversation_id = await self.allocator.allocate()
        parsed = parse_transcript(text, multi_turn=self.multi_turn)
        record = ConversationRecord(
            id=conversation_id,
            parsed=parsed,
            raw=text,
            metadata=Metadata(size=len(text), client_identity=client_identity),
        )
        await self.store.put(conversation_id, json.dumps(record.to_dict(), ensure_ascii=False))
        logger.info(
            "Stored conversation %s (%s, %d messages, %d chars)",
            conversation_id,
            parsed.format.value,
            parsed.message_count,
            len(text),
        )
        return record

    async def retrieve(self, conversation_id: str) -> Optional[ConversationRecord]:
        data = await self.store.get(conversation_id)
        if data is None:
            return None
        return ConversationRecord.from_dict(json.loads(data))
