"""Message extractors used by the parse cascade."""
from __future__ import annotations

from .patterns import PATTERNS, extract_messages
from .structured import Extraction, Target, extract, parse_selector

__all__ = ["PATTERNS", "Extraction", "Target", "extract", "extract_messages", "parse_selector"]
