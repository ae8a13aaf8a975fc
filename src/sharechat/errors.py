"""Exception types raised by the sharechat core."""
from __future__ import annotations

from typing import Optional


class ShareChatError(Exception):
    """Base class for errors the service surfaces to callers."""


class EmptyContentError(ShareChatError):
    def __init__(self) -> None:
        super().__init__("No content provided")


class ContentTooLargeError(ShareChatError):
    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Content too large ({size} chars, max {limit})")


class RateLimitExceeded(ShareChatError):
    def __init__(self, identity: str, retry_after: Optional[int] = None) -> None:
        self.identity = identity
        self.retry_after = retry_after
        super().__init__("Rate limit exceeded. Please try again later.")


class IdAllocationError(ShareChatError):
    """No free identifier found within the attempt budget.

    Practically unreachable with a healthy store and randomness source, so
    seeing it repeatedly points at one of those.
    """

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Failed to generate unique ID after {attempts} attempts")


class StorageError(ShareChatError):
    """The key-value backend failed; never retried by the core."""
