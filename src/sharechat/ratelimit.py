"""Fixed-window request limiter backed by the key-value store.

Each identity gets one counter key per window,
``rate_limit:<identity>:<window index>``. The first request in a window
creates it, later ones increment it, and the store's TTL removes it when the
window ends; nothing is ever deleted explicitly.

The check is read-then-write with no compare-and-swap, so two requests from
the same identity racing on the same counter can both be admitted and the
counter ends up one short. That undercount is accepted: none of the stores
offer a conditional write.
"""
from __future__ import annotations

import logging
import math
import time
from typing import Callable

from .errors import RateLimitExceeded
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 3600


class RateLimiter:
    """Allow ``limit`` requests per identity per ``window_seconds``.

    Args:
        store: Backing key-value store shared by all requests.
        limit: Admitted requests per window.
        window_seconds: Window length; windows are aligned to multiples of it.
        clock: Seconds since the epoch; injectable for tests.

    Raises:
        ValueError: If ``limit`` or ``window_seconds`` is not positive.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock

    def _window(self, now: float) -> tuple[int, int]:
        """Return (window index, whole seconds left in it)."""
        index = int(now // self.window_seconds)
        remaining = math.ceil((index + 1) * self.window_seconds - now)
        return index, max(1, remaining)

    def key_for(self, identity: str, now: float | None = None) -> str:
        index, _ = self._window(self._clock() if now is None else now)
        return f"rate_limit:{identity}:{index}"

    async def admit(self, identity: str) -> None:
        """Count one request for ``identity`` or raise :class:`RateLimitExceeded`."""
        now = self._clock()
        index, remaining = self._window(now)
        key = f"rate_limit:{identity}:{index}"

        current = await self.store.get(key)
        try:
            count = int(current) if current else 0
        except ValueError:
            logger.warning("Malformed rate counter %s=%r; treating the window as used up", key, current)
            count = self.limit

        if count >= self.limit:
            logger.info("Rate limit hit for %s (%d/%d)", identity, count, self.limit)
            raise RateLimitExceeded(identity, retry_after=remaining)

        await self.store.put(key, str(count + 1), expire_after_seconds=remaining)
