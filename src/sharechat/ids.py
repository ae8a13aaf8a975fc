"""Short, shareable conversation identifiers."""
from __future__ import annotations

import logging
import random
import secrets
import string

from .errors import IdAllocationError
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

# ASCII letters and digits minus the look-alikes 0/O/o, 1/l/I: 56 symbols.
ALPHABET = "".join(c for c in string.ascii_letters + string.digits if c not in "0Oo1lI")
ID_LENGTH = 8
MAX_ATTEMPTS = 10


def generate_id(rng: random.Random, length: int = ID_LENGTH) -> str:
    return "".join(rng.choice(ALPHABET) for _ in range(length))


class IdAllocator:
    """Pick random ids until one is free in the store.

    Each attempt is independent; after ``max_attempts`` occupied candidates
    :class:`IdAllocationError` is raised. There is no reservation step, so
    uniqueness rests on the size of the id space (56**8).
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        length: int = ID_LENGTH,
        max_attempts: int = MAX_ATTEMPTS,
        rng: random.Random | None = None,
    ) -> None:
        if length <= 0:
            raise ValueError(f"length must be positive, got {length}")
        if max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")
        self.store = store
        self.length = length
        self.max_attempts = max_attempts
        self._rng = rng or secrets.SystemRandom()

    async def allocate(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            candidate = generate_id(self._rng, self.length)
            if await self.store.get(candidate) is None:
                return candidate
            logger.warning("ID collision on attempt %d/%d", attempt, self.max_attempts)
        logger.error("ID allocation exhausted after %d attempts", self.max_attempts)
        raise IdAllocationError(self.max_attempts)
