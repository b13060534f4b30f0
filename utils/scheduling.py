"""Expiring per-user pending requests and their housekeeping loop.

Provides a PendingRequestStore that holds at most one pending confirmation
per acting user. Entries older than the TTL are ignored on lookup and are
reclaimed by a periodic sweep.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

import trio

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PendingEntry(Generic[T]):
    """A pending request and when it was created.

    Attributes:
        request: Feature-specific request payload
        created_at: Clock reading at creation time
    """
    request: T
    created_at: float


class PendingRequestStore(Generic[T]):
    """
    In-memory map of user id -> pending request.
    Nothing is persisted; pending requests are lost on restart.

    Mutations happen only on the trio loop thread and never await, so they
    are atomic with respect to other message handlers.
    """

    def __init__(
        self,
        ttl_seconds: float = 5 * 60,
        sweep_interval_seconds: float = 10 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: Dict[str, PendingEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, user_id: str, request: T) -> None:
        """Store a request, replacing any earlier one from the same user."""
        if user_id in self._entries:
            logger.debug("Replacing pending request for user_id=%s", user_id)
        self._entries[user_id] = PendingEntry(request=request, created_at=self._clock())

    def get(self, user_id: str) -> Optional[T]:
        """Return the user's live request without removing it."""
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[user_id]
            return None
        return entry.request

    def pop(self, user_id: str) -> Optional[T]:
        """Remove and return the user's live request."""
        request = self.get(user_id)
        if request is not None:
            del self._entries[user_id]
        return request

    def sweep(self) -> int:
        """Drop expired entries.

        Returns:
            Number of entries removed
        """
        stale = [uid for uid, entry in self._entries.items() if self._expired(entry)]
        for uid in stale:
            del self._entries[uid]
        if stale:
            logger.info("Expired %s pending request(s)", len(stale))
        return len(stale)

    def _expired(self, entry: PendingEntry[T]) -> bool:
        return self._clock() - entry.created_at > self.ttl_seconds

    async def run(self) -> None:
        """Housekeeping loop; runs until its nursery is cancelled."""
        while True:
            await trio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Error in pending request sweep")
