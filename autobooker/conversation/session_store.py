"""
In-memory session store with absolute and inactivity expiry.

Expiry is enforced lazily on every ``get`` as well as by the optional
background sweeper, so an expired session is never served even if the
sweeper has not run yet.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from autobooker.schemas.conversation_schema import ConversationContext

logger = logging.getLogger(__name__)

DEFAULT_ABSOLUTE_TTL = timedelta(hours=24)
DEFAULT_INACTIVITY_TTL = timedelta(hours=4)
DEFAULT_SWEEP_INTERVAL_SEC = 300.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionEntry:
    context: ConversationContext
    created_at: datetime
    last_activity: datetime


class InMemorySessionStore:
    """
    Thread-safe mapping of session id to conversation context.

    Contexts are copied on the way in and out, so callers never share
    mutable state with the store or with each other.
    """

    def __init__(
        self,
        absolute_ttl: timedelta = DEFAULT_ABSOLUTE_TTL,
        inactivity_ttl: timedelta = DEFAULT_INACTIVITY_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.absolute_ttl = absolute_ttl
        self.inactivity_ttl = inactivity_ttl
        self._clock = clock or _utcnow
        self._entries: dict[str, SessionEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def _is_expired(self, entry: SessionEntry, now: datetime) -> bool:
        return (
            now - entry.created_at > self.absolute_ttl
            or now - entry.last_activity > self.inactivity_ttl
        )

    def get(self, session_id: str) -> Optional[ConversationContext]:
        """Return a copy of the live context, or None if missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            if self._is_expired(entry, now):
                del self._entries[session_id]
                logger.info("Session %s expired", session_id)
                return None
            return entry.context.model_copy(deep=True)

    def put(self, session_id: str, context: ConversationContext) -> None:
        """Store a context, keeping the original creation time."""
        now = self._clock()
        stored = context.model_copy(deep=True)
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None or self._is_expired(entry, now):
                self._entries[session_id] = SessionEntry(stored, created_at=now, last_activity=now)
            else:
                entry.context = stored
                entry.last_activity = now

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._entries.pop(session_id, None) is not None

    def sweep(self) -> int:
        """Remove every expired session. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [sid for sid, entry in self._entries.items() if self._is_expired(entry, now)]
            for sid in expired:
                del self._entries[sid]
        if expired:
            logger.info("Swept %d expired session(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------ #
    # Background sweeping
    # ------------------------------------------------------------------ #

    def start_sweeper(self, interval: float = DEFAULT_SWEEP_INTERVAL_SEC) -> asyncio.Task:
        """Start periodic sweeping on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever(interval))
        logger.debug("Session sweeper started (every %.0fs)", interval)
        return self._sweeper

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.debug("Session sweeper stopped")
