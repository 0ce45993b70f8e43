import asyncio
import logging
import time
from typing import AsyncIterator, Callable, Dict, List, Optional, Set

from journeylog.config import settings
from journeylog.schemas.chat import InboxSnapshot
from journeylog.services.cursor_pager import CursorPager
from journeylog.services.feed_assembler import FeedAssembler
from journeylog.services.inbox_reconciler import InboxReconciler
from journeylog.services.profile_enricher import ProfileEnricher

logger = logging.getLogger(__name__)


class UserSession:
    """Read models for one signed-in user, sharing a single profile cache."""

    def __init__(self, user_id: str, user_repo, journey_repo, clock: Callable[[], float] = time.monotonic) -> None:
        self.user_id = user_id
        self._clock = clock
        self.last_seen = clock()
        self.enricher = ProfileEnricher(user_repo, lookup_timeout=settings.lookup_timeout_seconds)
        self.feed = FeedAssembler(
            user_id,
            CursorPager(journey_repo, page_size=settings.feed_page_size),
            self.enricher,
            journey_repo,
            fetch_timeout=settings.fetch_timeout_seconds,
        )
        self._watchers: Set[InboxReconciler] = set()

    def touch(self) -> None:
        self.last_seen = self._clock()

    @property
    def watching(self) -> int:
        """Number of live inbox watchers."""
        return len(self._watchers)

    def inbox(self) -> InboxReconciler:
        return InboxReconciler(self.user_id, self.enricher)

    async def watch_inbox(self, stream) -> AsyncIterator[InboxSnapshot]:
        """Live inbox snapshots, ended with ``StreamDisconnectedError`` when the session closes."""
        reconciler = self.inbox()
        self._watchers.add(reconciler)
        snapshots = reconciler.watch(stream)
        try:
            async for snapshot in snapshots:
                yield snapshot
        finally:
            self._watchers.discard(reconciler)
            self.touch()
            await snapshots.aclose()

    async def close(self) -> None:
        for reconciler in list(self._watchers):
            reconciler.close()
        await self.enricher.close()


class SessionRegistry:
    """Per-user sessions, evicted after ``idle_timeout`` seconds without use.

    A session with a live inbox watcher is never idle.
    """

    def __init__(self, idle_timeout: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._sessions: Dict[str, UserSession] = {}
        self._lock = asyncio.Lock()
        self._idle_timeout = idle_timeout
        self._clock = clock

    def get(self, user_id: str) -> Optional[UserSession]:
        return self._sessions.get(user_id)

    def __len__(self) -> int:
        return len(self._sessions)

    async def get_or_create(self, user_id: str, user_repo, journey_repo) -> UserSession:
        async with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = UserSession(user_id, user_repo, journey_repo, clock=self._clock)
                self._sessions[user_id] = session
                logger.info("Opened session for %s", user_id)
            else:
                session.touch()
            return session

    async def end(self, user_id: str) -> bool:
        async with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        await session.close()
        logger.info("Closed session for %s", user_id)
        return True

    async def evict_idle(self) -> List[str]:
        if not self._idle_timeout:
            return []
        now = self._clock()
        async with self._lock:
            expired = [
                user_id
                for user_id, session in self._sessions.items()
                if not session.watching and now - session.last_seen >= self._idle_timeout
            ]
            closing = [self._sessions.pop(user_id) for user_id in expired]
        for session in closing:
            await session.close()
            logger.info("Evicted idle session for %s", session.user_id)
        return expired

    async def run_sweeper(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.evict_idle()
            except Exception:
                logger.exception("Session sweep failed")

    async def close_all(self) -> None:
        for user_id in list(self._sessions):
            await self.end(user_id)


sessions = SessionRegistry(idle_timeout=settings.session_idle_seconds)
