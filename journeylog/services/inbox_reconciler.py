import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set

from journeylog.errors import StreamDisconnectedError
from journeylog.schemas.chat import (
    EMPTY_CONVERSATION_HINT,
    ChatMessage,
    ConversationSummary,
    InboxSnapshot,
)
from journeylog.schemas.pagination import to_utc
from journeylog.services.unread import total_unread, unread_count
from journeylog.utils.formatting import chat_timestamp_label

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def other_participant(participants: Iterable[str], current_user: str) -> Optional[str]:
    for user_id in participants:
        if user_id and user_id != current_user:
            return user_id
    return None


def filter_by_username(snapshot: InboxSnapshot, query: str) -> InboxSnapshot:
    """Case-insensitive substring match on the other participant's username."""
    needle = (query or "").strip().lower()
    if not needle:
        return snapshot
    conversations = tuple(c for c in snapshot.conversations if needle in c.other_user.username.lower())
    return InboxSnapshot(
        conversations=conversations,
        total_unread=total_unread(conversations),
        sequence=snapshot.sequence,
    )


class _LatestSnapshot:
    """Single-slot mailbox: a newer upstream snapshot replaces an unconsumed one."""

    _EMPTY = object()

    def __init__(self) -> None:
        self._value: Any = self._EMPTY
        self._sequence = 0
        self._closed = False
        self._error: Optional[BaseException] = None
        self._ready = asyncio.Event()
        self.arrived = asyncio.Event()

    def put(self, value: Any) -> None:
        self._value = value
        self._sequence += 1
        self._ready.set()
        self.arrived.set()

    def close(self, error: Optional[BaseException] = None) -> None:
        # the first failure wins; a later normal end must not mask it
        self._closed = True
        if self._error is None:
            self._error = error
        if error is not None:
            # wake a watcher blocked on a projection; the error replaces it
            self.arrived.set()
        self._ready.set()

    async def take(self):
        """Return ``(sequence, value)``; ``None`` once the upstream has ended."""
        while True:
            if self._error is not None:
                raise self._error
            if self._value is not self._EMPTY:
                value, self._value = self._value, self._EMPTY
                self.arrived.clear()
                return self._sequence, value
            if self._closed:
                return None
            self._ready.clear()
            await self._ready.wait()


class InboxReconciler:
    """Live, sorted, unread-annotated conversation list for one user.

    Every upstream snapshot triggers a full projection pass. Nothing is
    patched incrementally. Each emitted ``InboxSnapshot`` is immutable and
    built from exactly one upstream snapshot.
    """

    def __init__(self, current_user: str, enricher) -> None:
        self.current_user = current_user
        self._enricher = enricher
        self._mailboxes: Set[_LatestSnapshot] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """End every running ``watch`` with ``StreamDisconnectedError``."""
        self._closed = True
        for mailbox in list(self._mailboxes):
            mailbox.close(StreamDisconnectedError("session closed"))

    async def project(self, records: List[Dict[str, Any]], sequence: int = 0) -> InboxSnapshot:
        pending = []
        for record in records:
            other_id = other_participant(record.get("participants") or [], self.current_user)
            if other_id is None:
                logger.debug("Dropping chat %s with no other participant", record.get("_id"))
                continue
            pending.append((record, other_id))

        profiles = await self._enricher.resolve_many(other_id for _, other_id in pending)

        now = datetime.now(timezone.utc)
        summaries = [self._summarize(record, profiles[other_id], now) for record, other_id in pending]
        summaries.sort(key=lambda c: (c.updated_at or _OLDEST, c.id), reverse=True)
        conversations = tuple(summaries)
        return InboxSnapshot(
            conversations=conversations,
            total_unread=total_unread(conversations),
            sequence=sequence,
        )

    def _summarize(self, record: Dict[str, Any], other_user, now: datetime) -> ConversationSummary:
        messages = tuple(ChatMessage.from_document(m) for m in record.get("messages") or [])
        last_message = messages[-1] if messages else None
        updated_at = record.get("updated_at")
        updated_at = to_utc(updated_at) if updated_at else None
        return ConversationSummary(
            id=str(record["_id"]),
            participants=tuple(record.get("participants") or ()),
            messages=messages,
            last_message=last_message,
            preview=last_message.text if last_message else EMPTY_CONVERSATION_HINT,
            updated_at=updated_at,
            updated_label=chat_timestamp_label(updated_at, now=now),
            other_user=other_user,
            unread_count=unread_count(messages, self.current_user),
        )

    async def watch(self, stream: AsyncIterator[List[Dict[str, Any]]]) -> AsyncIterator[InboxSnapshot]:
        """Project every upstream snapshot, newest wins.

        If a snapshot arrives while the previous one is still being
        projected, that projection is cancelled and never emitted. An
        upstream error, or closing the reconciler or its enricher, ends
        iteration with ``StreamDisconnectedError``.
        """
        mailbox = _LatestSnapshot()
        if self._closed:
            mailbox.close(StreamDisconnectedError("session closed"))
        self._mailboxes.add(mailbox)

        async def _drain() -> None:
            try:
                async for records in stream:
                    mailbox.put(records)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Inbox stream for %s failed: %s", self.current_user, exc)
                mailbox.close(exc)
            else:
                mailbox.close()

        reader = asyncio.create_task(_drain())
        projection: Optional[asyncio.Task] = None
        try:
            while True:
                try:
                    taken = await mailbox.take()
                except StreamDisconnectedError:
                    raise
                except Exception as exc:
                    raise StreamDisconnectedError(str(exc) or exc.__class__.__name__) from exc
                if taken is None:
                    return
                sequence, records = taken
                projection = asyncio.create_task(self.project(records, sequence))
                arrival = asyncio.create_task(mailbox.arrived.wait())
                try:
                    await asyncio.wait({projection, arrival}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    arrival.cancel()
                if mailbox.arrived.is_set():
                    projection.cancel()
                    await asyncio.gather(projection, return_exceptions=True)
                    logger.debug("Dropped inbox pass %d for %s", sequence, self.current_user)
                    continue
                if projection.cancelled():
                    # only the enricher can cancel a pass the watcher did not cancel itself
                    raise StreamDisconnectedError("session closed")
                snapshot = projection.result()
                projection = None
                yield snapshot
        finally:
            self._mailboxes.discard(mailbox)
            if projection is not None and not projection.done():
                projection.cancel()
                await asyncio.gather(projection, return_exceptions=True)
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
