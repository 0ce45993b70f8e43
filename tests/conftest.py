"""Shared fakes and fixtures for journeylog tests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from journeylog.errors import NotFoundError, TransientIOError
from journeylog.repositories.chat_repository import ChatRepository
from journeylog.schemas.pagination import Cursor, FeedFilter, to_utc
from journeylog.schemas.profile import Profile

BASE_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def ts(seconds: int) -> datetime:
    """Millisecond-precision timestamp, the same precision MongoDB stores."""
    return BASE_TIME + timedelta(seconds=seconds)


def oid(n: int) -> str:
    """24-char hex id; lexicographic order matches ObjectId order."""
    return f"{n:024x}"


def journey(n: int, user_id: str, created: datetime, **extra) -> Dict[str, Any]:
    doc = {"_id": oid(n), "user_id": user_id, "title": f"Day {n}", "content": f"entry {n}", "created_at": created}
    doc.update(extra)
    return doc


class FakeJourneyRepo:
    """In-memory journeys with the same keyset ordering as JourneyRepository."""

    def __init__(self, docs: Optional[List[Dict[str, Any]]] = None) -> None:
        self.docs = list(docs or [])
        self.queries: List[tuple] = []
        self.deleted: List[str] = []
        self.fail_delete: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def query_entries(self, feed_filter: FeedFilter, limit: int, after: Optional[Cursor] = None):
        self.queries.append((feed_filter.scope, after))
        if self.gate is not None:
            await self.gate.wait()
        rows = [d for d in self.docs if not feed_filter.author_id or d["user_id"] == feed_filter.author_id]
        rows.sort(key=lambda d: (to_utc(d["created_at"]), d["_id"]), reverse=True)
        if after is not None:
            rows = [d for d in rows if (to_utc(d["created_at"]), d["_id"]) < (after.created_at, after.entry_id)]
        items = [dict(d) for d in rows[:limit]]
        next_cursor = None
        if items:
            last = items[-1]
            next_cursor = Cursor(scope=feed_filter.scope, created_at=to_utc(last["created_at"]), entry_id=last["_id"])
        return items, next_cursor

    async def delete_by_id(self, entry_id: str, owner_id: str) -> None:
        if self.fail_delete is not None:
            raise self.fail_delete
        before = len(self.docs)
        self.docs = [d for d in self.docs if not (d["_id"] == entry_id and d["user_id"] == owner_id)]
        if len(self.docs) == before:
            raise NotFoundError(entry_id)
        self.deleted.append(entry_id)


class FakeUserRepo:
    """Profiles by user id; counts lookups and can be made slow or failing."""

    def __init__(self, profiles: Optional[Dict[str, str]] = None) -> None:
        self.profiles = dict(profiles or {})
        self.calls: List[str] = []
        self.failing: set = set()
        self.gate: Optional[asyncio.Event] = None
        self.cancelled: List[str] = []

    async def get_profile(self, user_id: str) -> Profile:
        self.calls.append(user_id)
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(user_id)
                raise
        if user_id in self.failing:
            raise TransientIOError("store unavailable")
        if user_id not in self.profiles:
            raise NotFoundError(user_id)
        return Profile(user_id=user_id, username=self.profiles[user_id], avatar=f"https://img/{user_id}.png")



class FakeChatRepo(ChatRepository):
    """In-memory chats; keeps the real bus-driven ``watch_for_user``."""

    def __init__(self, chats: Optional[List[Dict[str, Any]]] = None) -> None:
        self.chats = list(chats or [])
        self.fail_list: Optional[Exception] = None
        self.read_marks: List[tuple] = []

    async def list_for_user(self, user_id: str):
        if self.fail_list is not None:
            raise self.fail_list
        return [dict(c) for c in self.chats if user_id in c["participants"]]

    async def get_by_id(self, chat_id: str):
        for chat in self.chats:
            if chat["_id"] == chat_id:
                return chat
        return None

    async def get_or_create_one_to_one(self, user_a: str, user_b: str):
        participants = sorted([user_a, user_b])
        for chat in self.chats:
            if chat["participants"] == participants:
                return chat
        chat = {"_id": f"chat{len(self.chats) + 1}", "participants": participants, "messages": [], "updated_at": BASE_TIME}
        self.chats.append(chat)
        return chat

    async def append_message(self, chat_id: str, message) -> None:
        chat = await self.get_by_id(chat_id)
        chat["messages"] = chat["messages"] + [message]
        chat["updated_at"] = message["timestamp"]

    async def mark_read(self, chat_id: str, reader_id: str) -> None:
        self.read_marks.append((chat_id, reader_id))
        chat = await self.get_by_id(chat_id)
        chat["messages"] = [
            dict(m, read=True) if m["sender_id"] != reader_id else m for m in chat["messages"]
        ]

@pytest.fixture
def user_repo() -> FakeUserRepo:
    return FakeUserRepo({"alice": "Alice", "bob": "Bob", "carol": "Carol"})


@pytest.fixture
def journey_repo() -> FakeJourneyRepo:
    return FakeJourneyRepo()
