from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from journeylog.errors import NotFoundError, TransientIOError
from journeylog.models.chat import ChatDocument, ChatMessageDocument
from journeylog.utils.realtime_bus import inbox_channel

INBOX_SORT = [("updated_at", DESCENDING), ("_id", DESCENDING)]
# one user's inbox is small; the live query always reads the full result set
INBOX_MAX_CHATS = 500


class ChatRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["chats"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index(INBOX_SORT)

    async def list_for_user(self, user_id: str) -> List[ChatDocument]:
        try:
            cursor = self.collection.find({"participants": user_id}).sort(INBOX_SORT).limit(INBOX_MAX_CHATS)
            items = await cursor.to_list(length=INBOX_MAX_CHATS)
        except PyMongoError as exc:
            raise TransientIOError(f"Chat query failed: {exc}") from exc
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def watch_for_user(self, user_id: str, bus) -> AsyncIterator[List[ChatDocument]]:
        """Yield the user's full chat list now and again after every change notification."""
        subscription = await bus.subscribe(inbox_channel(user_id))
        try:
            yield await self.list_for_user(user_id)
            async for _ in subscription:
                yield await self.list_for_user(user_id)
        finally:
            await subscription.cancel()

    async def get_by_id(self, chat_id: str) -> Optional[ChatDocument]:
        try:
            oid = ObjectId(chat_id)
        except (InvalidId, TypeError):
            return None
        try:
            doc = await self.collection.find_one({"_id": oid})
        except PyMongoError as exc:
            raise TransientIOError(f"Chat lookup failed: {exc}") from exc
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def get_or_create_one_to_one(self, user_a: str, user_b: str) -> ChatDocument:
        participants = sorted([user_a, user_b])
        try:
            existing = await self.collection.find_one({"participants": participants})
            if existing:
                existing["_id"] = str(existing.get("_id"))
                return existing
            now = datetime.now(timezone.utc)
            doc: ChatDocument = {
                "participants": participants,
                "messages": [],
                "created_at": now,
                "updated_at": now,
            }
            result = await self.collection.insert_one(doc)
        except PyMongoError as exc:
            raise TransientIOError(f"Chat upsert failed: {exc}") from exc
        doc["_id"] = str(result.inserted_id)
        return doc

    async def append_message(self, chat_id: str, message: ChatMessageDocument) -> None:
        try:
            result = await self.collection.update_one(
                {"_id": ObjectId(chat_id)},
                {
                    "$push": {"messages": message},
                    "$set": {"updated_at": message["timestamp"]},
                },
            )
        except PyMongoError as exc:
            raise TransientIOError(f"Message append failed: {exc}") from exc
        if not result.matched_count:
            raise NotFoundError(f"Chat {chat_id} not found")

    async def mark_read(self, chat_id: str, reader_id: str) -> None:
        try:
            await self.collection.update_one(
                {"_id": ObjectId(chat_id)},
                {"$set": {"messages.$[m].read": True}},
                array_filters=[{"m.sender_id": {"$ne": reader_id}, "m.read": False}],
            )
        except PyMongoError as exc:
            raise TransientIOError(f"Mark read failed: {exc}") from exc
