from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from journeylog.errors import InvalidCursorError, NotFoundError, TransientIOError
from journeylog.models.journey import JourneyDocument
from journeylog.schemas.pagination import Cursor, FeedFilter, to_utc

# created_at alone is not unique; _id breaks ties so keyset pages never skip or repeat
FEED_SORT = [("created_at", DESCENDING), ("_id", DESCENDING)]


def _to_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise NotFoundError(f"Invalid journey id: {value!r}") from exc


def build_feed_query(feed_filter: FeedFilter, after: Optional[Cursor] = None) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if feed_filter.author_id:
        query["user_id"] = feed_filter.author_id
    if after is not None:
        if after.scope != feed_filter.scope:
            raise InvalidCursorError(f"Cursor for {after.scope!r} used with {feed_filter.scope!r}")
        try:
            oid = ObjectId(after.entry_id)
        except (InvalidId, TypeError) as exc:
            raise InvalidCursorError(f"Cursor has invalid entry id {after.entry_id!r}") from exc
        query["$or"] = [
            {"created_at": {"$lt": after.created_at}},
            {"created_at": after.created_at, "_id": {"$lt": oid}},
        ]
    return query


class JourneyRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["journeys"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(FEED_SORT)
        await self.collection.create_index([("user_id", DESCENDING)] + FEED_SORT)

    async def query_entries(
        self,
        feed_filter: FeedFilter,
        limit: int,
        after: Optional[Cursor] = None,
    ) -> Tuple[List[JourneyDocument], Optional[Cursor]]:
        query = build_feed_query(feed_filter, after)
        try:
            items = await self.collection.find(query).sort(FEED_SORT).limit(limit).to_list(length=limit)
        except PyMongoError as exc:
            raise TransientIOError(f"Journey query failed: {exc}") from exc
        for it in items:
            it["_id"] = str(it.get("_id"))
        next_cursor = None
        if items:
            last = items[-1]
            next_cursor = Cursor(scope=feed_filter.scope, created_at=to_utc(last["created_at"]), entry_id=last["_id"])
        return items, next_cursor

    async def delete_by_id(self, entry_id: str, owner_id: str) -> None:
        try:
            result = await self.collection.delete_one({"_id": _to_object_id(entry_id), "user_id": owner_id})
        except PyMongoError as exc:
            raise TransientIOError(f"Journey delete failed: {exc}") from exc
        if not result.deleted_count:
            raise NotFoundError(f"Journey {entry_id} not found for user {owner_id}")
