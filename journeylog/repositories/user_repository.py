from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from journeylog.errors import NotFoundError, TransientIOError
from journeylog.models.user import UserDocument
from journeylog.schemas.profile import FALLBACK_USERNAME, Profile


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_profile(self, user_id: str) -> Profile:
        try:
            oid = ObjectId(user_id)
        except (InvalidId, TypeError) as exc:
            raise NotFoundError(f"User {user_id!r} not found") from exc
        try:
            user: Optional[UserDocument] = await self._collection.find_one({"_id": oid}, {"username": 1, "profile_image": 1})
        except PyMongoError as exc:
            raise TransientIOError(f"User lookup failed: {exc}") from exc
        if not user:
            raise NotFoundError(f"User {user_id!r} not found")
        return Profile(
            user_id=user_id,
            username=user.get("username") or FALLBACK_USERNAME,
            avatar=user.get("profile_image") or "",
        )
