import json
import logging
from datetime import datetime, timezone
from typing import Iterable

from journeylog.errors import NotFoundError
from journeylog.models.chat import ChatMessageDocument
from journeylog.schemas.chat import ChatMessage, MessageAck
from journeylog.services.unread import unread_count
from journeylog.utils.realtime_bus import inbox_channel

logger = logging.getLogger(__name__)


class ChatService:

    def __init__(self, chat_repo, bus) -> None:
        self._chat_repo = chat_repo
        self._bus = bus

    async def send_message(self, sender_id: str, receiver_id: str, text: str) -> MessageAck:
        if not text or not text.strip():
            raise ValueError("Message text cannot be empty")
        if sender_id == receiver_id:
            raise ValueError("Cannot message yourself")
        chat = await self._chat_repo.get_or_create_one_to_one(sender_id, receiver_id)
        message: ChatMessageDocument = {
            "sender_id": sender_id,
            "text": text.strip(),
            "read": False,
            "timestamp": datetime.now(timezone.utc),
        }
        await self._chat_repo.append_message(chat["_id"], message)
        await self._notify(chat["_id"], chat["participants"])
        return MessageAck(chat_id=chat["_id"], message=ChatMessage.from_document(message))

    async def mark_read(self, chat_id: str, reader_id: str) -> int:
        chat = await self._chat_repo.get_by_id(chat_id)
        if not chat or reader_id not in (chat.get("participants") or []):
            raise NotFoundError(f"Chat {chat_id} not found")
        messages = [ChatMessage.from_document(m) for m in chat.get("messages") or []]
        count = unread_count(messages, reader_id)
        if count:
            await self._chat_repo.mark_read(chat_id, reader_id)
            await self._notify(chat_id, chat["participants"])
        return count

    async def _notify(self, chat_id: str, participants: Iterable[str]) -> None:
        payload = json.dumps({"type": "chat_updated", "chat_id": chat_id})
        for user_id in participants:
            await self._bus.publish(inbox_channel(user_id), payload)
        logger.debug("Published change for chat %s", chat_id)
