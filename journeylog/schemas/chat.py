from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from journeylog.schemas.pagination import to_utc
from journeylog.schemas.profile import Profile

EMPTY_CONVERSATION_HINT = "Start a conversation"


class ChatMessage(BaseModel):

    model_config = ConfigDict(frozen=True)

    sender_id: str
    text: str = ""
    read: bool = False
    timestamp: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ChatMessage":
        ts = doc.get("timestamp")
        return cls(
            sender_id=doc.get("sender_id", ""),
            text=doc.get("text") or "",
            read=bool(doc.get("read", False)),
            timestamp=to_utc(ts) if ts else None,
        )


class ConversationSummary(BaseModel):

    model_config = ConfigDict(frozen=True)

    id: str
    participants: Tuple[str, ...]
    messages: Tuple[ChatMessage, ...] = ()
    last_message: Optional[ChatMessage] = None
    preview: str = EMPTY_CONVERSATION_HINT
    updated_at: Optional[datetime] = None
    updated_label: str = ""
    other_user: Profile
    unread_count: int = 0


class InboxSnapshot(BaseModel):

    model_config = ConfigDict(frozen=True)

    conversations: Tuple[ConversationSummary, ...] = ()
    total_unread: int = 0
    # position of the upstream snapshot this projection was built from
    sequence: int = 0


class SendMessageRequest(BaseModel):

    text: str = Field(min_length=1, max_length=4000)


class MessageAck(BaseModel):

    chat_id: str
    message: ChatMessage
