from datetime import datetime
from typing import List, TypedDict


class ChatMessageDocument(TypedDict, total=False):
    sender_id: str
    text: str
    read: bool
    timestamp: datetime


class ChatDocument(TypedDict, total=False):
    _id: str
    # exactly two user ids, stored sorted
    participants: List[str]
    messages: List[ChatMessageDocument]
    created_at: datetime
    updated_at: datetime
