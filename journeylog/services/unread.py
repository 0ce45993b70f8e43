"""Read/unread classification for chat messages.

Everything here is a pure function of its arguments. The inbox recomputes
unread counts from the full message list on every change instead of
patching a stored counter.
"""

from typing import Iterable

from journeylog.schemas.chat import ChatMessage, ConversationSummary


def is_unread(message: ChatMessage, current_user: str) -> bool:
    return message.sender_id != current_user and not message.read


def unread_count(messages: Iterable[ChatMessage], current_user: str) -> int:
    return sum(1 for message in messages if is_unread(message, current_user))


def total_unread(conversations: Iterable[ConversationSummary]) -> int:
    """Badge count across the whole inbox."""
    return sum(conversation.unread_count for conversation in conversations)
