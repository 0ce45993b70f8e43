from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from journeylog.schemas.pagination import to_utc
from journeylog.schemas.profile import Profile


class FeedTab(str, Enum):

    MINE = "mine"
    DISCOVER = "discover"


class EntryStatus(str, Enum):

    CONFIRMED = "confirmed"
    PENDING_DELETE = "pending_delete"
    DELETE_FAILED = "delete_failed"


class FeedEntry(BaseModel):

    id: str
    author_id: str
    title: str = ""
    content: str = ""
    image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    likes: int = 0
    created_at: datetime
    author: Profile
    status: EntryStatus = EntryStatus.CONFIRMED

    @classmethod
    def from_document(cls, doc: Dict[str, Any], author: Profile) -> "FeedEntry":
        """Build an entry from a raw journey document, defaulting optional fields."""
        return cls(
            id=str(doc["_id"]),
            author_id=doc["user_id"],
            title=doc.get("title") or "",
            content=doc.get("content") or "",
            image_url=doc.get("image_url") or None,
            tags=list(dict.fromkeys(doc.get("tags") or [])),
            likes=max(int(doc.get("likes") or 0), 0),
            created_at=to_utc(doc["created_at"]),
            author=author,
        )

    @property
    def visible(self) -> bool:
        return self.status == EntryStatus.CONFIRMED


class FeedView(BaseModel):

    tab: FeedTab
    items: List[FeedEntry] = Field(default_factory=list)
    has_more: bool = False
    # discover can report has_more while rendering nothing from the fetched page
    show_load_more: bool = False
    loading: bool = False


class DeleteResult(BaseModel):

    entry_id: str
    message: str
