from datetime import datetime, timezone
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


def to_utc(value: datetime) -> datetime:
    """Mongo hands back naive UTC datetimes unless the client is tz-aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FeedFilter(BaseModel):
    """Server-side filter for a journey query. No author means every author."""

    model_config = ConfigDict(frozen=True)

    author_id: Optional[str] = None

    @property
    def scope(self) -> str:
        return f"author:{self.author_id}" if self.author_id else "all"


class Cursor(BaseModel):
    """Position after the last entry of a page, bound to the filter scope it came from."""

    model_config = ConfigDict(frozen=True)

    scope: str
    created_at: datetime
    entry_id: str


class Page(BaseModel, Generic[T]):

    items: List[T]
    cursor: Optional[Cursor] = None
    has_more: bool = False
