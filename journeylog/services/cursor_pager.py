import logging
from typing import Any, Dict, Optional

from journeylog.errors import InvalidCursorError
from journeylog.schemas.pagination import Cursor, FeedFilter, Page

logger = logging.getLogger(__name__)


class CursorPager:
    """Keyset pagination over journeys, newest first.

    ``has_more`` is true whenever a page comes back full. When the record
    count is an exact multiple of the page size, that costs one extra, empty
    fetch before exhaustion is reported.
    """

    def __init__(self, journey_repo, page_size: int = 10) -> None:
        self._journey_repo = journey_repo
        self.page_size = page_size

    async def first_page(self, feed_filter: FeedFilter, page_size: Optional[int] = None) -> Page[Dict[str, Any]]:
        return await self._fetch(feed_filter, None, page_size or self.page_size)

    async def next_page(
        self,
        feed_filter: FeedFilter,
        cursor: Cursor,
        page_size: Optional[int] = None,
    ) -> Page[Dict[str, Any]]:
        if cursor.scope != feed_filter.scope:
            raise InvalidCursorError(f"Cursor for {cursor.scope!r} used with {feed_filter.scope!r}")
        return await self._fetch(feed_filter, cursor, page_size or self.page_size)

    async def _fetch(self, feed_filter: FeedFilter, after: Optional[Cursor], page_size: int) -> Page[Dict[str, Any]]:
        items, next_cursor = await self._journey_repo.query_entries(feed_filter, limit=page_size, after=after)
        has_more = len(items) == page_size
        logger.debug("Fetched %d journeys for %s (has_more=%s)", len(items), feed_filter.scope, has_more)
        return Page(items=items, cursor=next_cursor or after, has_more=has_more)
