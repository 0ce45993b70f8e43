import asyncio
import logging
from typing import List, Optional

from journeylog.errors import InvalidCursorError, NotFoundError, TransientIOError
from journeylog.schemas.journey import DeleteResult, EntryStatus, FeedEntry, FeedTab, FeedView
from journeylog.schemas.pagination import Cursor, FeedFilter

logger = logging.getLogger(__name__)

DELETE_SUCCESS_MESSAGE = "Your journey update has been deleted successfully."
DELETE_FAILURE_MESSAGE = "There was a problem deleting your journey update."


class FeedAssembler:
    """Tab-scoped journey feed for one user.

    Pages are fetched through the pager, enriched with author profiles and
    accumulated in order. Only one load runs at a time. A reset (tab switch,
    refresh after posting) starts a new generation, and any older load that
    is still running has its result discarded.

    Deletes are optimistic. The entry is hidden as soon as the delete is
    issued. If the store rejects it, the entry stays hidden as
    ``delete_failed`` until the next reset reloads authoritative state.
    """

    def __init__(
        self,
        current_user: str,
        pager,
        enricher,
        journey_repo,
        fetch_timeout: Optional[float] = None,
    ) -> None:
        self.current_user = current_user
        self._pager = pager
        self._enricher = enricher
        self._journey_repo = journey_repo
        self._fetch_timeout = fetch_timeout
        self._lock = asyncio.Lock()
        self._generation = 0
        self._tab = FeedTab.MINE
        self._entries: List[FeedEntry] = []
        self._cursor: Optional[Cursor] = None
        self._has_more = False
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def tab(self) -> FeedTab:
        return self._tab

    @property
    def entries(self) -> List[FeedEntry]:
        """Every accumulated entry, including ones hidden by a pending or failed delete."""
        return list(self._entries)

    def _filter_for(self, tab: FeedTab) -> FeedFilter:
        if tab == FeedTab.MINE:
            return FeedFilter(author_id=self.current_user)
        return FeedFilter()

    def _rendered(self) -> List[FeedEntry]:
        items = [entry for entry in self._entries if entry.visible]
        if self._tab == FeedTab.DISCOVER:
            # the discover query is unfiltered; own entries are hidden here, after paging
            items = [entry for entry in items if entry.author_id != self.current_user]
        return items

    @property
    def view(self) -> FeedView:
        items = self._rendered()
        if self._tab == FeedTab.DISCOVER:
            show_load_more = self._has_more and bool(items)
        else:
            show_load_more = self._has_more
        return FeedView(
            tab=self._tab,
            items=items,
            has_more=self._has_more,
            show_load_more=show_load_more,
            loading=self._lock.locked(),
        )

    async def load(self, tab: FeedTab, reset: bool = False) -> FeedView:
        tab = FeedTab(tab)
        if not reset:
            if not self._loaded or tab != self._tab:
                raise InvalidCursorError(f"Cannot page {tab.value!r} without resetting it first")
            if self._lock.locked():
                logger.debug("Load more for %s ignored, a load is already in flight", self.current_user)
                return self.view
            if not self._has_more:
                return self.view
        else:
            self._generation += 1
            self._tab = tab
            self._entries = []
            self._cursor = None
            self._has_more = False
            self._loaded = True

        generation = self._generation
        async with self._lock:
            if generation == self._generation:
                await self._fetch_into(tab, reset, generation)
        return self.view

    async def _fetch_into(self, tab: FeedTab, reset: bool, generation: int) -> None:
        feed_filter = self._filter_for(tab)
        if reset or self._cursor is None:
            fetch = self._pager.first_page(feed_filter)
        else:
            fetch = self._pager.next_page(feed_filter, self._cursor)
        page = await self._with_timeout(fetch)
        authors = await self._enricher.resolve_many(item["user_id"] for item in page.items)
        if generation != self._generation:
            logger.debug("Discarding stale %s page for %s", tab.value, self.current_user)
            return
        self._entries.extend(FeedEntry.from_document(item, authors[item["user_id"]]) for item in page.items)
        self._cursor = page.cursor
        self._has_more = page.has_more

    async def _with_timeout(self, fetch):
        if not self._fetch_timeout:
            return await fetch
        try:
            return await asyncio.wait_for(fetch, self._fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise TransientIOError("Journey page fetch timed out", retryable=True) from exc

    def _find(self, entry_id: str) -> FeedEntry:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        raise NotFoundError(f"Journey {entry_id} is not in the feed")

    async def delete(self, entry_id: str) -> DeleteResult:
        entry = self._find(entry_id)
        if entry.status == EntryStatus.PENDING_DELETE:
            return DeleteResult(entry_id=entry_id, message=DELETE_SUCCESS_MESSAGE)
        entry.status = EntryStatus.PENDING_DELETE
        try:
            await self._journey_repo.delete_by_id(entry_id, self.current_user)
        except (TransientIOError, NotFoundError):
            entry.status = EntryStatus.DELETE_FAILED
            logger.warning("Deleting journey %s failed", entry_id, exc_info=True)
            raise
        except asyncio.CancelledError:
            entry.status = EntryStatus.DELETE_FAILED
            raise
        self._entries = [e for e in self._entries if e.id != entry_id]
        logger.info("Deleted journey %s", entry_id)
        return DeleteResult(entry_id=entry_id, message=DELETE_SUCCESS_MESSAGE)
