"""Per-view state of the admin console list pages.

A ViewSession keeps one partition (published, draft or trash) in memory the
way the console's list pages do: filter edits are coalesced by a trailing
debounce, responses that belong to a superseded request are dropped, and
mutations reconcile the local list instead of refetching it.
"""
from dataclasses import replace
from typing import Iterable, List, Optional, Set
import asyncio
import logging

from blog_console.core.config import Settings
from blog_console.core.exceptions import AppError, ValidationError
from blog_console.models.post import PostStatus
from blog_console.schemas.post import PostRecord
from blog_console.services.lifecycle import BatchResult
from blog_console.services.query import (
    DEFAULT_SORT,
    FilterSpec,
    Page,
    QueryEngine,
    SortKey,
    Taxonomy,
    build_view,
    toggle_sort,
)

logger = logging.getLogger(__name__)

NO_MATCHES = "No matching posts"


class ViewSession:
    def __init__(self, engine: QueryEngine, status: PostStatus,
                 taxonomy: Optional[Taxonomy] = None, page_size: int = 10,
                 debounce: float = 0.3):
        self.engine = engine
        self.status = status
        self.taxonomy = taxonomy or Taxonomy()
        self.page_size = page_size
        self.debounce = debounce

        self.filters = FilterSpec()
        self.sort: List[SortKey] = list(DEFAULT_SORT)
        self.current_page = 1
        self.records: List[PostRecord] = []
        self.selected: Set[str] = set()
        self.loading = False
        self.last_error: Optional[AppError] = None
        self.notice: Optional[str] = None

        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, engine: QueryEngine, status: PostStatus, settings: Settings,
                      taxonomy: Optional[Taxonomy] = None) -> "ViewSession":
        return cls(engine, status, taxonomy, page_size=settings.default_page_size,
                   debounce=settings.search_debounce_seconds)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_pending(self) -> bool:
        return self._timer is not None or bool(self._inflight)

    async def refresh(self, initial: bool = False) -> bool:
        """Fetch now; returns False when the response was stale or failed"""
        self._generation += 1
        generation = self._generation
        filters = self.filters
        self.loading = True
        try:
            records = await self.engine.fetch_partition(self.status, filters)
        except AppError as exc:
            if generation == self._generation:
                self.last_error = exc
                self.loading = False
            logger.warning("fetching %s view failed: %s", self.status.value, exc.message)
            return False

        if generation != self._generation:
            logger.debug("discarding stale %s response (generation %d < %d)",
                         self.status.value, generation, self._generation)
            return False

        self.records = records
        self.last_error = None
        self.loading = False
        self.notice = NO_MATCHES if not initial and not records else None
        self.selected &= {r.id for r in records}
        self._clamp_page()
        return True

    def schedule_refresh(self, delay: Optional[float] = None) -> None:
        """Trailing debounce: a newer call replaces the pending timer"""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce if delay is None else delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def settle(self) -> None:
        """Wait until no debounced or in-flight fetch remains"""
        while self.has_pending:
            if self._inflight:
                await asyncio.gather(*list(self._inflight))
            else:
                await asyncio.sleep(self.debounce / 4 or 0.001)

    def update_filters(self, **changes) -> None:
        self.filters = replace(self.filters, **changes)
        self.current_page = 1
        self.schedule_refresh()

    def search(self) -> None:
        """Explicit search action; an empty filter never reaches the store"""
        if self.filters.is_empty():
            raise ValidationError("Filter conditions cannot be empty")
        self.current_page = 1
        self.schedule_refresh()

    async def reset(self) -> bool:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.filters = FilterSpec()
        self.current_page = 1
        return await self.refresh(initial=True)

    def toggle_sort(self, key: str, multi: bool = False) -> List[SortKey]:
        self.sort = toggle_sort(self.sort, key, multi)
        return self.sort

    def page(self) -> Page:
        return build_view(self.records, self.sort, self.current_page, self.page_size)

    @property
    def total_pages(self) -> int:
        return self.page().total_pages

    def set_page(self, page: int) -> None:
        if page < 1:
            raise ValidationError("page must be 1 or greater")
        self.current_page = page
        self._clamp_page()

    def _clamp_page(self) -> None:
        self.current_page = min(self.current_page, self.total_pages)

    def toggle_select(self, post_id: str) -> None:
        if post_id in self.selected:
            self.selected.discard(post_id)
        else:
            self.selected.add(post_id)

    def toggle_select_all(self) -> None:
        """Select every post on the current page, or clear if all are selected"""
        page_ids = {r.id for r in self.page().items}
        if page_ids and page_ids <= self.selected:
            self.selected -= page_ids
        else:
            self.selected |= page_ids

    def discard(self, ids: Iterable[str]) -> None:
        """Drop posts that left this partition without refetching"""
        gone = set(ids)
        self.records = [r for r in self.records if r.id not in gone]
        self.selected -= gone
        self._clamp_page()

    def reconcile(self, result: BatchResult) -> None:
        """Remove the succeeded ids of a batch; failed ones stay listed"""
        self.discard(result.succeeded)
