"""List views over the published, draft and trash partitions.

Fetching goes through the record store; filtering, sorting and paging of an
already fetched partition are plain synchronous functions shared by all
three views.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, UTC
from typing import Dict, Iterable, List, Optional, Sequence
import logging
import math

from blog_console.core.exceptions import SchemaCompatibilityError, ValidationError
from blog_console.db.store import PostStore, StoreCriteria
from blog_console.models.post import PostStatus
from blog_console.schemas.post import PostRecord

logger = logging.getLogger(__name__)

ASC = "asc"
DESC = "desc"

NUMERIC = "numeric"
DATE = "date"
STRING = "string"

FIELD_TYPES: Dict[str, str] = {
    "views": NUMERIC,
    "comments_count": NUMERIC,
    "created_at": DATE,
    "deleted_at": DATE,
    "updated_at": DATE,
}
SORTABLE_FIELDS = frozenset(PostRecord.model_fields) | {"status"}

_MIN_TIME = datetime.min.replace(tzinfo=UTC)
_END_OF_DAY = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class SortKey:
    key: str
    direction: str = DESC

    def __post_init__(self):
        if self.key not in SORTABLE_FIELDS:
            raise ValidationError(f"Cannot sort by '{self.key}'")
        if self.direction not in (ASC, DESC):
            raise ValidationError(f"Sort direction must be '{ASC}' or '{DESC}'")


DEFAULT_SORT = (SortKey("created_at", DESC),)


@dataclass(frozen=True)
class FilterSpec:
    """Filter fields; empty values mean no constraint"""
    title: str = ""
    category: str = ""
    tag: str = ""
    date_start: Optional[date] = None
    date_end: Optional[date] = None

    def is_empty(self) -> bool:
        return not (self.title.strip() or self.category or self.tag
                    or self.date_start or self.date_end)


@dataclass
class Page:
    items: List[PostRecord]
    total_count: int
    total_pages: int
    page: int
    page_size: int


@dataclass(frozen=True)
class Taxonomy:
    """Read-only snapshot of the selectable categories and tags"""
    categories: Sequence[str] = field(default_factory=tuple)
    tags: Sequence[str] = field(default_factory=tuple)


def date_field_for(status: PostStatus) -> str:
    return "deleted_at" if status == PostStatus.DELETED else "created_at"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


def apply_filters(records: Iterable[PostRecord], filters: FilterSpec,
                  status: PostStatus) -> List[PostRecord]:
    """Title substring, category, tag and inclusive date range"""
    result = list(records)
    if filters.title.strip():
        needle = filters.title.strip().lower()
        result = [r for r in result if needle in (r.title or "").lower()]
    if filters.category:
        result = [r for r in result if r.category == filters.category]
    if filters.tag:
        result = [r for r in result if filters.tag in r.tags]

    date_field = date_field_for(status)
    if filters.date_start:
        start = datetime.combine(filters.date_start, time.min, tzinfo=UTC)
        result = [r for r in result
                  if _as_utc(getattr(r, date_field)) is not None and _as_utc(getattr(r, date_field)) >= start]
    if filters.date_end:
        # the whole end day is included
        end = datetime.combine(filters.date_end, _END_OF_DAY, tzinfo=UTC)
        result = [r for r in result
                  if _as_utc(getattr(r, date_field)) is not None and _as_utc(getattr(r, date_field)) <= end]
    return result


def _sort_value(record: PostRecord, key: str):
    value = getattr(record, key, None)
    kind = FIELD_TYPES.get(key, STRING)
    if kind == NUMERIC:
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0
    if kind == DATE:
        return _as_utc(value) or _MIN_TIME
    if isinstance(value, (list, tuple)):
        value = ",".join(str(v) for v in value)
    elif hasattr(value, "value"):
        value = value.value
    return str(value or "").lower()


def sort_records(records: Iterable[PostRecord], sort: Sequence[SortKey]) -> List[PostRecord]:
    """Stable multi-key sort: the first key is primary, later keys break ties"""
    result = list(records)
    # stable sorts applied from the least significant key up
    for sort_key in reversed(list(sort)):
        result.sort(key=lambda r, k=sort_key.key: _sort_value(r, k), reverse=sort_key.direction == DESC)
    return result


def toggle_sort(sort: Sequence[SortKey], key: str, multi: bool = False) -> List[SortKey]:
    """Column-click policy

    A plain click replaces the sort with ``key`` alone, flipping its
    direction if it was already sorted and starting at desc otherwise. A
    modified (shift) click flips ``key`` in place, or appends it as desc.
    """
    existing = next((s for s in sort if s.key == key), None)
    flipped = SortKey(key, ASC if existing and existing.direction == DESC else DESC)
    if not multi:
        return [flipped]
    if existing is None:
        return [*sort, SortKey(key, DESC)]
    return [flipped if s.key == key else s for s in sort]


def parse_sort(value: Optional[str]) -> List[SortKey]:
    """Parse ``"views:desc,created_at:asc"``; a bare key means desc"""
    if not value:
        return list(DEFAULT_SORT)
    keys = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        key, _, direction = part.partition(":")
        keys.append(SortKey(key.strip(), (direction.strip() or DESC).lower()))
    return keys or list(DEFAULT_SORT)


def paginate(records: Sequence[PostRecord], page: int, page_size: int) -> Page:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if page_size < 1:
        raise ValidationError("page size must be 1 or greater")
    total = len(records)
    offset = (page - 1) * page_size
    return Page(
        items=list(records[offset:offset + page_size]),
        total_count=total,
        total_pages=max(1, math.ceil(total / page_size)),
        page=page,
        page_size=page_size,
    )


def build_view(records: Iterable[PostRecord], sort: Optional[Sequence[SortKey]],
               page: int, page_size: int) -> Page:
    return paginate(sort_records(records, sort or DEFAULT_SORT), page, page_size)


class QueryEngine:
    """Status-scoped list views backed by a PostStore"""

    def __init__(self, store: PostStore):
        self.store = store

    async def _select(self, status: PostStatus, filters: FilterSpec) -> List[PostRecord]:
        criteria = StoreCriteria(status=status, category=filters.category or None, tag=filters.tag or None)
        try:
            return await self.store.select(criteria)
        except SchemaCompatibilityError as exc:
            if status == PostStatus.DELETED:
                logger.warning("trash unavailable, returning empty partition: %s", exc.message)
                return []
            logger.warning("retrying %s listing without lifecycle columns: %s", status.value, exc.message)
            return await self.store.select(replace(criteria, lifecycle_columns=False))

    async def get(self, post_id: str) -> Optional[PostRecord]:
        return await self.store.get(post_id)

    async def fetch_partition(self, status: PostStatus, filters: Optional[FilterSpec] = None) -> List[PostRecord]:
        filters = filters or FilterSpec()
        records = await self._select(status, filters)
        return apply_filters(records, filters, status)

    async def list_view(self, status: PostStatus, filters: Optional[FilterSpec] = None,
                        sort: Optional[Sequence[SortKey]] = None, page: int = 1,
                        page_size: int = 10) -> Page:
        if page < 1 or page_size < 1:
            raise ValidationError("page and page size must be 1 or greater")
        records = await self.fetch_partition(status, filters)
        return build_view(records, sort, page, page_size)

    async def search(self, status: PostStatus, filters: FilterSpec,
                     sort: Optional[Sequence[SortKey]] = None, page: int = 1,
                     page_size: int = 10) -> Page:
        """Explicit search; an empty filter is refused before touching the store"""
        if filters.is_empty():
            raise ValidationError("Filter conditions cannot be empty")
        return await self.list_view(status, filters, sort, page, page_size)

    async def load_taxonomy(self, categories: Sequence[str]) -> Taxonomy:
        tags: Dict[str, None] = {}
        for status in (PostStatus.PUBLISHED, PostStatus.DRAFT):
            for record in await self._select(status, FilterSpec()):
                for tag in record.tags:
                    tags.setdefault(tag, None)
        return Taxonomy(categories=tuple(categories), tags=tuple(sorted(tags)))
