"""Post lifecycle: the named transitions between published, draft and trash.

    draft --publish--> published --soft_delete--> deleted
      ^                    |                         |
      +---- unpublish -----+      restore -----------+--> previous draft/published
                                  permanently_delete --> removed

Status is never written directly. Each transition writes the ``draft`` or
``is_deleted``/``deleted_at`` columns in a single store update.
"""
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence
import asyncio
import logging

from blog_console.core.exceptions import (
    AppError,
    AuthError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from blog_console.db.store import PostStore
from blog_console.models.post import PostStatus
from blog_console.schemas.post import PostRecord

logger = logging.getLogger(__name__)

# fields PUT/PATCH may touch; everything else is ignored
UPDATABLE_FIELDS = (
    "title", "content", "excerpt", "cover_image",
    "category", "tags", "draft", "images", "is_deleted", "deleted_at",
)
CREATABLE_FIELDS = ("title", "content", "excerpt", "cover_image", "category", "tags", "draft", "images")
NON_NULLABLE_FIELDS = ("title", "content", "tags", "images", "draft")


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def validate_post_fields(title: Optional[str], content: Optional[str], draft: bool,
                         category: Optional[str], categories: Sequence[str]) -> None:
    """Raise ValidationError unless the fields may be stored with this draft flag"""
    if category and category not in categories:
        raise ValidationError(f"Invalid category. Must be one of: {', '.join(categories)}")
    if draft:
        if _blank(title) and _blank(content):
            raise ValidationError("A draft needs a title or some content")
    elif _blank(title) or _blank(content):
        raise ValidationError("Title and content are required to publish")


@dataclass
class BatchFailure:
    id: str
    code: str
    detail: str


@dataclass
class BatchResult:
    """Per-item outcome of a batch transition"""
    succeeded: List[str] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def outcome(self) -> str:
        if not self.failed:
            return "succeeded"
        return "partial" if self.succeeded else "failed"

    @property
    def failed_ids(self) -> List[str]:
        return [f.id for f in self.failed]


class LifecycleEngine:
    """Applies lifecycle transitions for an authenticated caller"""

    def __init__(self, store: PostStore, actor: Any, categories: Sequence[str]):
        if actor is None:
            raise AuthError("Not authenticated")
        self.store = store
        self.actor = actor
        self.categories = tuple(categories)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    async def get(self, post_id: str) -> PostRecord:
        record = await self.store.get(post_id)
        if record is None:
            raise NotFoundError(f"Post {post_id} not found")
        return record

    async def _write(self, post_id: str, values: Dict[str, Any]) -> PostRecord:
        values = {**values, "updated_at": self._now()}
        if not await self.store.update([post_id], values):
            raise NotFoundError(f"Post {post_id} not found")
        return await self.get(post_id)

    async def create(self, values: Dict[str, Any]) -> PostRecord:
        data = {k: v for k, v in values.items() if k in CREATABLE_FIELDS}
        data.setdefault("draft", True)
        validate_post_fields(data.get("title"), data.get("content"), data["draft"],
                             data.get("category"), self.categories)
        now = self._now()
        data.update(is_deleted=False, deleted_at=None, created_at=now, updated_at=now)
        record = await self.store.insert(data)
        logger.info("post %s created as %s", record.id, record.status.value)
        return record

    async def publish(self, post_id: str) -> PostRecord:
        record = await self.get(post_id)
        if record.status == PostStatus.DELETED:
            raise InvalidTransitionError("Cannot publish a post in the trash; restore it first")
        if record.status == PostStatus.PUBLISHED:
            return record
        validate_post_fields(record.title, record.content, False, None, self.categories)
        record = await self._write(post_id, {"draft": False})
        logger.info("post %s published", post_id)
        return record

    async def unpublish(self, post_id: str) -> PostRecord:
        record = await self.get(post_id)
        if record.status == PostStatus.DELETED:
            raise InvalidTransitionError("Cannot move a post in the trash to drafts; restore it first")
        if record.status == PostStatus.DRAFT:
            return record
        record = await self._write(post_id, {"draft": True})
        logger.info("post %s moved to drafts", post_id)
        return record

    async def soft_delete(self, post_id: str) -> PostRecord:
        record = await self.get(post_id)
        if record.status == PostStatus.DELETED:
            return record
        record = await self._write(post_id, {"is_deleted": True, "deleted_at": self._now()})
        logger.info("post %s moved to trash", post_id)
        return record

    async def restore(self, post_id: str) -> PostRecord:
        record = await self.get(post_id)
        if record.status != PostStatus.DELETED:
            return record
        record = await self._write(post_id, {"is_deleted": False, "deleted_at": None})
        logger.info("post %s restored as %s", post_id, record.status.value)
        return record

    async def permanently_delete(self, post_id: str) -> None:
        record = await self.get(post_id)
        if record.status != PostStatus.DELETED:
            raise InvalidTransitionError("Only posts in the trash can be permanently deleted")
        if not await self.store.delete([post_id]):
            raise NotFoundError(f"Post {post_id} not found")
        logger.info("post %s permanently deleted", post_id)

    async def update(self, post_id: str, changes: Dict[str, Any]) -> PostRecord:
        """Edit allow-listed fields; is_deleted goes through the trash coupling"""
        record = await self.get(post_id)
        values = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}

        # deleted_at only ever moves together with is_deleted
        values.pop("deleted_at", None)
        if values.get("is_deleted") is None:
            values.pop("is_deleted", None)
        else:
            if values["is_deleted"]:
                values["is_deleted"] = True
                if record.status == PostStatus.DELETED:
                    values["deleted_at"] = record.deleted_at
                else:
                    values["deleted_at"] = self._now()
            else:
                values["is_deleted"] = False
                values["deleted_at"] = None

        for key in NON_NULLABLE_FIELDS:
            if key in values and values[key] is None:
                values.pop(key)

        # a trashed post keeps its draft flag until it is restored
        if (record.status == PostStatus.DELETED and values.get("is_deleted") is not False
                and "draft" in values and values["draft"] != record.draft):
            raise InvalidTransitionError("Cannot change the draft flag of a post in the trash; restore it first")
        merged = record.model_copy(update=values)
        validate_post_fields(merged.title, merged.content, merged.draft,
                             values.get("category"), self.categories)

        if not values:
            return record
        record = await self._write(post_id, values)
        logger.info("post %s updated (%s)", post_id, ", ".join(sorted(values)))
        return record

    async def _fan_out(self, name: str, ids: Iterable[str],
                       op: Callable[[str], Awaitable[Any]]) -> BatchResult:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            raise ValidationError("A non-empty list of post ids is required")

        async def attempt(post_id: str) -> Optional[BatchFailure]:
            try:
                await op(post_id)
            except AppError as exc:
                logger.warning("batch item %s failed: %s", post_id, exc.message)
                return BatchFailure(id=post_id, code=exc.code, detail=exc.message)
            return None

        outcomes = await asyncio.gather(*(attempt(post_id) for post_id in unique_ids))
        result = BatchResult()
        for post_id, failure in zip(unique_ids, outcomes):
            if failure is None:
                result.succeeded.append(post_id)
            else:
                result.failed.append(failure)
        logger.info("batch %s: %d succeeded, %d failed", name,
                    result.success_count, len(result.failed))
        return result

    async def batch_publish(self, ids: Iterable[str]) -> BatchResult:
        return await self._fan_out("publish", ids, self.publish)

    async def batch_unpublish(self, ids: Iterable[str]) -> BatchResult:
        return await self._fan_out("unpublish", ids, self.unpublish)

    async def batch_soft_delete(self, ids: Iterable[str]) -> BatchResult:
        return await self._fan_out("soft_delete", ids, self.soft_delete)

    async def batch_restore(self, ids: Iterable[str]) -> BatchResult:
        return await self._fan_out("restore", ids, self.restore)

    async def batch_permanently_delete(self, ids: Iterable[str]) -> BatchResult:
        return await self._fan_out("permanently_delete", ids, self.permanently_delete)

    async def batch_update(self, ids: Iterable[str], changes: Dict[str, Any]) -> BatchResult:
        async def update_one(post_id: str) -> PostRecord:
            return await self.update(post_id, changes)

        return await self._fan_out("update", ids, update_one)
