"""Record store adapter for blog posts.

The lifecycle and query engines only talk to :class:`PostStore`; the SQL
implementation below is one adapter over it.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from blog_console.core.exceptions import SchemaCompatibilityError, TransientStoreError
from blog_console.models.post import LIFECYCLE_COLUMNS, Post, PostStatus
from blog_console.schemas.post import PostRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreCriteria:
    """Filtered select parameters

    Args:
        status: partition to select
        category: exact category match
        tag: posts whose tags contain this value
        lifecycle_columns: False selects without is_deleted/deleted_at, for
            stores that have not been migrated yet
    """
    status: PostStatus
    category: Optional[str] = None
    tag: Optional[str] = None
    lifecycle_columns: bool = True


class PostStore(ABC):
    """Async interface over the posts table"""

    @abstractmethod
    async def select(self, criteria: StoreCriteria) -> List[PostRecord]:
        ...

    @abstractmethod
    async def get(self, post_id: str) -> Optional[PostRecord]:
        ...

    @abstractmethod
    async def insert(self, values: Dict[str, Any]) -> PostRecord:
        ...

    @abstractmethod
    async def update(self, ids: List[str], values: Dict[str, Any]) -> List[str]:
        """Apply values to every id; returns the ids that existed"""

    @abstractmethod
    async def delete(self, ids: List[str]) -> List[str]:
        """Remove every id; returns the ids that existed"""


def _translate(exc: SQLAlchemyError) -> Exception:
    message = str(exc.orig if isinstance(exc, DBAPIError) else exc)
    if any(column in message for column in LIFECYCLE_COLUMNS):
        return SchemaCompatibilityError(
            "Database is missing the is_deleted/deleted_at columns; run the trash migration first"
        )
    return TransientStoreError(f"Store operation failed: {message}")


class SqlPostStore(PostStore):
    """PostStore over a SQLAlchemy session factory

    Every call opens its own session in the threadpool so concurrent callers
    never share one.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def _run(self, fn, *args):
        try:
            return await run_in_threadpool(fn, *args)
        except SQLAlchemyError as exc:
            logger.warning("post store call %s failed: %s", fn.__name__, exc)
            raise _translate(exc) from exc

    def _select(self, criteria: StoreCriteria) -> List[PostRecord]:
        if criteria.lifecycle_columns:
            columns = list(Post.__table__.c)
        else:
            columns = [c for c in Post.__table__.c if c.name not in LIFECYCLE_COLUMNS]
        query = select(*columns).order_by(Post.created_at.desc())

        if criteria.status == PostStatus.DELETED:
            query = query.where(Post.is_deleted.is_(True))
        else:
            query = query.where(Post.draft.is_(criteria.status == PostStatus.DRAFT))
            if criteria.lifecycle_columns:
                query = query.where(or_(Post.is_deleted.is_(None), Post.is_deleted.is_(False)))
        if criteria.category:
            query = query.where(Post.category == criteria.category)

        with self.session_factory() as session:
            rows = session.execute(query).mappings().all()
        records = [PostRecord.model_validate(dict(row)) for row in rows]
        # JSON containment is not portable across dialects, so tags are matched here
        if criteria.tag:
            records = [r for r in records if criteria.tag in r.tags]
        return records

    async def select(self, criteria: StoreCriteria) -> List[PostRecord]:
        return await self._run(self._select, criteria)

    def _get(self, post_id: str) -> Optional[PostRecord]:
        with self.session_factory() as session:
            post = session.get(Post, post_id)
            return PostRecord.model_validate(post) if post else None

    async def get(self, post_id: str) -> Optional[PostRecord]:
        return await self._run(self._get, post_id)

    def _insert(self, values: Dict[str, Any]) -> PostRecord:
        with self.session_factory() as session:
            post = Post(**values)
            session.add(post)
            session.commit()
            session.refresh(post)
            return PostRecord.model_validate(post)

    async def insert(self, values: Dict[str, Any]) -> PostRecord:
        return await self._run(self._insert, values)

    def _update(self, ids: List[str], values: Dict[str, Any]) -> List[str]:
        with self.session_factory() as session:
            found = list(session.execute(select(Post.id).where(Post.id.in_(ids))).scalars())
            if found:
                session.execute(
                    update(Post).where(Post.id.in_(found)).values(**values),
                    execution_options={"synchronize_session": False},
                )
                session.commit()
            return found

    async def update(self, ids: List[str], values: Dict[str, Any]) -> List[str]:
        return await self._run(self._update, ids, values)

    def _delete(self, ids: List[str]) -> List[str]:
        with self.session_factory() as session:
            found = list(session.execute(select(Post.id).where(Post.id.in_(ids))).scalars())
            if found:
                session.execute(
                    delete(Post).where(Post.id.in_(found)),
                    execution_options={"synchronize_session": False},
                )
                session.commit()
            return found

    async def delete(self, ids: List[str]) -> List[str]:
        return await self._run(self._delete, ids)
