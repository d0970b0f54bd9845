from datetime import datetime, UTC
from enum import Enum as PyEnum
from typing import List, Optional
import uuid

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from blog_console.db.database import Base


class PostStatus(str, PyEnum):
    """Post status, always derived from (draft, is_deleted)"""
    PUBLISHED = "published"  # visible on the public site
    DRAFT = "draft"          # only visible in the console
    DELETED = "deleted"      # in the trash, can be restored


def derive_status(draft: Optional[bool], is_deleted: Optional[bool]) -> PostStatus:
    """Map the two lifecycle booleans to a status; a null is_deleted counts as false"""
    if is_deleted:
        return PostStatus.DELETED
    if draft:
        return PostStatus.DRAFT
    return PostStatus.PUBLISHED


# columns that only exist once the trash migration has run
LIFECYCLE_COLUMNS = ("is_deleted", "deleted_at")


class Post(Base):
    """Blog post model"""
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cover_image: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    images: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def status(self) -> PostStatus:
        return derive_status(self.draft, self.is_deleted)
