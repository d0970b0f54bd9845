from datetime import datetime, UTC
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from blog_console.models.post import PostStatus, derive_status


class PostRecord(BaseModel):
    """A post as returned by the record store"""
    id: str
    title: str = ""
    content: str = ""
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    draft: bool = True
    is_deleted: Optional[bool] = None
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    views: int = 0
    comments_count: int = 0

    @field_validator("title", "content", mode="before")
    @classmethod
    def _null_text(cls, value):
        return "" if value is None else value

    @field_validator("tags", "images", mode="before")
    @classmethod
    def _null_list(cls, value):
        return [] if value is None else value

    @field_validator("views", "comments_count", mode="before")
    @classmethod
    def _null_count(cls, value):
        return 0 if value is None else value

    @field_validator("deleted_at", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive timestamps; they are stored as UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @computed_field
    @property
    def status(self) -> PostStatus:
        return derive_status(self.draft, self.is_deleted)

    class Config:
        from_attributes = True


class PostCreate(BaseModel):
    """创建文章请求模型"""
    title: str = Field(default="", max_length=200)
    content: str = ""
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list, description="标签列表")
    images: List[str] = Field(default_factory=list, description="正文图片地址")
    draft: bool = Field(default=True, description="是否保存为草稿")


class PostUpdate(BaseModel):
    """更新文章请求模型，只包含允许修改的字段"""
    title: Optional[str] = Field(default=None, max_length=200)
    content: Optional[str] = None
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    draft: Optional[bool] = None
    images: Optional[List[str]] = None
    is_deleted: Optional[bool] = None
    deleted_at: Optional[datetime] = None


class PostEnvelope(BaseModel):
    data: PostRecord


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class PostListResponse(BaseModel):
    """文章列表响应模型"""
    data: List[PostRecord]
    meta: PageMeta


class BatchRequest(BaseModel):
    """批量操作请求模型"""
    ids: List[str] = Field(default_factory=list, description="文章ID列表")
    updates: Optional[PostUpdate] = None


class BatchFailureResponse(BaseModel):
    id: str
    code: str
    detail: str


class BatchResponse(BaseModel):
    """批量操作结果"""
    success: bool
    outcome: str
    count: int
    succeeded: List[str]
    failed: List[BatchFailureResponse]


class MessageResponse(BaseModel):
    success: bool
    message: str
