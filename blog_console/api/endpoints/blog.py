from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import Response

from blog_console.api.deps import get_lifecycle_engine, get_query_engine
from blog_console.core.config import Settings, get_settings
from blog_console.core.exceptions import AuthError, NotFoundError, ValidationError
from blog_console.core.security import get_current_user, get_optional_current_user
from blog_console.models.post import PostStatus
from blog_console.models.user import User
from blog_console.schemas.post import (
    BatchRequest,
    BatchResponse,
    MessageResponse,
    PageMeta,
    PostCreate,
    PostEnvelope,
    PostListResponse,
    PostUpdate,
)
from blog_console.services.export import export_csv, export_filename
from blog_console.services.lifecycle import BatchResult, LifecycleEngine
from blog_console.services.query import FilterSpec, QueryEngine, parse_sort, sort_records

router = APIRouter()


def _batch_response(result: BatchResult) -> dict:
    return {
        "success": result.success_count > 0,
        "outcome": result.outcome,
        "count": result.success_count,
        "succeeded": result.succeeded,
        "failed": [{"id": f.id, "code": f.code, "detail": f.detail} for f in result.failed],
    }


@router.get("", response_model=PostListResponse, summary="List posts of one status")
async def list_posts(
    post_status: PostStatus = Query(PostStatus.PUBLISHED, alias="status"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    category: Optional[str] = None,
    tag: Optional[str] = None,
    title: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    sort: Optional[str] = None,
    current_user: User | None = Depends(get_optional_current_user),
    engine: QueryEngine = Depends(get_query_engine),
    settings: Settings = Depends(get_settings),
):
    """List posts; anonymous callers only see the published partition"""
    if post_status != PostStatus.PUBLISHED and current_user is None:
        raise AuthError("Not authenticated")
    limit = limit or settings.default_page_size
    if limit > settings.max_page_size:
        raise ValidationError(f"limit must not exceed {settings.max_page_size}")

    filters = FilterSpec(
        title=title or "",
        category=category or "",
        tag=tag or "",
        date_start=start,
        date_end=end,
    )
    result = await engine.list_view(post_status, filters, parse_sort(sort), page, limit)
    return {
        "data": result.items,
        "meta": PageMeta(total=result.total_count, page=result.page, limit=limit, totalPages=result.total_pages),
    }


@router.get("/export", summary="Export one status partition as CSV")
async def export_posts(
    post_status: PostStatus = Query(PostStatus.PUBLISHED, alias="status"),
    sort: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    engine: QueryEngine = Depends(get_query_engine),
):
    """Export posts as CSV"""
    records = sort_records(await engine.fetch_partition(post_status), parse_sort(sort))
    return Response(
        content=export_csv(records),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.post("", response_model=PostEnvelope, status_code=status.HTTP_201_CREATED, summary="Create a new post")
async def create_post(
    post: PostCreate,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Create a post, as a draft unless draft is false"""
    return {"data": await engine.create(post.model_dump())}


@router.patch("", response_model=BatchResponse, summary="Batch update posts")
async def batch_update_posts(
    batch: BatchRequest,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Apply the same allow-listed changes to every id"""
    if not batch.ids:
        raise ValidationError("A non-empty list of post ids is required")
    changes = batch.updates.model_dump(exclude_unset=True) if batch.updates else {}
    if not changes:
        raise ValidationError("No updates provided")
    return _batch_response(await engine.batch_update(batch.ids, changes))


@router.delete("", response_model=BatchResponse, summary="Batch move to trash or permanently delete")
async def batch_delete_posts(
    batch: BatchRequest = Body(...),
    permanent: bool = False,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Move posts to the trash, or remove trashed posts with permanent=true"""
    if permanent:
        result = await engine.batch_permanently_delete(batch.ids)
    else:
        result = await engine.batch_soft_delete(batch.ids)
    return _batch_response(result)


@router.get("/{post_id}", response_model=PostEnvelope, summary="Get a specific post")
async def get_post(
    post_id: str,
    current_user: User | None = Depends(get_optional_current_user),
    engine: QueryEngine = Depends(get_query_engine),
):
    """Get a post that is not in the trash"""
    record = await engine.get(post_id)
    if record is None or record.status == PostStatus.DELETED:
        raise NotFoundError()
    if record.status == PostStatus.DRAFT and current_user is None:
        raise AuthError("Not authenticated")
    return {"data": record}


@router.put("/{post_id}", response_model=PostEnvelope, summary="Update a post")
async def replace_post(
    post_id: str,
    post_update: PostUpdate,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Update a post"""
    return {"data": await engine.update(post_id, post_update.model_dump(exclude_unset=True))}


@router.patch("/{post_id}", response_model=PostEnvelope, summary="Partially update a post")
async def patch_post(
    post_id: str,
    post_update: PostUpdate,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Partially update a post"""
    return {"data": await engine.update(post_id, post_update.model_dump(exclude_unset=True))}


@router.delete("/{post_id}", response_model=MessageResponse, summary="Trash, restore or permanently delete a post")
async def delete_post(
    post_id: str,
    permanent: bool = False,
    restore: bool = False,
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Move a post to the trash (default), restore it, or delete it permanently"""
    if permanent and restore:
        raise ValidationError("permanent and restore cannot be combined")
    if restore:
        await engine.restore(post_id)
        return {"success": True, "message": "Restored"}
    if permanent:
        await engine.permanently_delete(post_id)
        return {"success": True, "message": "Permanently deleted"}
    await engine.soft_delete(post_id)
    return {"success": True, "message": "Moved to trash"}
