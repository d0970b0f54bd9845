from typing import List
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from blog_console.api.deps import get_query_engine
from blog_console.core.config import Settings, get_settings
from blog_console.services.query import QueryEngine

router = APIRouter()


class NameList(BaseModel):
    data: List[str]


@router.get("/categories", response_model=NameList, summary="List the selectable categories")
def list_categories(settings: Settings = Depends(get_settings)):
    """List categories"""
    return {"data": list(settings.categories)}


@router.get("/tags", response_model=NameList, summary="List tags used by live posts")
async def list_tags(
    engine: QueryEngine = Depends(get_query_engine),
    settings: Settings = Depends(get_settings),
):
    """List tags"""
    taxonomy = await engine.load_taxonomy(settings.categories)
    return {"data": list(taxonomy.tags)}
