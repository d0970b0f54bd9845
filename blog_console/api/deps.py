from fastapi import Depends
from blog_console.core.config import Settings, get_settings
from blog_console.core.security import get_current_user
from blog_console.db.database import get_session_maker
from blog_console.db.store import PostStore, SqlPostStore
from blog_console.models.user import User
from blog_console.services.lifecycle import LifecycleEngine
from blog_console.services.query import QueryEngine


def get_post_store() -> PostStore:
    return SqlPostStore(get_session_maker())


def get_query_engine(store: PostStore = Depends(get_post_store)) -> QueryEngine:
    return QueryEngine(store)


def get_lifecycle_engine(
    current_user: User = Depends(get_current_user),
    store: PostStore = Depends(get_post_store),
    settings: Settings = Depends(get_settings),
) -> LifecycleEngine:
    return LifecycleEngine(store, current_user, settings.categories)
