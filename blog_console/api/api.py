from fastapi import APIRouter
from blog_console.api.endpoints import (
    auth,
    blog,
    taxonomy
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(blog.router, prefix="/blog", tags=["blog"])
api_router.include_router(taxonomy.router, tags=["taxonomy"])
