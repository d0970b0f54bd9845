from dataclasses import dataclass, field
from functools import lru_cache
from typing import List
import logging
import os

# 默认文章分类
DEFAULT_CATEGORIES = ["生活边角料", "情绪随笔", "干货分享", "成长复盘"]


def _split_csv(value: str | None, default: List[str]) -> List[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """应用配置（只读快照）"""
    app_env: str = "development"
    database_url: str | None = None
    secret_key: str = "your-secret-key"  # don't use this in production
    access_token_expire_minutes: int = 60 * 24
    categories: List[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    default_page_size: int = 10
    max_page_size: int = 100
    search_debounce_seconds: float = 0.3
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """从环境变量读取配置"""
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        database_url=os.getenv("DATABASE_URL"),
        secret_key=os.getenv("SECRET_KEY", "your-secret-key"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24))),
        categories=_split_csv(os.getenv("BLOG_CATEGORIES"), DEFAULT_CATEGORIES),
        default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "10")),
        max_page_size=int(os.getenv("MAX_PAGE_SIZE", "100")),
        search_debounce_seconds=float(os.getenv("SEARCH_DEBOUNCE_SECONDS", "0.3")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the configured log level to the root logger"""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
