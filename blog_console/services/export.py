"""
文章导出服务
"""
from datetime import datetime, UTC
from io import StringIO
from typing import Iterable
import csv

from blog_console.schemas.post import PostRecord

EXPORT_HEADERS = ["ID", "Title", "Excerpt", "Category", "Tags", "Created At", "Status"]


def export_csv(records: Iterable[PostRecord]) -> str:
    """
    导出文章列表为 CSV 文本

    Args:
        records: 文章列表

    Returns:
        str: CSV 内容，标签以分号连接
    """
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for record in records:
        writer.writerow([
            record.id,
            record.title,
            record.excerpt or "",
            record.category or "",
            ";".join(record.tags),
            record.created_at.isoformat() if record.created_at else "",
            record.status.value,
        ])
    return buffer.getvalue()


def export_filename(today: datetime | None = None) -> str:
    today = today or datetime.now(UTC)
    return f"blog_export_{today.date().isoformat()}.csv"
