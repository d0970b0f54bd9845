import asyncio
import os
import uuid
from datetime import datetime, UTC

# 设置测试环境（必须在导入应用之前）
os.environ["APP_ENV"] = "test"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from blog_console.main import app
from blog_console.api.deps import get_post_store
from blog_console.core.exceptions import SchemaCompatibilityError, TransientStoreError
from blog_console.db.database import Base, get_session, SQLITE_TEST_DB
from blog_console.db.store import PostStore, SqlPostStore, StoreCriteria
from blog_console.models import post, user  # noqa: F401
from blog_console.models.post import derive_status
from blog_console.schemas.post import PostRecord

# 测试数据库配置
test_engine = create_engine(SQLITE_TEST_DB, connect_args={"check_same_thread": False})
TestSessionLocal = sessionmaker(bind=test_engine, expire_on_commit=False)


class MemoryPostStore(PostStore):
    """内存中的文章存储，可注入失败和延迟"""

    def __init__(self):
        self.rows = {}
        self.calls = []
        self.fail_ids = set()
        self.select_delays = []
        self.missing_lifecycle_columns = False

    def add(self, **values) -> PostRecord:
        now = datetime.now(UTC)
        row = {
            "id": values.pop("id", None) or str(uuid.uuid4()),
            "title": "Untitled",
            "content": "Body",
            "draft": True,
            "is_deleted": False,
            "deleted_at": None,
            "created_at": now,
            "updated_at": now,
        }
        row.update(values)
        self.rows[row["id"]] = row
        return PostRecord.model_validate(row)

    async def select(self, criteria: StoreCriteria):
        self.calls.append(("select", criteria))
        if self.select_delays:
            await asyncio.sleep(self.select_delays.pop(0))
        if self.missing_lifecycle_columns and criteria.lifecycle_columns:
            raise SchemaCompatibilityError("no such column: posts.is_deleted")
        records = []
        for row in self.rows.values():
            is_deleted = row.get("is_deleted") if criteria.lifecycle_columns else None
            if derive_status(row["draft"], is_deleted) != criteria.status:
                continue
            if criteria.category and row.get("category") != criteria.category:
                continue
            if criteria.tag and criteria.tag not in row.get("tags", []):
                continue
            records.append(PostRecord.model_validate(row))
        return records

    async def get(self, post_id):
        self.calls.append(("get", post_id))
        row = self.rows.get(post_id)
        return PostRecord.model_validate(row) if row else None

    async def insert(self, values):
        self.calls.append(("insert", values))
        return self.add(**dict(values))

    async def update(self, ids, values):
        self.calls.append(("update", list(ids)))
        if self.fail_ids.intersection(ids):
            raise TransientStoreError("Store operation failed: connection reset")
        found = [i for i in ids if i in self.rows]
        for post_id in found:
            self.rows[post_id].update(values)
        return found

    async def delete(self, ids):
        self.calls.append(("delete", list(ids)))
        if self.fail_ids.intersection(ids):
            raise TransientStoreError("Store operation failed: connection reset")
        found = [i for i in ids if i in self.rows]
        for post_id in found:
            del self.rows[post_id]
        return found


@pytest.fixture
def memory_store():
    return MemoryPostStore()


@pytest.fixture
def actor():
    """已认证的调用者"""
    return object()


@pytest.fixture(autouse=True)
def clean_db():
    """清理并重建测试数据库"""
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(clean_db):
    """创建测试客户端"""
    # 创建测试会话
    test_session = TestSessionLocal()

    # 覆盖依赖
    def override_get_session():
        try:
            yield test_session
        finally:
            test_session.close()

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_post_store] = lambda: SqlPostStore(TestSessionLocal)

    # 返回测试客户端
    client = TestClient(app)
    yield client

    # 测试结束后清理
    test_session.close()
    app.dependency_overrides.clear()


@pytest.fixture
def test_user_data():
    return {
        "username": "editor",
        "email": "editor@example.com",
        "password": "editorpassword123",
    }


@pytest.fixture
def auth_headers(client, test_user_data):
    """注册并登录，返回认证请求头"""
    client.post("/api/auth/register", json=test_user_data)
    login_response = client.post("/api/auth/login", json={
        "username": test_user_data["username"],
        "password": test_user_data["password"],
    })
    token = login_response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def authenticated_client(client, auth_headers):
    """返回一个已认证的客户端"""
    auth_client = TestClient(client.app)
    auth_client.headers.update(auth_headers)
    return auth_client
