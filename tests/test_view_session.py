import asyncio
from datetime import date

import pytest

from blog_console.core.config import DEFAULT_CATEGORIES, Settings
from blog_console.core.exceptions import TransientStoreError, ValidationError
from blog_console.models.post import PostStatus
from blog_console.services.lifecycle import LifecycleEngine
from blog_console.services.query import ASC, DESC, FilterSpec, QueryEngine, SortKey
from blog_console.services.view_session import NO_MATCHES, ViewSession


def select_calls(store):
    return [call for call in store.calls if call[0] == "select"]


@pytest.fixture
def query(memory_store):
    return QueryEngine(memory_store)


@pytest.mark.asyncio
class TestRefresh:
    async def test_initial_load(self, query, memory_store):
        """测试首次加载只返回本分区文章"""
        memory_store.add(title="draft", draft=True)
        memory_store.add(title="live", draft=False)
        session = ViewSession(query, PostStatus.DRAFT)

        assert await session.refresh(initial=True)
        assert [r.title for r in session.records] == ["draft"]
        assert session.notice is None
        assert session.loading is False

    async def test_debounce_coalesces_filter_edits(self, query, memory_store):
        """测试防抖：连续修改筛选条件只触发一次查询，使用最后的条件"""
        memory_store.add(title="abc", draft=False)
        memory_store.add(title="axe", draft=False)
        session = ViewSession(query, PostStatus.PUBLISHED, debounce=0.05)

        session.update_filters(title="a")
        session.update_filters(title="ab")
        assert session.has_pending
        await session.settle()

        assert len(select_calls(memory_store)) == 1
        assert [r.title for r in session.records] == ["abc"]
        assert not session.has_pending

    async def test_stale_response_discarded(self, query, memory_store):
        """测试较慢的旧请求返回后不会覆盖新结果"""
        memory_store.add(title="python tips", draft=False)
        memory_store.add(title="cooking", draft=False)
        memory_store.select_delays = [0.2, 0]
        session = ViewSession(query, PostStatus.PUBLISHED)

        slow = asyncio.create_task(session.refresh())
        await asyncio.sleep(0)
        session.filters = FilterSpec(title="python")
        assert await session.refresh()
        assert await slow is False

        assert [r.title for r in session.records] == ["python tips"]
        assert session.generation == 2

    async def test_failure_keeps_previous_records(self, query, memory_store, monkeypatch):
        """测试查询失败时保留原有列表并记录错误"""
        memory_store.add(draft=False)
        session = ViewSession(query, PostStatus.PUBLISHED)
        await session.refresh(initial=True)

        async def broken(criteria):
            raise TransientStoreError("Store operation failed: timeout")

        monkeypatch.setattr(memory_store, "select", broken)
        assert await session.refresh() is False
        assert len(session.records) == 1
        assert isinstance(session.last_error, TransientStoreError)
        assert session.loading is False

    async def test_no_matches_notice(self, query, memory_store):
        """测试筛选无结果时给出提示"""
        memory_store.add(title="hello", draft=False)
        session = ViewSession(query, PostStatus.PUBLISHED)
        session.filters = FilterSpec(title="nothing")
        await session.refresh()
        assert session.records == []
        assert session.notice == NO_MATCHES
        assert session.total_pages == 1

    async def test_reset_refetches_with_default_filters(self, query, memory_store):
        """测试重置清空筛选条件并重新加载"""
        memory_store.add(title="one", draft=False)
        memory_store.add(title="two", draft=False)
        session = ViewSession(query, PostStatus.PUBLISHED)
        session.filters = FilterSpec(title="one")
        await session.refresh()
        assert len(session.records) == 1

        assert await session.reset()
        assert session.filters.is_empty()
        assert len(session.records) == 2
        assert session.notice is None


@pytest.mark.asyncio
class TestSearch:
    async def test_empty_search_rejected_without_fetch(self, query, memory_store):
        """测试空筛选条件的搜索被拒绝且不访问存储"""
        session = ViewSession(query, PostStatus.PUBLISHED)
        with pytest.raises(ValidationError):
            session.search()
        with pytest.raises(ValidationError):
            await query.search(PostStatus.PUBLISHED, FilterSpec(title="  "))
        assert memory_store.calls == []
        assert not session.has_pending

    async def test_search_by_date_range(self, query, memory_store):
        session = ViewSession(query, PostStatus.PUBLISHED, debounce=0.01)
        session.filters = FilterSpec(date_start=date(2000, 1, 1))
        memory_store.add(draft=False)
        session.search()
        await session.settle()
        assert len(session.records) == 1


@pytest.mark.asyncio
class TestLocalState:
    async def test_paging_and_sort(self, query, memory_store):
        """测试分页与排序在本地完成"""
        for i in range(23):
            memory_store.add(title=f"post {i:02d}", draft=False, views=i)
        session = ViewSession(query, PostStatus.PUBLISHED)
        await session.refresh(initial=True)

        assert session.total_pages == 3
        session.set_page(5)
        assert session.current_page == 3
        assert len(session.page().items) == 3

        assert session.toggle_sort("views") == [SortKey("views", DESC)]
        assert session.toggle_sort("views") == [SortKey("views", ASC)]
        session.set_page(1)
        assert [r.views for r in session.page().items][:3] == [0, 1, 2]
        assert len(select_calls(memory_store)) == 1

    async def test_selection(self, query, memory_store):
        """测试单选与当前页全选"""
        ids = [memory_store.add(draft=True).id for _ in range(3)]
        session = ViewSession(query, PostStatus.DRAFT)
        await session.refresh(initial=True)

        session.toggle_select(ids[0])
        assert session.selected == {ids[0]}
        session.toggle_select(ids[0])
        assert session.selected == set()

        session.toggle_select_all()
        assert session.selected == set(ids)
        session.toggle_select_all()
        assert session.selected == set()

    async def test_refresh_drops_vanished_selection(self, query, memory_store):
        post = memory_store.add(draft=True)
        session = ViewSession(query, PostStatus.DRAFT)
        await session.refresh(initial=True)
        session.toggle_select(post.id)
        del memory_store.rows[post.id]
        await session.refresh()
        assert session.selected == set()

    async def test_batch_reconcile_keeps_failed_rows(self, query, memory_store, actor):
        """测试批量发布部分失败后，草稿列表只保留失败的文章"""
        ids = [memory_store.add(title=f"T{i}", content="C", draft=True).id for i in range(5)]
        memory_store.fail_ids.add(ids[3])
        session = ViewSession(query, PostStatus.DRAFT)
        await session.refresh(initial=True)
        session.toggle_select_all()

        engine = LifecycleEngine(memory_store, actor, DEFAULT_CATEGORIES)
        result = await engine.batch_publish(sorted(session.selected))
        session.reconcile(result)

        assert result.success_count == 4
        assert [r.id for r in session.records] == [ids[3]]
        assert session.selected == {ids[3]}


@pytest.mark.asyncio
class TestSchemaFallback:
    async def test_trash_empty_when_columns_missing(self, query, memory_store):
        """测试缺少生命周期字段时回收站返回空列表"""
        memory_store.add(draft=False)
        memory_store.missing_lifecycle_columns = True
        page = await query.list_view(PostStatus.DELETED)
        assert page.items == []
        assert page.total_pages == 1

    async def test_published_retried_without_columns(self, query, memory_store):
        """测试缺少生命周期字段时已发布列表降级查询"""
        memory_store.add(title="legacy", draft=False, is_deleted=None)
        memory_store.add(title="legacy draft", draft=True, is_deleted=None)
        memory_store.missing_lifecycle_columns = True

        page = await query.list_view(PostStatus.PUBLISHED)
        assert [r.title for r in page.items] == ["legacy"]
        criteria = [call[1] for call in select_calls(memory_store)]
        assert [c.lifecycle_columns for c in criteria] == [True, False]


@pytest.mark.asyncio
async def test_load_taxonomy(query, memory_store):
    """测试标签集合来自已发布和草稿文章，去重并排序"""
    memory_store.add(draft=False, tags=["web", "python"])
    memory_store.add(draft=True, tags=["python", "asyncio"])
    trashed = memory_store.add(draft=False, tags=["hidden"])
    memory_store.rows[trashed.id]["is_deleted"] = True

    taxonomy = await query.load_taxonomy(DEFAULT_CATEGORIES)
    assert taxonomy.tags == ("asyncio", "python", "web")
    assert taxonomy.categories == tuple(DEFAULT_CATEGORIES)


def test_session_from_settings(query):
    """测试从配置创建会话时使用配置的分页大小和防抖时间"""
    settings = Settings(default_page_size=25, search_debounce_seconds=0.5)
    session = ViewSession.from_settings(query, PostStatus.DRAFT, settings)
    assert session.page_size == 25
    assert session.debounce == 0.5
    assert session.taxonomy.tags == ()


@pytest.mark.asyncio
async def test_query_engine_get(query, memory_store):
    """测试按 ID 读取单篇文章"""
    post = memory_store.add(title="single")
    assert (await query.get(post.id)).title == "single"
    assert await query.get("missing") is None
    assert ("get", "missing") in memory_store.calls
