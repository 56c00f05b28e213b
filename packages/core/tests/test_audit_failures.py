"""存储故障处理测试

测试内容：
1. 审计写入暂时失败时有限次重试
2. 审计写入最终失败：主写入保留，失败项通过 audit_failures 返回
3. 主写入失败：StorageUnavailableError 原样抛出
4. 存储调用超时映射为 StorageUnavailableError（含单次调用覆盖）
5. 祖先进度重算失败不影响已提交的子任务
6. SQLite DatabaseError 映射为 StorageUnavailableError，IntegrityError 原样抛出
"""

import asyncio

import aiosqlite

import pytest
from tasktrail.core.exceptions import StorageUnavailableError
from tasktrail.core.models import AuditWriteKind, TaskStatus
from tasktrail.core.store.sqlite_utils import storage_errors


def _flaky(original, failures: int, predicate=lambda *args: True):
    """前 failures 次满足 predicate 的调用抛出 StorageUnavailableError"""
    state = {"calls": 0}

    async def wrapper(*args):
        if predicate(*args) and state["calls"] < failures:
            state["calls"] += 1
            raise StorageUnavailableError("flaky")
        return await original(*args)

    wrapper.state = state
    return wrapper


class TestAuditRetry:
    """审计写入重试"""

    async def test_transient_failure_retried(self, engine, monkeypatch):
        task = (await engine.create_task({"title": "任务"})).task
        store = engine.stores.update_store
        flaky = _flaky(store.append_update_record, failures=2)
        monkeypatch.setattr(store, "append_update_record", flaky)

        result = await engine.update_task(task.task_id, {"description": "新"})

        assert flaky.state["calls"] == 2
        assert result.audit_complete
        assert len(await engine.get_update_history(task.task_id)) == 1

    async def test_record_failure_reported_per_field(self, engine, monkeypatch):
        task = (await engine.create_task({"title": "任务"})).task
        store = engine.stores.update_store
        monkeypatch.setattr(
            store,
            "append_update_record",
            _flaky(
                store.append_update_record,
                failures=100,
                predicate=lambda record: record.field_name == "description",
            ),
        )

        result = await engine.update_task(
            task.task_id, {"description": "新", "custom_fields.priority": "high"}
        )

        # 主写入保留
        assert result.task.description == "新"
        assert (await engine.get_task(task.task_id)).description == "新"

        assert [r.field_name for r in result.update_records] == ["custom_fields.priority"]
        assert len(result.audit_failures) == 1
        failure = result.audit_failures[0]
        assert failure.kind == AuditWriteKind.UPDATE_RECORD
        assert failure.field_name == "description"
        assert failure.error_type == "StorageUnavailableError"
        assert failure.attempts == engine.config.audit_retry_attempts

        # 记录失败的字段不再写 updated 事件
        updated = await engine.get_timeline(task.task_id, event_types=["updated"])
        assert [e.metadata["field_changed"] for e in updated] == ["custom_fields.priority"]

    async def test_non_transient_error_not_retried(self, engine, monkeypatch):
        task = (await engine.create_task({"title": "任务"})).task

        async def broken(record):
            raise ValueError("坏数据")

        monkeypatch.setattr(engine.stores.update_store, "append_update_record", broken)
        result = await engine.update_task(task.task_id, {"description": "新"})

        assert result.audit_failures[0].attempts == 1
        assert result.audit_failures[0].error_type == "ValueError"

    async def test_created_event_failure_keeps_task(self, engine, monkeypatch):
        store = engine.stores.timeline_store
        monkeypatch.setattr(
            store, "append_event", _flaky(store.append_event, failures=100)
        )

        result = await engine.create_task({"title": "任务"})

        assert not result.audit_complete
        assert result.audit_failures[0].kind == AuditWriteKind.TIMELINE_EVENT
        assert result.audit_failures[0].event_type == "created"
        assert (await engine.get_task(result.task.task_id)).title == "任务"

    async def test_completed_event_failure_reported(self, engine, monkeypatch):
        task = (await engine.create_task({"title": "任务"})).task
        store = engine.stores.timeline_store
        monkeypatch.setattr(
            store,
            "append_event",
            _flaky(
                store.append_event,
                failures=100,
                predicate=lambda event: event.event_type == "completed",
            ),
        )

        result = await engine.update_task(task.task_id, {"status": "completed"})

        assert result.task.completed_at is not None
        assert [(f.kind, f.event_type) for f in result.audit_failures] == [
            (AuditWriteKind.TIMELINE_EVENT, "completed")
        ]


class TestPrimaryWriteFailure:
    """主写入失败"""

    async def test_save_failure_raised(self, engine, monkeypatch):
        task = (await engine.create_task({"title": "任务"})).task

        async def unavailable(t):
            raise StorageUnavailableError("save_task")

        monkeypatch.setattr(engine.stores.task_store, "save_task", unavailable)

        with pytest.raises(StorageUnavailableError) as exc_info:
            await engine.update_task(task.task_id, {"status": "completed"})
        assert exc_info.value.recoverable is True

        monkeypatch.undo()
        current = await engine.get_task(task.task_id)
        assert current.status == TaskStatus.TODO
        assert current.completed_at is None
        assert await engine.get_timeline(task.task_id, event_types=["completed"]) == []


class TestTimeouts:
    """存储调用超时"""

    async def test_slow_store_times_out(self, make_engine, monkeypatch):
        engine = await make_engine(storage_timeout_s=0.05)
        task = (await engine.create_task({"title": "任务"})).task

        async def slow(task_id):
            await asyncio.sleep(1)

        monkeypatch.setattr(engine.stores.task_store, "get_task", slow)

        with pytest.raises(StorageUnavailableError) as exc_info:
            await engine.get_task(task.task_id)
        assert exc_info.value.operation == "get_task"

    async def test_per_call_timeout_override(self, engine, monkeypatch):
        task = (await engine.create_task({"title": "任务"})).task
        original = engine.stores.task_store.get_task

        async def slow(task_id):
            await asyncio.sleep(0.2)
            return await original(task_id)

        monkeypatch.setattr(engine.stores.task_store, "get_task", slow)

        with pytest.raises(StorageUnavailableError):
            await engine.get_task(task.task_id, timeout_s=0.01)
        assert (await engine.get_task(task.task_id)).task_id == task.task_id


class TestRollupFailure:
    """祖先进度重算失败"""

    async def test_child_committed_parent_failure_reported(self, engine, monkeypatch):
        root = (await engine.create_task({"title": "root"})).task.task_id
        child = (await engine.create_task({"title": "c"}, parent_id=root)).task.task_id

        store = engine.stores.task_store
        monkeypatch.setattr(
            store,
            "save_task",
            _flaky(store.save_task, failures=100, predicate=lambda t: t.task_id == root),
        )

        result = await engine.update_task(child, {"status": "completed"})

        assert result.task.status == TaskStatus.COMPLETED
        assert [f.kind for f in result.audit_failures] == [AuditWriteKind.PROGRESS_ROLLUP]
        assert result.audit_failures[0].task_id == root

        monkeypatch.undo()
        assert (await engine.get_task(child)).status == TaskStatus.COMPLETED
        assert (await engine.get_task(root)).custom_fields.progress == 0


def _failing_execute(conn, prefix: str, failures: int):
    """前 failures 次以 prefix 开头的 SQL 抛出 aiosqlite.DatabaseError"""
    original = conn.execute
    state = {"calls": 0}

    async def execute(sql, parameters=None):
        if sql.lstrip().startswith(prefix) and state["calls"] < failures:
            state["calls"] += 1
            raise aiosqlite.DatabaseError("database disk image is malformed")
        return await original(sql, parameters)

    execute.state = state
    return execute


@pytest.mark.parametrize("backend", ["sqlite"])
class TestSqliteErrorMapping:
    """SQLite 错误映射"""

    async def test_database_error_on_save_mapped(self, engine, monkeypatch):
        task = (await engine.create_task({"title": "任务"})).task
        conn = engine.stores.conn
        monkeypatch.setattr(
            conn, "execute", _failing_execute(conn, "UPDATE tasks", failures=100)
        )

        with pytest.raises(StorageUnavailableError) as exc_info:
            await engine.update_task(task.task_id, {"description": "x"})
        assert exc_info.value.operation == "save_task"

        monkeypatch.undo()
        assert (await engine.get_task(task.task_id)).description == ""

    async def test_database_error_on_audit_write_retried(self, engine, monkeypatch):
        task = (await engine.create_task({"title": "任务"})).task
        conn = engine.stores.conn
        execute = _failing_execute(conn, "INSERT INTO update_records", failures=1)
        monkeypatch.setattr(conn, "execute", execute)

        result = await engine.update_task(task.task_id, {"description": "x"})

        assert execute.state["calls"] == 1
        assert result.audit_complete
        assert len(await engine.get_update_history(task.task_id)) == 1

    async def test_integrity_error_propagates(self, backend):
        with pytest.raises(aiosqlite.IntegrityError):
            async with storage_errors("create_task"):
                raise aiosqlite.IntegrityError("UNIQUE constraint failed: tasks.task_id")
