"""字段级更新记录测试（内存 / SQLite 两种后端）

测试内容：
1. 记录数 == 实际变化字段数，同一批次共享 batch_id
2. 重复提交相同值不产生记录
3. 嵌套 dict 与点分路径等价
4. 非法字段整体拒绝，不写入任何记录
5. 流转到 completed：completed_at + 恰好一个 completed 事件
6. updated 事件描述与 metadata
"""

from datetime import UTC, datetime

import pytest
from tasktrail.core.exceptions import InvalidFieldError, TaskNotFoundError
from tasktrail.core.models import Task, TaskStatus, UpdateType
from tasktrail.core.services.recorder import UpdateRecorder, get_update_type


class TestRecordCounts:
    """记录数量"""

    async def test_one_record_per_changed_field(self, engine):
        task = (await engine.create_task({"title": "任务", "description": "旧"})).task

        result = await engine.update_task(
            task.task_id,
            {
                "title": "任务",  # 未变化
                "description": "新",
                "status": "in_progress",
                "custom_fields": {"priority": "high", "difficulty": 5},  # difficulty 未变化
            },
            notes="批量",
            actor_id="u1",
        )

        fields = [r.field_name for r in result.update_records]
        assert fields == ["description", "status", "custom_fields.priority"]
        assert len({r.batch_id for r in result.update_records}) == 1
        assert result.update_records[0].batch_id == result.batch_id
        assert all(r.updated_by == "u1" and r.notes == "批量" for r in result.update_records)

        history = await engine.get_update_history(task.task_id)
        assert [r.record_id for r in history] == [r.record_id for r in result.update_records]

    async def test_second_identical_update_is_noop(self, engine):
        task = (await engine.create_task({"title": "任务"})).task
        fields = {"status": "in_progress", "custom_fields.progress": 30}

        first = await engine.update_task(task.task_id, fields)
        second = await engine.update_task(task.task_id, fields)

        assert len(first.update_records) == 2
        assert second.update_records == []
        assert len(await engine.get_update_history(task.task_id)) == 2
        # updated_at 始终刷新
        assert second.task.updated_at >= first.task.updated_at

    async def test_history_filtered_by_batch(self, engine):
        task = (await engine.create_task({"title": "任务"})).task
        first = await engine.update_task(task.task_id, {"description": "a"})
        await engine.update_task(task.task_id, {"description": "b"})

        history = await engine.get_update_history(task.task_id, batch_id=first.batch_id)
        assert [r.new_value for r in history] == ["a"]

    async def test_values_recorded_in_json_form(self, engine):
        task = (await engine.create_task({"title": "任务"})).task
        result = await engine.update_task(
            task.task_id,
            {"due_date": "2024-07-01T00:00:00+08:00", "custom_fields.tags": ["x"]},
        )

        due, tags = result.update_records
        assert due.old_value is None
        assert due.new_value == "2024-06-30T16:00:00Z"
        assert tags.old_value == []
        assert tags.new_value == ["x"]
        assert tags.update_type == UpdateType.CUSTOM_FIELD


class TestInvalidFields:
    """非法字段"""

    @pytest.mark.parametrize(
        "fields,bad_field",
        [
            ({"level": 3}, "level"),
            ({"children": []}, "children"),
            ({"parent_id": "x"}, "parent_id"),
            ({"owner": "u1"}, "owner"),
            ({"custom_fields.color": "red"}, "custom_fields.color"),
            ({"custom_fields": {"progress": 150}}, "custom_fields.progress"),
            ({"status": "archived"}, "status"),
            ({"title": ""}, "title"),
        ],
    )
    async def test_rejected_without_side_effects(self, engine, fields, bad_field):
        task = (await engine.create_task({"title": "任务"})).task

        with pytest.raises(InvalidFieldError) as exc_info:
            await engine.update_task(task.task_id, {"description": "应被丢弃", **fields})
        assert exc_info.value.field_name == bad_field

        assert await engine.get_update_history(task.task_id) == []
        assert (await engine.get_task(task.task_id)).description == ""

    async def test_missing_task(self, engine):
        with pytest.raises(TaskNotFoundError):
            await engine.update_task("01JMISSING0000000000000000", {"title": "x"})


class TestCompletion:
    """流转到 completed"""

    async def test_completion_stamps_and_emits_once(self, engine):
        task = (await engine.create_task({"title": "任务"})).task

        result = await engine.update_task(
            task.task_id,
            {"status": "completed", "description": "收尾", "custom_fields.progress": 100},
            notes="done",
            actor_id="u1",
        )

        assert result.task.status == TaskStatus.COMPLETED
        assert result.task.completed_at is not None
        events = await engine.get_timeline(task.task_id, event_types=["completed"])
        assert len(events) == 1
        assert events[0].is_milestone is True
        assert events[0].metadata["notes"] == "done"
        assert events[0].metadata["batch_id"] == result.batch_id

    async def test_completed_at_not_restamped_without_transition(self, engine):
        task = (await engine.create_task({"title": "任务"})).task
        done = await engine.update_task(task.task_id, {"status": "completed"})
        later = await engine.update_task(task.task_id, {"description": "补充"})

        assert later.task.completed_at == done.task.completed_at
        assert len(await engine.get_timeline(task.task_id, event_types=["completed"])) == 1

    async def test_reopen_keeps_completed_at(self, engine):
        task = (await engine.create_task({"title": "任务"})).task
        done = await engine.update_task(task.task_id, {"status": "completed"})
        reopened = await engine.update_task(task.task_id, {"status": "in_progress"})

        assert reopened.task.status == TaskStatus.IN_PROGRESS
        assert reopened.task.completed_at == done.task.completed_at

    async def test_completed_at_not_recorded_as_field(self, engine):
        task = (await engine.create_task({"title": "任务"})).task
        result = await engine.update_task(task.task_id, {"status": "completed"})
        assert [r.field_name for r in result.update_records] == ["status"]


class TestUpdatedEvents:
    """updated 时间轴事件"""

    async def test_description_and_metadata(self, engine):
        task = (await engine.create_task({"title": "任务"})).task
        await engine.update_task(task.task_id, {"status": "in_progress"}, actor_id="u2")

        events = await engine.get_timeline(task.task_id, event_types=["updated"])
        assert len(events) == 1
        assert events[0].description == "更新状态：todo → in_progress"
        assert events[0].user_id == "u2"
        assert events[0].metadata["field_changed"] == "status"
        assert events[0].metadata["old_value"] == "todo"
        assert events[0].metadata["new_value"] == "in_progress"

    async def test_unlabelled_field_uses_path(self, engine):
        task = (await engine.create_task({"title": "任务"})).task
        await engine.update_task(task.task_id, {"custom_fields.category": "设计"})

        events = await engine.get_timeline(task.task_id, event_types=["updated"])
        assert events[0].description == "更新custom_fields.category： → 设计"


class TestStaticTables:
    """变更类别映射"""

    @pytest.mark.parametrize(
        "field,update_type",
        [
            ("status", UpdateType.STATUS),
            ("description", UpdateType.DESCRIPTION),
            ("assignee_id", UpdateType.ASSIGNEE),
            ("due_date", UpdateType.DUE_DATE),
            ("custom_fields.progress", UpdateType.PROGRESS),
            ("custom_fields.tags", UpdateType.CUSTOM_FIELD),
            ("title", UpdateType.CUSTOM_FIELD),
        ],
    )
    def test_update_type(self, field, update_type):
        assert get_update_type(field) == update_type

    def test_diff_preserves_request_order(self):
        now = datetime.now(UTC)
        task = Task(task_id="t1", title="任务", created_at=now, updated_at=now)
        _, changes = UpdateRecorder.diff(
            task, {"custom_fields.priority": "low", "title": "新", "status": "todo"}
        )
        assert [c.field_name for c in changes] == ["custom_fields.priority", "title"]
