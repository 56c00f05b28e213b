"""TaskRepository -- 任务创建/查询/更新

流程：
1. 在 task 级别锁内加载当前状态
2. UpdateRecorder 计算 diff 并逐字段写入 UpdateRecord + updated 事件
3. 写入任务（主写入，失败直接抛出）
4. 流转到 completed 时写入 completed_at 与 completed 里程碑事件
5. 释放锁后由 ProgressAggregator 向上重算祖先进度
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError
from ulid import ULID

from ..config import EngineConfig
from ..exceptions import InvalidFieldError, ParentNotFoundError, TaskNotFoundError
from ..models.enums import TaskStatus, TimelineEventType, is_nominal_transition
from ..models.payloads import TaskCompletedMetadata, TaskCreatedMetadata
from ..models.results import AuditFailure, MutationResult
from ..models.task import CustomFields, EnrichedTask, Task, TaskDraft, enrich_task
from ..models.update_record import UpdateRecord
from ..store import StoreGroup
from .hierarchy import collect_subtree_ids
from .locks import TaskLocks
from .progress import ProgressAggregator
from .recorder import UpdateRecorder
from .storage_guard import guarded
from .timeline import TimelineLog

log = structlog.get_logger()


class TaskRepository:
    """任务仓储：身份、层级、读取增强与变更编排"""

    def __init__(
        self,
        stores: StoreGroup,
        config: EngineConfig,
        locks: TaskLocks | None = None,
    ) -> None:
        self._stores = stores
        self._config = config
        self._locks = locks or TaskLocks()
        self.timeline = TimelineLog(stores.timeline_store, stores.task_store, config)
        self.recorder = UpdateRecorder(stores.update_store, self.timeline, config)
        self.aggregator = ProgressAggregator(self, self._locks, config)

    # ---- 读取 ----

    async def load_task(self, task_id: str) -> Task:
        """加载原始任务状态

        Raises:
            TaskNotFoundError: 任务不存在
        """
        task = await guarded(
            "get_task",
            self._stores.task_store.get_task(task_id),
            self._config.storage_timeout_s,
        )
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def load_children(self, task: Task) -> list[Task]:
        """按 children 顺序加载子任务，跳过悬空 ID"""
        children: list[Task] = []
        for child_id in task.children:
            child = await guarded(
                "get_task",
                self._stores.task_store.get_task(child_id),
                self._config.storage_timeout_s,
            )
            if child is None:
                log.warning("dangling_child_reference", task_id=task.task_id, child_id=child_id)
                continue
            children.append(child)
        return children

    async def get_task(self, task_id: str) -> EnrichedTask:
        """查询任务详情（附加 is_overdue / days_remaining）"""
        return enrich_task(await self.load_task(task_id))

    async def get_subtree_ids(self, task_id: str) -> list[str]:
        """task_id 及其所有后代的 ID（深度优先先序）"""
        return await collect_subtree_ids(
            self._stores.task_store, task_id, self._config.storage_timeout_s
        )

    async def list_update_records(
        self,
        task_id: str,
        batch_id: str | None = None,
    ) -> list[UpdateRecord]:
        """查询任务的更新历史"""
        await self.load_task(task_id)
        return await guarded(
            "list_update_records",
            self._stores.update_store.list_update_records(task_id, batch_id),
            self._config.storage_timeout_s,
        )

    # ---- 创建 ----

    async def create_task(
        self,
        draft: TaskDraft | dict[str, Any],
        parent_id: str | None = None,
        actor_id: str | None = None,
    ) -> MutationResult:
        """创建任务

        父任务不存在时抛出 ParentNotFoundError，且不写入任何数据。

        Raises:
            InvalidFieldError: 载荷校验失败
            ParentNotFoundError: parent_id 不存在
        """
        if not isinstance(draft, TaskDraft):
            try:
                draft = TaskDraft.model_validate(draft)
            except ValidationError as e:
                error = e.errors()[0]
                loc = ".".join(str(part) for part in error["loc"])
                raise InvalidFieldError(loc or "payload", error["msg"]) from e

        if parent_id is None:
            task = self._build_task(draft, parent=None)
            await self._insert(task)
        else:
            async with self._locks.hold(parent_id):
                parent = await guarded(
                    "get_task",
                    self._stores.task_store.get_task(parent_id),
                    self._config.storage_timeout_s,
                )
                if parent is None:
                    raise ParentNotFoundError(parent_id)
                task = self._build_task(draft, parent=parent)
                await self._insert(task)

        failures: list[AuditFailure] = []
        _, failure = await self.timeline.append_reported(
            task.task_id,
            TimelineEventType.CREATED,
            f"创建任务：{task.title}",
            TaskCreatedMetadata(
                initial_status=task.status,
                assignee_id=task.assignee_id,
                parent_id=task.parent_id,
                level=task.level,
            ).model_dump(mode="json"),
            is_milestone=True,
            user_id=actor_id,
        )
        if failure is not None:
            failures.append(failure)

        log.info(
            "task_created",
            task_id=task.task_id,
            parent_id=task.parent_id,
            level=task.level,
        )

        # 新增子任务会改变父任务的完成比例
        if task.parent_id is not None:
            failures.extend(await self.aggregator.recompute_ancestors(task))

        return MutationResult(task=enrich_task(task), audit_failures=failures)

    @staticmethod
    def _build_task(draft: TaskDraft, parent: Task | None) -> Task:
        now = datetime.now(UTC)
        return Task(
            task_id=str(ULID()),
            title=draft.title,
            description=draft.description,
            status=draft.status,
            assignee_id=draft.assignee_id,
            created_at=now,
            updated_at=now,
            due_date=draft.due_date,
            start_date=draft.start_date,
            completed_at=now if draft.status == TaskStatus.COMPLETED else None,
            parent_id=parent.task_id if parent is not None else None,
            children=[],
            level=parent.level + 1 if parent is not None else 0,
            custom_fields=CustomFields(
                **draft.custom_fields.model_dump(),
                actual_hours=0,
                progress=0,
            ),
        )

    async def _insert(self, task: Task) -> None:
        await guarded(
            "create_task",
            self._stores.task_store.create_task(task),
            self._config.storage_timeout_s,
        )

    # ---- 更新 ----

    async def update_task(
        self,
        task_id: str,
        fields: dict[str, Any],
        notes: str = "",
        actor_id: str | None = None,
    ) -> MutationResult:
        """更新任务

        Args:
            task_id: 任务 ID
            fields: partial update（点分路径或嵌套 dict）
            notes: 更新备注
            actor_id: 操作者 ID，默认系统操作者

        Raises:
            TaskNotFoundError: 任务不存在
            InvalidFieldError: 字段未知、只读或取值非法
            StorageUnavailableError: 任务主写入失败
        """
        actor_id = actor_id or self._config.system_actor_id
        async with self._locks.hold(task_id):
            task = await self.load_task(task_id)
            result, updated = await self.apply_update_locked(task, fields, notes, actor_id)

        # 子任务已提交，锁已释放，再逐层向上重算
        if updated.parent_id is not None:
            result.audit_failures.extend(
                await self.aggregator.recompute_ancestors(updated)
            )
        return result

    async def apply_update_locked(
        self,
        task: Task,
        fields: dict[str, Any],
        notes: str,
        actor_id: str,
    ) -> tuple[MutationResult, Task]:
        """在调用方已持有 task 锁的前提下执行一次批量更新

        更新记录先于任务写入；任务只写入一次，取消或失败不会留下半批次状态。
        """
        candidate, changes = self.recorder.diff(task, fields)
        batch_id = str(ULID())
        now = datetime.now(UTC)

        records, failures = await self.recorder.record_batch(
            task.task_id, changes, notes, actor_id, batch_id
        )

        completed_now = False
        for change in changes:
            if change.field_name != "status":
                continue
            from_status = TaskStatus(change.old_value)
            to_status = TaskStatus(change.new_value)
            if not is_nominal_transition(from_status, to_status):
                log.warning(
                    "task_status_unusual_transition",
                    task_id=task.task_id,
                    from_status=from_status.value,
                    to_status=to_status.value,
                )
            completed_now = to_status == TaskStatus.COMPLETED

        updated = candidate.model_copy(
            update={
                "updated_at": now,
                "completed_at": now if completed_now else task.completed_at,
            }
        )
        await guarded(
            "save_task",
            self._stores.task_store.save_task(updated),
            self._config.storage_timeout_s,
        )

        if completed_now:
            _, failure = await self.timeline.append_reported(
                task.task_id,
                TimelineEventType.COMPLETED,
                f"完成任务：{updated.title}",
                TaskCompletedMetadata(
                    completion_time=now.isoformat(),
                    notes=notes,
                    batch_id=batch_id,
                ).model_dump(mode="json"),
                is_milestone=True,
                user_id=actor_id,
            )
            if failure is not None:
                failures.append(failure)

        log.info(
            "task_updated",
            task_id=task.task_id,
            batch_id=batch_id,
            changed_fields=[c.field_name for c in changes],
            completed=completed_now,
        )
        return (
            MutationResult(
                task=enrich_task(updated, now),
                batch_id=batch_id,
                update_records=records,
                audit_failures=failures,
            ),
            updated,
        )
