"""ProgressAggregator -- 父任务进度聚合

子任务变更提交后，从直接父任务开始向上重算 custom_fields.progress
（可选同时推进状态），直到根任务或某一层取值未变化为止。

聚合策略（ProgressPolicy）：
- completed_ratio: round(100 * 已完成 / 计入子任务数)
- average_progress: 子任务 progress 平均值，已完成子任务按 100 计
- hours_weighted: 按 estimated_hours 加权的完成比例，无预估工时时退化为 completed_ratio

cancelled 子任务不计入分母；全部子任务都已取消时父任务保持不变。
取整为四舍五入（0.5 进位）。
"""

import math
from typing import TYPE_CHECKING, Any

import structlog

from ..config import EngineConfig
from ..exceptions import StorageUnavailableError, TaskNotFoundError
from ..models.enums import (
    AuditWriteKind,
    ProgressPolicy,
    TaskStatus,
    TimelineEventType,
)
from ..models.payloads import ProgressAggregatedMetadata
from ..models.results import AuditFailure
from ..models.task import Task
from .locks import TaskLocks

if TYPE_CHECKING:
    from .repository import TaskRepository

log = structlog.get_logger()

_STARTED_STATES = {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED}


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_progress(children: list[Task], policy: ProgressPolicy) -> int | None:
    """根据子任务状态计算父任务进度

    Returns:
        0-100 的进度值；没有可计入的子任务时返回 None
    """
    counted = [c for c in children if c.status != TaskStatus.CANCELLED]
    if not counted:
        return None
    completed = [c for c in counted if c.status == TaskStatus.COMPLETED]

    if policy == ProgressPolicy.AVERAGE_PROGRESS:
        total = sum(
            100 if c.status == TaskStatus.COMPLETED else c.custom_fields.progress
            for c in counted
        )
        return _round_half_up(total / len(counted))

    if policy == ProgressPolicy.HOURS_WEIGHTED:
        total_hours = sum(c.custom_fields.estimated_hours for c in counted)
        if total_hours > 0:
            done_hours = sum(c.custom_fields.estimated_hours for c in completed)
            return _round_half_up(100 * done_hours / total_hours)

    return _round_half_up(100 * len(completed) / len(counted))


class ProgressAggregator:
    """祖先任务进度聚合服务"""

    def __init__(
        self,
        repository: "TaskRepository",
        locks: TaskLocks,
        config: EngineConfig,
    ) -> None:
        self._repository = repository
        self._locks = locks
        self._config = config

    def derive_changes(self, parent: Task, children: list[Task]) -> dict[str, Any]:
        """计算父任务需要变更的字段（无变化时返回空 dict）"""
        changes: dict[str, Any] = {}
        progress = compute_progress(children, self._config.progress_policy)
        if progress is None:
            return changes

        if progress != parent.custom_fields.progress:
            changes["custom_fields.progress"] = progress

        if self._config.propagate_status:
            counted = [c for c in children if c.status != TaskStatus.CANCELLED]
            all_done = all(c.status == TaskStatus.COMPLETED for c in counted)
            if all_done and parent.status != TaskStatus.COMPLETED:
                changes["status"] = TaskStatus.COMPLETED
            elif not all_done and parent.status == TaskStatus.COMPLETED:
                # 已完成的父任务出现未完成子任务时重新打开
                changes["status"] = TaskStatus.IN_PROGRESS
            elif (
                not all_done
                and parent.status == TaskStatus.TODO
                and any(c.status in _STARTED_STATES for c in counted)
            ):
                changes["status"] = TaskStatus.IN_PROGRESS

        return changes

    async def recompute_ancestors(self, task: Task) -> list[AuditFailure]:
        """从 task 的直接父任务开始逐层向上重算

        每层只持有该祖先自身的锁；父任务已被并发删除时视为无操作。
        祖先写入失败不影响已提交的子任务，失败以 AuditFailure 返回。
        """
        failures: list[AuditFailure] = []
        trigger_id = task.task_id
        parent_id = task.parent_id
        visited: set[str] = set()

        while parent_id is not None and parent_id not in visited:
            visited.add(parent_id)
            try:
                async with self._locks.hold(parent_id):
                    parent, changes, children = await self._load_and_derive(parent_id)
                    if not changes:
                        break

                    result, updated = await self._repository.apply_update_locked(
                        parent,
                        changes,
                        notes="子任务进度聚合",
                        actor_id=self._config.system_actor_id,
                    )
                    failures.extend(result.audit_failures)

                    _, failure = await self._repository.timeline.append_reported(
                        parent_id,
                        TimelineEventType.PROGRESS_AGGREGATED,
                        f"子任务进度聚合：{parent.custom_fields.progress} → "
                        f"{updated.custom_fields.progress}",
                        ProgressAggregatedMetadata(
                            policy=self._config.progress_policy,
                            child_count=len(parent.children),
                            counted_children=sum(
                                1 for c in children if c.status != TaskStatus.CANCELLED
                            ),
                            completed_children=sum(
                                1 for c in children if c.status == TaskStatus.COMPLETED
                            ),
                            old_progress=parent.custom_fields.progress,
                            new_progress=updated.custom_fields.progress,
                            triggered_by=trigger_id,
                        ).model_dump(mode="json"),
                        user_id=self._config.system_actor_id,
                    )
                    if failure is not None:
                        failures.append(failure)
            except TaskNotFoundError:
                log.warning("progress_parent_missing", task_id=parent_id)
                break
            except StorageUnavailableError as e:
                log.error(
                    "progress_rollup_failed",
                    task_id=parent_id,
                    triggered_by=trigger_id,
                    error_type=type(e).__name__,
                )
                failures.append(
                    AuditFailure(
                        kind=AuditWriteKind.PROGRESS_ROLLUP,
                        task_id=parent_id,
                        field_name="custom_fields.progress",
                        error_type=type(e).__name__,
                        error_message=str(e),
                    )
                )
                break

            log.info(
                "progress_rolled_up",
                task_id=parent_id,
                triggered_by=trigger_id,
                changes=list(changes),
            )
            trigger_id = parent_id
            parent_id = updated.parent_id

        return failures

    async def _load_and_derive(
        self, parent_id: str
    ) -> tuple[Task, dict[str, Any], list[Task]]:
        parent = await self._repository.load_task(parent_id)
        children = await self._repository.load_children(parent)
        return parent, self.derive_changes(parent, children), children
