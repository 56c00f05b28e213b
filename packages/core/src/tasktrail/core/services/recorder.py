"""UpdateRecorder -- 字段级变更记录

把 partial update 与当前任务做 diff，每个发生变化的字段写一条 UpdateRecord，
同一次调用共享 batch_id；每条记录随后追加一个 updated 时间轴事件。
每个字段的（记录 + 事件）是独立的失败单元，失败项以 AuditFailure 返回。
"""

import copy
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError
from ulid import ULID

from ..config import VALUE_PREVIEW_LENGTH, EngineConfig
from ..exceptions import InvalidFieldError
from ..fieldpath import check_updatable, flatten_fields, get_path, set_path
from ..models.enums import AuditWriteKind, TimelineEventType, UpdateType
from ..models.payloads import FieldUpdatedMetadata
from ..models.results import AuditFailure
from ..models.task import Task
from ..models.update_record import FieldChange, UpdateRecord
from ..store.protocols import UpdateRecordStore
from .storage_guard import write_with_retry
from .timeline import TimelineLog

log = structlog.get_logger()

# 字段路径 -> 变更类别
UPDATE_TYPES: dict[str, UpdateType] = {
    "status": UpdateType.STATUS,
    "description": UpdateType.DESCRIPTION,
    "assignee_id": UpdateType.ASSIGNEE,
    "due_date": UpdateType.DUE_DATE,
    "custom_fields.progress": UpdateType.PROGRESS,
    "notes": UpdateType.NOTES,
}

# 字段路径 -> 时间轴展示名称，未列出的字段直接展示路径
FIELD_DISPLAY_NAMES: dict[str, str] = {
    "title": "标题",
    "status": "状态",
    "description": "描述",
    "assignee_id": "负责人",
    "due_date": "截止日期",
    "start_date": "开始日期",
    "custom_fields.progress": "进度",
    "custom_fields.priority": "优先级",
}


def get_update_type(field_name: str) -> UpdateType:
    return UPDATE_TYPES.get(field_name, UpdateType.CUSTOM_FIELD)


def get_field_display_name(field_name: str) -> str:
    return FIELD_DISPLAY_NAMES.get(field_name, field_name)


def _preview(value: Any) -> str:
    text = "空" if value is None else str(value)
    if len(text) > VALUE_PREVIEW_LENGTH:
        return text[:VALUE_PREVIEW_LENGTH] + "..."
    return text


class FieldOutcome(BaseModel):
    """单个字段的记录结果"""

    field_name: str
    record: UpdateRecord | None = None
    failures: list[AuditFailure] = Field(default_factory=list)


class UpdateRecorder:
    """字段变更记录服务"""

    def __init__(
        self,
        update_store: UpdateRecordStore,
        timeline: TimelineLog,
        config: EngineConfig,
    ) -> None:
        self._update_store = update_store
        self._timeline = timeline
        self._config = config

    @staticmethod
    def diff(task: Task, fields: dict[str, Any]) -> tuple[Task, list[FieldChange]]:
        """计算 partial update 相对当前任务的变化

        先把所有字段写入候选副本并整体校验，任一字段非法则整个请求失败，
        不会产生任何记录。值比较使用 JSON 形式（时间戳、枚举已归一化）。

        Args:
            task: 当前任务
            fields: partial update（点分路径或嵌套 dict）

        Returns:
            (候选任务, 发生变化的字段列表)，列表顺序与请求顺序一致

        Raises:
            InvalidFieldError: 路径未知/只读，或取值未通过模型校验
        """
        flat = flatten_fields(fields)
        current = task.model_dump(mode="json")
        candidate = copy.deepcopy(current)

        for path, value in flat.items():
            check_updatable(path)
            set_path(candidate, path, value)

        try:
            validated = Task.model_validate(candidate)
        except ValidationError as e:
            error = e.errors()[0]
            loc = ".".join(str(part) for part in error["loc"])
            raise InvalidFieldError(loc or "task", error["msg"]) from e

        normalized = validated.model_dump(mode="json")
        changes = [
            FieldChange(
                field_name=path,
                old_value=get_path(current, path),
                new_value=get_path(normalized, path),
            )
            for path in flat
            if get_path(current, path) != get_path(normalized, path)
        ]
        return validated, changes

    async def record_change(
        self,
        task_id: str,
        field_name: str,
        old_value: Any,
        new_value: Any,
        notes: str,
        actor_id: str,
        batch_id: str,
    ) -> FieldOutcome:
        """写入一条 UpdateRecord，再追加 updated 时间轴事件

        记录写入失败时不再追加事件（二者属于同一失败单元）。
        """
        record = UpdateRecord(
            record_id=str(ULID()),
            task_id=task_id,
            field_name=field_name,
            update_type=get_update_type(field_name),
            old_value=old_value,
            new_value=new_value,
            updated_by=actor_id,
            updated_at=datetime.now(UTC),
            notes=notes,
            batch_id=batch_id,
        )
        outcome = FieldOutcome(field_name=field_name)

        error, attempts = await write_with_retry(
            "append_update_record",
            lambda: self._update_store.append_update_record(record),
            attempts=self._config.audit_retry_attempts,
            backoff_s=self._config.audit_retry_backoff_s,
            timeout_s=self._config.storage_timeout_s,
            task_id=task_id,
            field_name=field_name,
            batch_id=batch_id,
        )
        if error is not None:
            outcome.failures.append(
                AuditFailure(
                    kind=AuditWriteKind.UPDATE_RECORD,
                    task_id=task_id,
                    field_name=field_name,
                    error_type=type(error).__name__,
                    error_message=str(error),
                    attempts=attempts,
                )
            )
            return outcome

        outcome.record = record
        display_name = get_field_display_name(field_name)
        _, failure = await self._timeline.append_reported(
            task_id,
            TimelineEventType.UPDATED,
            f"更新{display_name}：{_preview(old_value)} → {_preview(new_value)}",
            FieldUpdatedMetadata(
                field_changed=field_name,
                old_value=old_value,
                new_value=new_value,
                batch_id=batch_id,
            ).model_dump(mode="json"),
            user_id=actor_id,
            field_name=field_name,
        )
        if failure is not None:
            outcome.failures.append(failure)
        return outcome

    async def record_batch(
        self,
        task_id: str,
        changes: list[FieldChange],
        notes: str,
        actor_id: str,
        batch_id: str,
    ) -> tuple[list[UpdateRecord], list[AuditFailure]]:
        """逐字段记录一批变更，单字段失败不影响其他字段"""
        records: list[UpdateRecord] = []
        failures: list[AuditFailure] = []
        for change in changes:
            outcome = await self.record_change(
                task_id,
                change.field_name,
                change.old_value,
                change.new_value,
                notes,
                actor_id,
                batch_id,
            )
            if outcome.record is not None:
                records.append(outcome.record)
            failures.extend(outcome.failures)

        log.info(
            "update_batch_recorded",
            task_id=task_id,
            batch_id=batch_id,
            changed_fields=[c.field_name for c in changes],
            record_count=len(records),
            failure_count=len(failures),
        )
        return records, failures
