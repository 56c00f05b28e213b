"""TimelineLog -- 任务时间轴

append-only 事件流；查询支持子树范围、日期闭区间、事件类型与里程碑过滤，
结果按 event_date 正序，每次调用重新计算。
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import TypeAdapter
from ulid import ULID

from ..config import EngineConfig
from ..exceptions import InvalidFieldError, TaskNotFoundError
from ..models.enums import AuditWriteKind
from ..models.results import AuditFailure
from ..models.timeline import TimelineEvent, TimelineQuery
from ..store.protocols import TaskStore, TimelineStore
from .hierarchy import collect_subtree_ids
from .storage_guard import guarded, write_with_retry

log = structlog.get_logger()

_METADATA_ADAPTER = TypeAdapter(dict[str, Any])


class TimelineLog:
    """任务时间轴服务"""

    def __init__(
        self,
        timeline_store: TimelineStore,
        task_store: TaskStore,
        config: EngineConfig,
    ) -> None:
        self._timeline_store = timeline_store
        self._task_store = task_store
        self._config = config

    @staticmethod
    def build_event(
        task_id: str,
        event_type: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
        is_milestone: bool = False,
        user_id: str | None = None,
    ) -> TimelineEvent:
        """构造事件：ID 与时间戳在调用时分配

        metadata 统一转换为 JSON 形式（枚举 -> 值，datetime -> ISO 字符串），
        两种存储读回的类型一致。

        Raises:
            InvalidFieldError: metadata 含无法转换为 JSON 的值
        """
        try:
            plain = _METADATA_ADAPTER.dump_python(metadata or {}, mode="json")
        except ValueError as e:  # PydanticSerializationError
            raise InvalidFieldError("metadata", str(e)) from e
        return TimelineEvent(
            event_id=str(ULID()),
            task_id=task_id,
            event_type=event_type,
            event_date=datetime.now(UTC),
            user_id=user_id,
            description=description,
            metadata=plain,
            is_milestone=is_milestone,
        )

    async def append(
        self,
        task_id: str,
        event_type: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
        is_milestone: bool = False,
        user_id: str | None = None,
    ) -> TimelineEvent:
        """追加事件（单次写入，失败直接抛出）"""
        event = self.build_event(
            task_id, event_type, description, metadata, is_milestone, user_id
        )
        await guarded(
            "append_event",
            self._timeline_store.append_event(event),
            self._config.storage_timeout_s,
        )
        return event

    async def append_reported(
        self,
        task_id: str,
        event_type: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
        is_milestone: bool = False,
        user_id: str | None = None,
        field_name: str | None = None,
    ) -> tuple[TimelineEvent | None, AuditFailure | None]:
        """追加事件（有限次重试），失败时返回 AuditFailure 而不抛出

        事件对象只构造一次，重试写入同一 event_id 与时间戳。
        """
        event = self.build_event(
            task_id, event_type, description, metadata, is_milestone, user_id
        )
        error, attempts = await write_with_retry(
            "append_event",
            lambda: self._timeline_store.append_event(event),
            attempts=self._config.audit_retry_attempts,
            backoff_s=self._config.audit_retry_backoff_s,
            timeout_s=self._config.storage_timeout_s,
            task_id=task_id,
            event_type=event_type,
        )
        if error is None:
            return event, None
        return None, AuditFailure(
            kind=AuditWriteKind.TIMELINE_EVENT,
            task_id=task_id,
            field_name=field_name,
            event_type=event_type,
            error_type=type(error).__name__,
            error_message=str(error),
            attempts=attempts,
        )

    async def query(
        self,
        task_id: str,
        query: TimelineQuery | None = None,
    ) -> list[TimelineEvent]:
        """查询任务时间轴

        Raises:
            TaskNotFoundError: task_id 不存在
        """
        query = query or TimelineQuery()
        timeout_s = self._config.storage_timeout_s

        if query.include_subtasks:
            task_ids = await collect_subtree_ids(self._task_store, task_id, timeout_s)
        else:
            task = await guarded("get_task", self._task_store.get_task(task_id), timeout_s)
            if task is None:
                raise TaskNotFoundError(task_id)
            task_ids = [task_id]

        events = await guarded(
            "query_events",
            self._timeline_store.query_events(task_ids, query),
            timeout_s,
        )
        # 各存储已按时间排序，这里统一保证顺序（稳定排序，同一时间保持存储顺序）
        events.sort(key=lambda e: e.event_date)

        log.debug(
            "timeline_queried",
            task_id=task_id,
            task_count=len(task_ids),
            event_count=len(events),
        )
        return events
