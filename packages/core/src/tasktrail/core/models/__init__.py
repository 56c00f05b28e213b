"""TaskTrail Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    NOMINAL_TRANSITIONS,
    AuditWriteKind,
    Priority,
    ProgressPolicy,
    TaskStatus,
    TimelineEventType,
    UpdateType,
    is_nominal_transition,
)
from .payloads import (
    FieldUpdatedMetadata,
    ProgressAggregatedMetadata,
    TaskCompletedMetadata,
    TaskCreatedMetadata,
)
from .results import AuditFailure, MutationResult
from .task import (
    CustomFields,
    CustomFieldsDraft,
    EnrichedTask,
    Task,
    TaskDraft,
    enrich_task,
    ensure_utc,
)
from .timeline import TimelineEvent, TimelineQuery
from .update_record import FieldChange, UpdateRecord

__all__ = [
    # 枚举
    "TaskStatus",
    "Priority",
    "TimelineEventType",
    "UpdateType",
    "ProgressPolicy",
    "AuditWriteKind",
    # 状态机
    "NOMINAL_TRANSITIONS",
    "is_nominal_transition",
    # Task
    "Task",
    "TaskDraft",
    "CustomFields",
    "CustomFieldsDraft",
    "EnrichedTask",
    "enrich_task",
    "ensure_utc",
    # UpdateRecord
    "UpdateRecord",
    "FieldChange",
    # Timeline
    "TimelineEvent",
    "TimelineQuery",
    # Metadata
    "TaskCreatedMetadata",
    "FieldUpdatedMetadata",
    "TaskCompletedMetadata",
    "ProgressAggregatedMetadata",
    # Results
    "AuditFailure",
    "MutationResult",
]
