"""TimelineEvent metadata 子类型

引擎自身写入的时间轴事件的结构化 metadata 定义。
"""

from typing import Any

from pydantic import BaseModel, Field

from .enums import ProgressPolicy, TaskStatus


class TaskCreatedMetadata(BaseModel):
    """created 事件 metadata"""

    initial_status: TaskStatus
    assignee_id: str | None = None
    parent_id: str | None = None
    level: int = 0


class FieldUpdatedMetadata(BaseModel):
    """updated 事件 metadata"""

    field_changed: str = Field(description="原始字段路径")
    old_value: Any = None
    new_value: Any = None
    batch_id: str = Field(default="")


class TaskCompletedMetadata(BaseModel):
    """completed 事件 metadata"""

    completion_time: str = Field(description="完成时间（ISO 8601）")
    notes: str = Field(default="")
    batch_id: str = Field(default="")


class ProgressAggregatedMetadata(BaseModel):
    """progress_aggregated 事件 metadata"""

    policy: ProgressPolicy
    child_count: int
    counted_children: int
    completed_children: int
    old_progress: int
    new_progress: int
    triggered_by: str = Field(description="触发聚合的子任务 ID")
