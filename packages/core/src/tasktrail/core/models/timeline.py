"""TimelineEvent Domain Model

时间轴事件 append-only，不允许更新或删除。
event_id 使用 ULID 格式，时间有序。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .task import ensure_utc


class TimelineEvent(BaseModel):
    """时间轴事件"""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(description="唯一标识，ULID 格式，时间有序")
    task_id: str = Field(description="关联的 Task ID")
    event_type: str = Field(description="事件类型（开放字符串）")
    event_date: datetime = Field(description="事件时间")
    user_id: str | None = Field(default=None, description="触发事件的用户 ID")
    description: str = Field(default="", description="可读描述")
    metadata: dict[str, Any] = Field(default_factory=dict, description="结构化 metadata")
    is_milestone: bool = Field(default=False, description="是否为里程碑")

    @field_validator("event_date")
    @classmethod
    def _normalize_tz(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TimelineQuery(BaseModel):
    """时间轴查询条件（日期范围为闭区间）"""

    start_date: datetime | None = Field(default=None)
    end_date: datetime | None = Field(default=None)
    event_types: list[str] | None = Field(default=None)
    include_subtasks: bool = Field(default=False)
    milestones_only: bool = Field(default=False)

    @field_validator("start_date", "end_date")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    def matches(self, event: TimelineEvent) -> bool:
        """判断事件是否满足过滤条件（不含 task 范围）"""
        if self.start_date is not None and event.event_date < self.start_date:
            return False
        if self.end_date is not None and event.event_date > self.end_date:
            return False
        if self.event_types is not None and event.event_type not in self.event_types:
            return False
        if self.milestones_only and not event.is_milestone:
            return False
        return True
