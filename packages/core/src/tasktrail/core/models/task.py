"""Task Domain Model

任务以父子层级组织：children 按创建顺序保存子任务 ID，
level 恒等于父任务 level + 1（根任务为 0）。
所有时间戳均为 UTC，naive datetime 按 UTC 解释。
"""

import math
from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from .enums import Priority, TaskStatus


def ensure_utc(value: datetime | None) -> datetime | None:
    """naive datetime 按 UTC 解释，aware datetime 转换到 UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class CustomFields(BaseModel):
    """任务自定义字段"""

    priority: Priority = Field(default=Priority.MEDIUM, description="优先级")
    estimated_hours: float = Field(default=0, ge=0, description="预估工时")
    actual_hours: float = Field(default=0, ge=0, description="实际工时")
    progress: int = Field(default=0, ge=0, le=100, description="进度（0-100）")
    tags: list[str] = Field(default_factory=list, description="标签（保持顺序）")
    category: str = Field(default="", description="分类")
    difficulty: int = Field(default=5, ge=1, le=10, description="难度（1-10）")


class Task(BaseModel):
    """Task 数据模型

    由 TaskRepository 独占；children 只是反向引用列表，仅用于遍历。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    title: str = Field(min_length=1, description="任务标题")
    description: str = Field(default="", description="任务描述")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="当前状态")
    assignee_id: str | None = Field(default=None, description="负责人 ID")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    due_date: datetime | None = Field(default=None, description="截止日期")
    start_date: datetime | None = Field(default=None, description="开始日期")
    completed_at: datetime | None = Field(
        default=None,
        description="完成时间，仅在流转到 completed 时写入",
    )
    parent_id: str | None = Field(default=None, description="父任务 ID，根任务为空")
    children: list[str] = Field(default_factory=list, description="子任务 ID（创建顺序）")
    level: int = Field(default=0, ge=0, description="层级深度")
    custom_fields: CustomFields = Field(
        default_factory=CustomFields,
        description="自定义字段",
    )

    @field_validator(
        "created_at", "updated_at", "due_date", "start_date", "completed_at"
    )
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class CustomFieldsDraft(BaseModel):
    """创建任务时可指定的自定义字段（actual_hours/progress 固定从 0 开始）"""

    priority: Priority = Field(default=Priority.MEDIUM)
    estimated_hours: float = Field(default=0, ge=0)
    tags: list[str] = Field(default_factory=list)
    category: str = Field(default="")
    difficulty: int = Field(default=5, ge=1, le=10)


class TaskDraft(BaseModel):
    """创建任务请求载荷"""

    title: str = Field(min_length=1, description="任务标题")
    description: str = Field(default="")
    status: TaskStatus = Field(default=TaskStatus.TODO)
    assignee_id: str | None = Field(default=None)
    due_date: datetime | None = Field(default=None)
    start_date: datetime | None = Field(default=None)
    custom_fields: CustomFieldsDraft = Field(default_factory=CustomFieldsDraft)

    @field_validator("due_date", "start_date")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class EnrichedTask(Task):
    """读取视图：Task + 计算字段"""

    is_overdue: bool = Field(default=False, description="是否已逾期")
    days_remaining: int | None = Field(
        default=None,
        description="距截止日期的剩余天数（向上取整），无截止日期时为空",
    )


def enrich_task(task: Task, now: datetime | None = None) -> EnrichedTask:
    """为任务附加计算字段

    Args:
        task: 原始任务
        now: 计算基准时间，默认当前时间

    Returns:
        EnrichedTask 实例
    """
    now = ensure_utc(now) or datetime.now(UTC)
    is_overdue = False
    days_remaining: int | None = None
    if task.due_date is not None:
        is_overdue = task.status != TaskStatus.COMPLETED and task.due_date < now
        days_remaining = math.ceil((task.due_date - now).total_seconds() / 86400)

    return EnrichedTask(
        **task.model_dump(),
        is_overdue=is_overdue,
        days_remaining=days_remaining,
    )
