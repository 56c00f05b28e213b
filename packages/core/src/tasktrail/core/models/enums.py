"""枚举定义

包含 TaskStatus 状态机、Priority、时间轴事件类型、变更类别、进度聚合策略，
以及 NOMINAL_TRANSITIONS 常规流转映射。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态"""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# 常规状态流转。引擎不拒绝任何流转，仅对常规流转之外的变更记录告警。
NOMINAL_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.TODO: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.CANCELLED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.CANCELLED: set(),
}


class Priority(StrEnum):
    """任务优先级"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TimelineEventType(StrEnum):
    """内置时间轴事件类型

    event_type 字段本身是开放字符串，这里仅列出引擎自身写入的类型。
    """

    CREATED = "created"
    UPDATED = "updated"
    COMPLETED = "completed"
    PROGRESS_AGGREGATED = "progress_aggregated"


class UpdateType(StrEnum):
    """变更类别 -- 由字段路径静态映射"""

    STATUS = "status"
    DESCRIPTION = "description"
    ASSIGNEE = "assignee"
    DUE_DATE = "due_date"
    PROGRESS = "progress"
    NOTES = "notes"
    CUSTOM_FIELD = "custom_field"


class ProgressPolicy(StrEnum):
    """父任务进度聚合策略"""

    # round(100 * 已完成子任务数 / 计入子任务数)
    COMPLETED_RATIO = "completed_ratio"
    # 子任务 progress 的平均值（已完成子任务按 100 计）
    AVERAGE_PROGRESS = "average_progress"
    # 按 estimated_hours 加权的完成比例
    HOURS_WEIGHTED = "hours_weighted"


class AuditWriteKind(StrEnum):
    """审计写入及后续副作用的类别"""

    UPDATE_RECORD = "update_record"
    TIMELINE_EVENT = "timeline_event"
    # 祖先任务进度重算失败（子任务本身已提交）
    PROGRESS_ROLLUP = "progress_rollup"


def is_nominal_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """判断状态流转是否属于常规流转

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果属于常规流转，否则 False
    """
    allowed = NOMINAL_TRANSITIONS.get(from_status, set())
    return to_status in allowed
