"""TaskTrail 异常体系

TaskNotFoundError / ParentNotFoundError / InvalidFieldError 属于调用方错误，
携带出错的 ID 或字段直接返回给调用方。
StorageUnavailableError 表示存储端口暂时不可用，可重试。
"""


class TaskTrailError(Exception):
    """TaskTrail 基础异常"""

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class TaskNotFoundError(TaskTrailError):
    """请求的任务不存在"""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"任务 {task_id} 不存在")
        self.task_id = task_id


class ParentNotFoundError(TaskTrailError):
    """创建子任务时父任务不存在"""

    def __init__(self, parent_id: str) -> None:
        super().__init__(f"父任务 {parent_id} 不存在")
        self.parent_id = parent_id


class InvalidFieldError(TaskTrailError):
    """更新请求中的字段路径未知、不可更新或取值非法"""

    def __init__(self, field_name: str, reason: str) -> None:
        """
        Args:
            field_name: 出错的字段路径
            reason: 失败原因
        """
        super().__init__(f"字段 {field_name} 无效: {reason}")
        self.field_name = field_name
        self.reason = reason


class StorageUnavailableError(TaskTrailError):
    """存储端口暂时不可用（连接失败、锁超时、调用超时等）"""

    def __init__(self, operation: str, original_error: Exception | None = None) -> None:
        """
        Args:
            operation: 失败的存储操作名
            original_error: 原始异常
        """
        detail = f" -- {original_error}" if original_error is not None else ""
        super().__init__(f"存储不可用: {operation}{detail}", recoverable=True)
        self.operation = operation
        self.original_error = original_error
