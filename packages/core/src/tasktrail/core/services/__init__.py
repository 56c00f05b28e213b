"""TaskTrail Core Services -- 任务仓储、变更记录、时间轴与进度聚合"""

from .hierarchy import collect_subtree_ids
from .locks import TaskLocks
from .progress import ProgressAggregator, compute_progress
from .recorder import UpdateRecorder
from .repository import TaskRepository
from .storage_guard import guarded, write_with_retry
from .timeline import TimelineLog

__all__ = [
    "TaskRepository",
    "UpdateRecorder",
    "TimelineLog",
    "ProgressAggregator",
    "TaskLocks",
    "collect_subtree_ids",
    "compute_progress",
    "guarded",
    "write_with_retry",
]
