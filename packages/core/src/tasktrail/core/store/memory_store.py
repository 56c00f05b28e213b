"""内存存储实现

键控容器保存任务、更新记录与时间轴事件，进程重启后不保留。
读写均复制模型，调用方持有的对象与存储内部状态互不影响。
"""

from ..exceptions import ParentNotFoundError, TaskNotFoundError
from ..models.task import Task
from ..models.timeline import TimelineEvent, TimelineQuery
from ..models.update_record import UpdateRecord


class InMemoryTaskStore:
    """TaskStore 的内存实现"""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}

    async def create_task(self, task: Task) -> None:
        """创建任务记录，并链接到父任务"""
        if task.parent_id is not None:
            parent = self._tasks.get(task.parent_id)
            if parent is None:
                raise ParentNotFoundError(task.parent_id)
            if task.task_id not in parent.children:
                parent.children.append(task.task_id)
        self._tasks[task.task_id] = task.model_copy(deep=True)

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        task = self._tasks.get(task_id)
        if task is None:
            return None
        return task.model_copy(deep=True)

    async def save_task(self, task: Task) -> None:
        """保存可变字段（children 等层级字段保持存储中的值）"""
        existing = self._tasks.get(task.task_id)
        if existing is None:
            raise TaskNotFoundError(task.task_id)
        self._tasks[task.task_id] = task.model_copy(
            update={
                "children": list(existing.children),
                "parent_id": existing.parent_id,
                "level": existing.level,
                "created_at": existing.created_at,
            },
            deep=True,
        )

    async def link_child(self, parent_id: str, child_id: str) -> None:
        """把 child_id 追加到父任务 children 末尾"""
        parent = self._tasks.get(parent_id)
        if parent is None:
            raise TaskNotFoundError(parent_id)
        if child_id not in parent.children:
            parent.children.append(child_id)


class InMemoryUpdateRecordStore:
    """UpdateRecordStore 的内存实现"""

    def __init__(self) -> None:
        self._records: list[UpdateRecord] = []

    async def append_update_record(self, record: UpdateRecord) -> None:
        """追加更新记录（append-only）"""
        self._records.append(record.model_copy(deep=True))

    async def list_update_records(
        self,
        task_id: str,
        batch_id: str | None = None,
    ) -> list[UpdateRecord]:
        """查询任务的更新记录，按写入顺序"""
        return [
            record.model_copy(deep=True)
            for record in self._records
            if record.task_id == task_id
            and (batch_id is None or record.batch_id == batch_id)
        ]


class InMemoryTimelineStore:
    """TimelineStore 的内存实现"""

    def __init__(self) -> None:
        self._events: list[TimelineEvent] = []

    async def append_event(self, event: TimelineEvent) -> None:
        """追加时间轴事件（append-only）"""
        self._events.append(event.model_copy(deep=True))

    async def query_events(
        self,
        task_ids: list[str],
        query: TimelineQuery,
    ) -> list[TimelineEvent]:
        """查询多个任务的时间轴事件，按 event_date 正序（同一时间保持写入顺序）"""
        wanted = set(task_ids)
        events = [
            event.model_copy(deep=True)
            for event in self._events
            if event.task_id in wanted and query.matches(event)
        ]
        events.sort(key=lambda e: e.event_date)
        return events
