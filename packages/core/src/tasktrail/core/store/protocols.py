"""Store Protocol 接口定义 -- 存储端口

定义 TaskStore、UpdateRecordStore、TimelineStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
内存实现与 SQLite 实现需保持一致的可观察行为。
"""

from typing import Protocol

from ..models.task import Task
from ..models.timeline import TimelineEvent, TimelineQuery
from ..models.update_record import UpdateRecord


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> None:
        """创建任务记录

        task.parent_id 非空时，在同一事务内把任务追加到父任务 children 末尾；
        父任务不存在时抛出 ParentNotFoundError，且不写入任何数据。
        """
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def save_task(self, task: Task) -> None:
        """保存任务的可变字段（children 仅由 link_child 维护）

        任务不存在时抛出 TaskNotFoundError。
        """
        ...

    async def link_child(self, parent_id: str, child_id: str) -> None:
        """把 child_id 追加到父任务 children 末尾（已存在则忽略）"""
        ...


class UpdateRecordStore(Protocol):
    """UpdateRecord 存储接口

    更新记录 append-only：只允许插入，不允许更新或删除。
    """

    async def append_update_record(self, record: UpdateRecord) -> None:
        """追加更新记录"""
        ...

    async def list_update_records(
        self,
        task_id: str,
        batch_id: str | None = None,
    ) -> list[UpdateRecord]:
        """查询任务的更新记录，按写入顺序"""
        ...


class TimelineStore(Protocol):
    """TimelineEvent 存储接口

    时间轴 append-only：只允许插入，不允许更新或删除。
    """

    async def append_event(self, event: TimelineEvent) -> None:
        """追加时间轴事件"""
        ...

    async def query_events(
        self,
        task_ids: list[str],
        query: TimelineQuery,
    ) -> list[TimelineEvent]:
        """查询多个任务的时间轴事件，应用日期/类型/里程碑过滤，按 event_date 正序"""
        ...
