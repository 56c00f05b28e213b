"""TaskStore SQLite 实现

children 以 JSON 数组保存，维持创建顺序；
创建子任务时的父任务 children 追加与任务插入在同一事务内提交。
"""

import asyncio

import aiosqlite

from ..exceptions import ParentNotFoundError, TaskNotFoundError
from ..models.task import CustomFields, Task
from .sqlite_utils import dump_json, format_ts, load_json, parse_ts, storage_errors

_TASK_COLUMNS = (
    "task_id, title, description, status, assignee_id, created_at, updated_at, "
    "due_date, start_date, completed_at, parent_id, children, level, custom_fields"
)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        conn_lock: asyncio.Lock | None = None,
    ) -> None:
        self._conn = conn
        # 同一连接上的多语句事务不可与其他读写交错
        self._lock = conn_lock or asyncio.Lock()

    async def create_task(self, task: Task) -> None:
        """创建任务记录，并在同一事务内链接到父任务"""
        async with self._lock, storage_errors("create_task"):
            try:
                if task.parent_id is not None:
                    linked = await self._append_child(task.parent_id, task.task_id)
                    if not linked:
                        raise ParentNotFoundError(task.parent_id)
                await self._conn.execute(
                    f"""
                    INSERT INTO tasks ({_TASK_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        task.task_id,
                        task.title,
                        task.description,
                        task.status.value,
                        task.assignee_id,
                        format_ts(task.created_at),
                        format_ts(task.updated_at),
                        format_ts(task.due_date),
                        format_ts(task.start_date),
                        format_ts(task.completed_at),
                        task.parent_id,
                        dump_json(task.children),
                        task.level,
                        task.custom_fields.model_dump_json(),
                    ),
                )
                await self._conn.commit()
            except BaseException:
                await self._conn.rollback()
                raise

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        async with self._lock, storage_errors("get_task"):
            cursor = await self._conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM tasks WHERE task_id = ?",
                (task_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def save_task(self, task: Task) -> None:
        """保存可变字段（不触碰 children / parent_id / level / created_at）"""
        async with self._lock, storage_errors("save_task"):
            try:
                cursor = await self._conn.execute(
                    """
                    UPDATE tasks
                    SET title = ?, description = ?, status = ?, assignee_id = ?,
                        updated_at = ?, due_date = ?, start_date = ?,
                        completed_at = ?, custom_fields = ?
                    WHERE task_id = ?
                    """,
                    (
                        task.title,
                        task.description,
                        task.status.value,
                        task.assignee_id,
                        format_ts(task.updated_at),
                        format_ts(task.due_date),
                        format_ts(task.start_date),
                        format_ts(task.completed_at),
                        task.custom_fields.model_dump_json(),
                        task.task_id,
                    ),
                )
                if cursor.rowcount == 0:
                    raise TaskNotFoundError(task.task_id)
                await self._conn.commit()
            except BaseException:
                await self._conn.rollback()
                raise

    async def link_child(self, parent_id: str, child_id: str) -> None:
        """把 child_id 追加到父任务 children 末尾"""
        async with self._lock, storage_errors("link_child"):
            try:
                if not await self._append_child(parent_id, child_id):
                    raise TaskNotFoundError(parent_id)
                await self._conn.commit()
            except BaseException:
                await self._conn.rollback()
                raise

    async def _append_child(self, parent_id: str, child_id: str) -> bool:
        """事务内追加 child_id，父任务不存在时返回 False（不提交）"""
        cursor = await self._conn.execute(
            "SELECT children FROM tasks WHERE task_id = ?",
            (parent_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return False
        children: list[str] = load_json(row[0], default=[])
        if child_id not in children:
            children.append(child_id)
            await self._conn.execute(
                "UPDATE tasks SET children = ? WHERE task_id = ?",
                (dump_json(children), parent_id),
            )
        return True

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row[0],
            title=row[1],
            description=row[2],
            status=row[3],
            assignee_id=row[4],
            created_at=parse_ts(row[5]),
            updated_at=parse_ts(row[6]),
            due_date=parse_ts(row[7]),
            start_date=parse_ts(row[8]),
            completed_at=parse_ts(row[9]),
            parent_id=row[10],
            children=load_json(row[11], default=[]),
            level=row[12],
            custom_fields=CustomFields.model_validate_json(row[13]),
        )
