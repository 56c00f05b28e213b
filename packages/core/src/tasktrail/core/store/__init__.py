"""TaskTrail Core Store -- 存储端口与实现

提供工厂函数创建共享同一后端的 Store 实例组：
SQLite（持久化）或内存（进程内，不持久化）。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .memory_store import (
    InMemoryTaskStore,
    InMemoryTimelineStore,
    InMemoryUpdateRecordStore,
)
from .protocols import TaskStore, TimelineStore, UpdateRecordStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .timeline_store import SqliteTimelineStore
from .update_store import SqliteUpdateRecordStore


class StoreGroup:
    """Store 实例组 -- 同一后端的三个存储"""

    def __init__(
        self,
        task_store: TaskStore,
        update_store: UpdateRecordStore,
        timeline_store: TimelineStore,
        conn: aiosqlite.Connection | None = None,
    ) -> None:
        self.task_store = task_store
        self.update_store = update_store
        self.timeline_store = timeline_store
        self.conn = conn

    async def close(self) -> None:
        """关闭底层连接（内存后端无需关闭）"""
        if self.conn is not None:
            await self.conn.close()
            self.conn = None


def create_memory_store_group() -> StoreGroup:
    """创建内存 Store 实例组"""
    return StoreGroup(
        task_store=InMemoryTaskStore(),
        update_store=InMemoryUpdateRecordStore(),
        timeline_store=InMemoryTimelineStore(),
    )


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 SQLite Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return sqlite_store_group(conn)


def sqlite_store_group(conn: aiosqlite.Connection) -> StoreGroup:
    """基于已初始化的连接创建 SQLite Store 实例组（共享连接锁）"""
    conn_lock = asyncio.Lock()
    return StoreGroup(
        task_store=SqliteTaskStore(conn, conn_lock),
        update_store=SqliteUpdateRecordStore(conn, conn_lock),
        timeline_store=SqliteTimelineStore(conn, conn_lock),
        conn=conn,
    )


__all__ = [
    "StoreGroup",
    "create_store_group",
    "create_memory_store_group",
    "sqlite_store_group",
    "TaskStore",
    "UpdateRecordStore",
    "TimelineStore",
    "SqliteTaskStore",
    "SqliteUpdateRecordStore",
    "SqliteTimelineStore",
    "InMemoryTaskStore",
    "InMemoryUpdateRecordStore",
    "InMemoryTimelineStore",
    "init_db",
]
