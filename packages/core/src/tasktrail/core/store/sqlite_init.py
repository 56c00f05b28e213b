"""SQLite 数据库初始化

PRAGMA 配置 + 三张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id       TEXT PRIMARY KEY,
    title         TEXT NOT NULL,
    description   TEXT NOT NULL DEFAULT '',
    status        TEXT NOT NULL DEFAULT 'todo',
    assignee_id   TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL,
    due_date      TEXT,
    start_date    TEXT,
    completed_at  TEXT,
    parent_id     TEXT,
    children      TEXT NOT NULL DEFAULT '[]',
    level         INTEGER NOT NULL DEFAULT 0,
    custom_fields TEXT NOT NULL DEFAULT '{}',

    FOREIGN KEY (parent_id) REFERENCES tasks(task_id)
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_parent_id ON tasks(parent_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);",
]

# update_records 表 DDL
_UPDATE_RECORDS_DDL = """
CREATE TABLE IF NOT EXISTS update_records (
    record_id   TEXT PRIMARY KEY,
    task_id     TEXT NOT NULL,
    field_name  TEXT NOT NULL,
    update_type TEXT NOT NULL,
    old_value   TEXT NOT NULL DEFAULT 'null',
    new_value   TEXT NOT NULL DEFAULT 'null',
    updated_by  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,
    notes       TEXT NOT NULL DEFAULT '',
    batch_id    TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_UPDATE_RECORDS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_update_records_task ON update_records(task_id, updated_at);",
    "CREATE INDEX IF NOT EXISTS idx_update_records_batch ON update_records(batch_id);",
]

# timeline_events 表 DDL
_TIMELINE_DDL = """
CREATE TABLE IF NOT EXISTS timeline_events (
    event_id     TEXT PRIMARY KEY,
    task_id      TEXT NOT NULL,
    event_type   TEXT NOT NULL,
    event_date   TEXT NOT NULL,
    user_id      TEXT,
    description  TEXT NOT NULL DEFAULT '',
    metadata     TEXT NOT NULL DEFAULT '{}',
    is_milestone INTEGER NOT NULL DEFAULT 0,

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_TIMELINE_INDEXES = [
    # 任务内事件时间排序索引
    "CREATE INDEX IF NOT EXISTS idx_timeline_task_date ON timeline_events(task_id, event_date);",
    "CREATE INDEX IF NOT EXISTS idx_timeline_type ON timeline_events(event_type);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_UPDATE_RECORDS_DDL)
    await conn.execute(_TIMELINE_DDL)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _UPDATE_RECORDS_INDEXES + _TIMELINE_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
