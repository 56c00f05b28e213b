"""TimelineStore SQLite 实现

timeline_events 表 append-only：只允许插入，不允许更新或删除。
查询结果按 event_date 正序，同一时间戳按写入顺序（rowid）。
"""

import asyncio

import aiosqlite

from ..models.timeline import TimelineEvent, TimelineQuery
from .sqlite_utils import dump_json, format_ts, load_json, parse_ts, storage_errors

# 单条语句的 task_id 绑定参数数（SQLite 旧版本上限 999）
_TASK_IDS_PER_QUERY = 500


class SqliteTimelineStore:
    """TimelineStore 的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        conn_lock: asyncio.Lock | None = None,
    ) -> None:
        self._conn = conn
        self._lock = conn_lock or asyncio.Lock()

    async def append_event(self, event: TimelineEvent) -> None:
        """追加时间轴事件（append-only）"""
        async with self._lock, storage_errors("append_event"):
            try:
                await self._conn.execute(
                    """
                    INSERT INTO timeline_events (event_id, task_id, event_type,
                                                 event_date, user_id, description,
                                                 metadata, is_milestone)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.event_id,
                        event.task_id,
                        event.event_type,
                        format_ts(event.event_date),
                        event.user_id,
                        event.description,
                        dump_json(event.metadata),
                        int(event.is_milestone),
                    ),
                )
                await self._conn.commit()
            except BaseException:
                await self._conn.rollback()
                raise

    async def query_events(
        self,
        task_ids: list[str],
        query: TimelineQuery,
    ) -> list[TimelineEvent]:
        """查询多个任务的时间轴事件（日期范围闭区间）

        task_ids 按 _TASK_IDS_PER_QUERY 分批查询后合并，避免超出 SQLite 绑定参数上限。
        """
        if not task_ids:
            return []
        task_ids = list(dict.fromkeys(task_ids))

        clauses: list[str] = []
        params: list[object] = []
        if query.start_date is not None:
            clauses.append("event_date >= ?")
            params.append(format_ts(query.start_date))
        if query.end_date is not None:
            clauses.append("event_date <= ?")
            params.append(format_ts(query.end_date))
        if query.event_types is not None:
            if not query.event_types:
                return []
            type_placeholders = ", ".join("?" for _ in query.event_types)
            clauses.append(f"event_type IN ({type_placeholders})")
            params.extend(query.event_types)
        if query.milestones_only:
            clauses.append("is_milestone = 1")

        rows: list[aiosqlite.Row] = []
        async with self._lock, storage_errors("query_events"):
            for start in range(0, len(task_ids), _TASK_IDS_PER_QUERY):
                chunk = task_ids[start : start + _TASK_IDS_PER_QUERY]
                placeholders = ", ".join("?" for _ in chunk)
                sql = (
                    "SELECT event_id, task_id, event_type, event_date, user_id, "
                    "description, metadata, is_milestone, rowid FROM timeline_events "
                    "WHERE "
                    + " AND ".join([f"task_id IN ({placeholders})", *clauses])
                    + " ORDER BY event_date ASC, rowid ASC"
                )
                cursor = await self._conn.execute(sql, [*chunk, *params])
                rows.extend(await cursor.fetchall())

        if len(task_ids) > _TASK_IDS_PER_QUERY:
            # 分批结果合并后重新按 (event_date, rowid) 排序
            rows.sort(key=lambda row: (row[3], row[8]))
        return [self._row_to_event(row) for row in rows]

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> TimelineEvent:
        """将数据库行转换为 TimelineEvent 模型"""
        return TimelineEvent(
            event_id=row[0],
            task_id=row[1],
            event_type=row[2],
            event_date=parse_ts(row[3]),
            user_id=row[4],
            description=row[5],
            metadata=load_json(row[6], default={}),
            is_milestone=bool(row[7]),
        )
