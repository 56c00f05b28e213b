"""UpdateRecordStore SQLite 实现

update_records 表 append-only：只允许插入，不允许更新或删除。
每条记录独立提交，单条失败不影响同批次其他记录。
"""

import asyncio

import aiosqlite

from ..models.enums import UpdateType
from ..models.update_record import UpdateRecord
from .sqlite_utils import dump_json, format_ts, load_json, parse_ts, storage_errors


class SqliteUpdateRecordStore:
    """UpdateRecordStore 的 SQLite 实现"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        conn_lock: asyncio.Lock | None = None,
    ) -> None:
        self._conn = conn
        self._lock = conn_lock or asyncio.Lock()

    async def append_update_record(self, record: UpdateRecord) -> None:
        """追加更新记录（append-only）"""
        async with self._lock, storage_errors("append_update_record"):
            try:
                await self._conn.execute(
                    """
                    INSERT INTO update_records (record_id, task_id, field_name,
                                                update_type, old_value, new_value,
                                                updated_by, updated_at, notes, batch_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.record_id,
                        record.task_id,
                        record.field_name,
                        record.update_type.value,
                        dump_json(record.old_value),
                        dump_json(record.new_value),
                        record.updated_by,
                        format_ts(record.updated_at),
                        record.notes,
                        record.batch_id,
                    ),
                )
                await self._conn.commit()
            except BaseException:
                await self._conn.rollback()
                raise

    async def list_update_records(
        self,
        task_id: str,
        batch_id: str | None = None,
    ) -> list[UpdateRecord]:
        """查询任务的更新记录，按写入顺序"""
        sql = (
            "SELECT record_id, task_id, field_name, update_type, old_value, new_value, "
            "updated_by, updated_at, notes, batch_id FROM update_records WHERE task_id = ?"
        )
        params: list[str] = [task_id]
        if batch_id is not None:
            sql += " AND batch_id = ?"
            params.append(batch_id)
        sql += " ORDER BY rowid ASC"

        async with self._lock, storage_errors("list_update_records"):
            cursor = await self._conn.execute(sql, params)
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> UpdateRecord:
        """将数据库行转换为 UpdateRecord 模型"""
        return UpdateRecord(
            record_id=row[0],
            task_id=row[1],
            field_name=row[2],
            update_type=UpdateType(row[3]),
            old_value=load_json(row[4]),
            new_value=load_json(row[5]),
            updated_by=row[6],
            updated_at=parse_ts(row[7]),
            notes=row[8],
            batch_id=row[9],
        )
