"""SQLite 存储公共工具

- 时间戳统一序列化为定长 ISO 8601（微秒精度，UTC），保证字符串比较与时间顺序一致
- OperationalError / DatabaseError（锁超时、磁盘 I/O、文件损坏等）映射为 StorageUnavailableError
"""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import aiosqlite

from ..exceptions import StorageUnavailableError
from ..models.task import ensure_utc


def format_ts(value: datetime | None) -> str | None:
    """datetime -> 定长 ISO 8601 字符串"""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_ts(value: str | None) -> datetime | None:
    """ISO 8601 字符串 -> datetime"""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def load_json(value: str | None, default: Any = None) -> Any:
    if value is None:
        return default
    return json.loads(value)


@asynccontextmanager
async def storage_errors(operation: str) -> AsyncIterator[None]:
    """将 SQLite 运行期错误映射为 StorageUnavailableError

    IntegrityError（约束冲突）与 ProgrammingError（SQL 用法错误）属于代码缺陷，原样抛出。
    """
    try:
        yield
    except (aiosqlite.IntegrityError, aiosqlite.ProgrammingError):
        raise
    except aiosqlite.DatabaseError as e:
        raise StorageUnavailableError(operation, e) from e
