"""task 级别锁

同一 task_id 的变更操作（创建子任务、更新、进度重算）串行执行；
不同 task 之间互不阻塞。跨任务操作按子任务 -> 父任务的顺序逐个加锁。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class TaskLocks:
    """按 task_id 分配的 asyncio.Lock 注册表"""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self._guard = asyncio.Lock()

    @asynccontextmanager
    async def hold(self, task_id: str) -> AsyncIterator[None]:
        """持有 task 级别锁，无等待者时释放注册表条目，避免字典无限增长"""
        async with self._guard:
            lock = self._locks.get(task_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[task_id] = lock
            self._waiters[task_id] = self._waiters.get(task_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            async with self._guard:
                self._waiters[task_id] -= 1
                if self._waiters[task_id] == 0:
                    self._waiters.pop(task_id, None)
                    self._locks.pop(task_id, None)

    def is_locked(self, task_id: str) -> bool:
        lock = self._locks.get(task_id)
        return lock is not None and lock.locked()
