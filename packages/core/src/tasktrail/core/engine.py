"""TaskEngine -- 任务记录引擎对外入口

组合存储后端与各服务：任务仓储、更新记录、时间轴、进度聚合。
使用 create_engine() 按配置创建实例，使用完毕后调用 close()。

每个方法都接受可选的 timeout_s，覆盖本次调用中单次存储调用的超时；
调用方也可以直接取消协程，多字段更新不会在持久化状态中留下半个批次。
"""

from datetime import datetime
from typing import Any

import structlog

from .config import EngineConfig, load_engine_config
from .models.results import MutationResult
from .models.task import EnrichedTask, TaskDraft
from .models.timeline import TimelineEvent, TimelineQuery
from .models.update_record import UpdateRecord
from .services.locks import TaskLocks
from .services.repository import TaskRepository
from .store import StoreGroup, create_memory_store_group, create_store_group

log = structlog.get_logger()


class TaskEngine:
    """任务记录引擎"""

    def __init__(self, stores: StoreGroup, config: EngineConfig) -> None:
        self._stores = stores
        self._config = config
        self._locks = TaskLocks()
        self._repository = TaskRepository(stores, config, self._locks)

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def stores(self) -> StoreGroup:
        return self._stores

    def _repo(self, timeout_s: float | None) -> TaskRepository:
        if timeout_s is None:
            return self._repository
        config = self._config.model_copy(update={"storage_timeout_s": timeout_s})
        # 共享锁表，保证覆盖超时的调用仍与其他调用串行
        return TaskRepository(self._stores, config, self._locks)

    async def create_task(
        self,
        draft: TaskDraft | dict[str, Any],
        parent_id: str | None = None,
        actor_id: str | None = None,
        timeout_s: float | None = None,
    ) -> MutationResult:
        """创建任务（可选挂到父任务下）"""
        return await self._repo(timeout_s).create_task(draft, parent_id, actor_id)

    async def get_task(
        self,
        task_id: str,
        timeout_s: float | None = None,
    ) -> EnrichedTask:
        """查询任务详情"""
        return await self._repo(timeout_s).get_task(task_id)

    async def update_task(
        self,
        task_id: str,
        fields: dict[str, Any],
        notes: str = "",
        actor_id: str | None = None,
        timeout_s: float | None = None,
    ) -> MutationResult:
        """partial update，每个变化字段生成一条更新记录"""
        return await self._repo(timeout_s).update_task(task_id, fields, notes, actor_id)

    async def get_timeline(
        self,
        task_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        event_types: list[str] | None = None,
        include_subtasks: bool = False,
        milestones_only: bool = False,
        timeout_s: float | None = None,
    ) -> list[TimelineEvent]:
        """查询任务时间轴（按 event_date 正序）"""
        query = TimelineQuery(
            start_date=start_date,
            end_date=end_date,
            event_types=event_types,
            include_subtasks=include_subtasks,
            milestones_only=milestones_only,
        )
        return await self._repo(timeout_s).timeline.query(task_id, query)

    async def add_timeline_event(
        self,
        task_id: str,
        event_type: str,
        description: str = "",
        metadata: dict[str, Any] | None = None,
        is_milestone: bool = False,
        user_id: str | None = None,
        timeout_s: float | None = None,
    ) -> TimelineEvent:
        """追加自定义时间轴事件

        Raises:
            TaskNotFoundError: 任务不存在
            InvalidFieldError: metadata 含无法转换为 JSON 的值
            StorageUnavailableError: 写入失败
        """
        repository = self._repo(timeout_s)
        await repository.load_task(task_id)
        return await repository.timeline.append(
            task_id, event_type, description, metadata, is_milestone, user_id
        )

    async def get_update_history(
        self,
        task_id: str,
        batch_id: str | None = None,
        timeout_s: float | None = None,
    ) -> list[UpdateRecord]:
        """查询字段级更新历史（按写入顺序）"""
        return await self._repo(timeout_s).list_update_records(task_id, batch_id)

    async def get_subtree_ids(
        self,
        task_id: str,
        timeout_s: float | None = None,
    ) -> list[str]:
        """task_id 及其所有后代的 ID"""
        return await self._repo(timeout_s).get_subtree_ids(task_id)

    async def close(self) -> None:
        await self._stores.close()


async def create_engine(config: EngineConfig | None = None) -> TaskEngine:
    """按配置创建引擎

    Args:
        config: 引擎配置，默认从环境变量加载

    Returns:
        TaskEngine 实例
    """
    config = config or load_engine_config()
    if config.storage_backend == "memory":
        stores = create_memory_store_group()
    else:
        stores = await create_store_group(config.db_path)

    log.info(
        "task_engine_started",
        storage_backend=config.storage_backend,
        db_path=config.db_path if config.storage_backend == "sqlite" else None,
        progress_policy=config.progress_policy.value,
    )
    return TaskEngine(stores, config)
