"""任务层级遍历

深度优先（先序）遍历 children，visited 集合保证在层级数据损坏（环、重复引用）
时仍能终止；悬空的子任务 ID 跳过并记录告警。
"""

import structlog

from ..exceptions import TaskNotFoundError
from ..store.protocols import TaskStore
from .storage_guard import guarded

log = structlog.get_logger()


async def collect_subtree_ids(
    task_store: TaskStore,
    root_id: str,
    timeout_s: float,
) -> list[str]:
    """收集 root_id 及其所有后代的 ID（先序，children 顺序）

    Raises:
        TaskNotFoundError: root_id 不存在
    """
    root = await guarded("get_task", task_store.get_task(root_id), timeout_s)
    if root is None:
        raise TaskNotFoundError(root_id)

    ordered: list[str] = []
    visited: set[str] = set()
    # 栈中保存待访问 ID；子任务逆序压栈以保持 children 顺序
    stack: list[str] = [root_id]
    children_of: dict[str, list[str]] = {root_id: root.children}

    while stack:
        task_id = stack.pop()
        if task_id in visited:
            log.warning("subtree_revisit_skipped", root_id=root_id, task_id=task_id)
            continue

        if task_id not in children_of:
            task = await guarded("get_task", task_store.get_task(task_id), timeout_s)
            if task is None:
                log.warning("subtree_dangling_child", root_id=root_id, task_id=task_id)
                continue
            children_of[task_id] = task.children

        visited.add(task_id)
        ordered.append(task_id)
        stack.extend(reversed(children_of.pop(task_id)))

    return ordered
