"""CLI 入口模块 -- python -m tasktrail.core <command>

支持的命令：
  init-db                         初始化 SQLite 数据库
  timeline <task_id> [--subtasks] 打印任务时间轴
"""

import asyncio
import sys

from .config import get_db_path
from .logging_config import setup_logging

USAGE = """用法: python -m tasktrail.core <command>
命令:
  init-db                         初始化 SQLite 数据库
  timeline <task_id> [--subtasks] 打印任务时间轴（--subtasks 包含子任务）"""


def main(argv: list[str] | None = None) -> int:
    """CLI 主入口，返回进程退出码"""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(USAGE)
        return 1

    setup_logging()
    command = args[0]

    if command == "init-db":
        asyncio.run(init_database())
        return 0
    if command == "timeline":
        rest = args[1:]
        include_subtasks = "--subtasks" in rest
        positional = [a for a in rest if a != "--subtasks"]
        if len(positional) != 1:
            print(USAGE)
            return 1
        return asyncio.run(print_timeline(positional[0], include_subtasks))

    print(f"未知命令: {command}")
    print("可用命令: init-db, timeline")
    return 1


async def init_database() -> None:
    """创建数据库文件与表结构"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    await store_group.close()
    print("初始化完成")


async def print_timeline(task_id: str, include_subtasks: bool) -> int:
    """按时间顺序打印任务时间轴"""
    from .config import load_engine_config
    from .engine import create_engine
    from .exceptions import TaskNotFoundError

    engine = await create_engine(load_engine_config())
    try:
        events = await engine.get_timeline(task_id, include_subtasks=include_subtasks)
    except TaskNotFoundError as e:
        print(str(e))
        return 1
    finally:
        await engine.close()

    for event in events:
        marker = "*" if event.is_milestone else " "
        print(
            f"{marker} {event.event_date.isoformat()}  {event.task_id}  "
            f"[{event.event_type}] {event.description}"
        )
    print(f"共 {len(events)} 条事件")
    return 0


if __name__ == "__main__":
    sys.exit(main())
