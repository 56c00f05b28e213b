"""点分字段路径工具

update 请求使用点分路径寻址嵌套字段（例如 custom_fields.priority）。
写入时缺失的中间层级创建为空 dict；读取时穿过缺失层级返回 None。
可更新的路径是封闭集合，由 Task 模型定义推导。
"""

from typing import Any

from .exceptions import InvalidFieldError
from .models.task import CustomFields

# 可直接更新的顶层字段
_TOP_LEVEL_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "status",
    "assignee_id",
    "due_date",
    "start_date",
)

# 由引擎维护、不允许通过 update 修改的字段
READ_ONLY_FIELDS: frozenset[str] = frozenset(
    {
        "task_id",
        "parent_id",
        "children",
        "level",
        "created_at",
        "updated_at",
        "completed_at",
    }
)

UPDATABLE_FIELDS: frozenset[str] = frozenset(
    [*_TOP_LEVEL_FIELDS]
    + [f"custom_fields.{name}" for name in CustomFields.model_fields]
)

# 允许以嵌套 dict 形式提交的分组字段
_NESTED_GROUPS: frozenset[str] = frozenset({"custom_fields"})


def get_path(data: dict[str, Any], path: str) -> Any:
    """读取点分路径对应的值，穿过缺失层级时返回 None"""
    current: Any = data
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """写入点分路径对应的值，缺失的中间层级创建为空 dict"""
    *parents, last_key = path.split(".")
    target = data
    for key in parents:
        if not isinstance(target.get(key), dict):
            target[key] = {}
        target = target[key]
    target[last_key] = value


def flatten_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """将 update 请求展开为点分路径

    {"custom_fields": {"progress": 50}} -> {"custom_fields.progress": 50}
    点分键原样保留。同一路径重复出现时后者覆盖前者。
    """
    flat: dict[str, Any] = {}
    for key, value in fields.items():
        if key in _NESTED_GROUPS and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                flat[f"{key}.{sub_key}"] = sub_value
        else:
            flat[key] = value
    return flat


def check_updatable(path: str) -> None:
    """校验字段路径可被 update 修改

    Raises:
        InvalidFieldError: 路径为空、只读或未知
    """
    if not path or any(not segment for segment in path.split(".")):
        raise InvalidFieldError(path, "字段路径格式错误")
    if path in READ_ONLY_FIELDS:
        raise InvalidFieldError(path, "字段由引擎维护，不可直接更新")
    if path not in UPDATABLE_FIELDS:
        raise InvalidFieldError(path, "未知字段")
