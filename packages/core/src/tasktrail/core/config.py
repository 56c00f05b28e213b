"""配置模块 -- 可通过环境变量覆盖

包含数据库路径、存储后端选择、存储调用超时、审计写入重试次数、
父任务进度聚合策略等可配置项。
"""

import os
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field, ValidationError

from .models.enums import ProgressPolicy

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("TASKTRAIL_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "TASKTRAIL_DB_PATH",
        str(_get_base_dir() / "sqlite" / "tasktrail.db"),
    )


# 默认系统操作者（进度聚合等自动更新的 updated_by）
DEFAULT_SYSTEM_ACTOR: str = "system"

# 时间轴描述中旧值/新值的最大展示长度
VALUE_PREVIEW_LENGTH: int = 200


class EngineConfig(BaseModel):
    """任务引擎配置 -- 从环境变量加载

    环境变量:
        TASKTRAIL_STORAGE_BACKEND: 存储后端（memory/sqlite）
        TASKTRAIL_DB_PATH: SQLite 数据库路径
        TASKTRAIL_STORAGE_TIMEOUT_S: 单次存储调用超时（秒）
        TASKTRAIL_AUDIT_RETRY_ATTEMPTS: 审计写入最大尝试次数
        TASKTRAIL_AUDIT_RETRY_BACKOFF_S: 审计写入重试间隔基数（秒）
        TASKTRAIL_PROGRESS_POLICY: 父任务进度聚合策略
        TASKTRAIL_PROPAGATE_STATUS: 是否同时向上传播状态
        TASKTRAIL_SYSTEM_ACTOR: 系统自动更新使用的操作者 ID
    """

    storage_backend: Literal["memory", "sqlite"] = Field(
        default="sqlite",
        description="存储后端：memory / sqlite",
    )
    db_path: str = Field(
        default_factory=get_db_path,
        description="SQLite 数据库路径（仅 sqlite 后端使用）",
    )
    storage_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="单次存储调用超时（秒）",
    )
    audit_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="审计记录/时间轴事件写入的最大尝试次数",
    )
    audit_retry_backoff_s: float = Field(
        default=0.05,
        ge=0,
        description="重试间隔基数（秒），第 n 次重试等待 n 倍",
    )
    progress_policy: ProgressPolicy = Field(
        default=ProgressPolicy.COMPLETED_RATIO,
        description="父任务进度聚合策略",
    )
    propagate_status: bool = Field(
        default=False,
        description="聚合进度时是否同时推进父任务状态",
    )
    system_actor_id: str = Field(
        default=DEFAULT_SYSTEM_ACTOR,
        description="系统自动更新的操作者 ID",
    )


_ENV_FIELDS: dict[str, str] = {
    "TASKTRAIL_STORAGE_BACKEND": "storage_backend",
    "TASKTRAIL_DB_PATH": "db_path",
    "TASKTRAIL_STORAGE_TIMEOUT_S": "storage_timeout_s",
    "TASKTRAIL_AUDIT_RETRY_ATTEMPTS": "audit_retry_attempts",
    "TASKTRAIL_AUDIT_RETRY_BACKOFF_S": "audit_retry_backoff_s",
    "TASKTRAIL_PROGRESS_POLICY": "progress_policy",
    "TASKTRAIL_PROPAGATE_STATUS": "propagate_status",
    "TASKTRAIL_SYSTEM_ACTOR": "system_actor_id",
}


def load_engine_config() -> EngineConfig:
    """从环境变量加载引擎配置

    非法取值记录告警并回退到默认值，不阻塞启动。

    Returns:
        EngineConfig 实例
    """
    kwargs: dict = {}

    for env_var, field_name in _ENV_FIELDS.items():
        val = os.environ.get(env_var)
        if not val:
            continue
        try:
            # 逐项校验，单个非法值不影响其他配置
            EngineConfig.model_validate({field_name: val})
        except ValidationError:
            log.warning(
                "invalid_engine_config",
                env_var=env_var,
                value=val,
                fallback=EngineConfig.model_fields[field_name].get_default(
                    call_default_factory=True
                ),
            )
            continue
        kwargs[field_name] = val

    return EngineConfig(**kwargs)
