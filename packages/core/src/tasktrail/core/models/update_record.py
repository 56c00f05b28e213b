"""UpdateRecord Domain Model

更新记录 append-only，不允许更新或删除。
同一次 update_task 调用产生的所有记录共享 batch_id。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import UpdateType


class UpdateRecord(BaseModel):
    """单个字段的一次变更"""

    model_config = ConfigDict(frozen=True)

    record_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID")
    field_name: str = Field(description="字段路径，例如 custom_fields.progress")
    update_type: UpdateType = Field(description="变更类别")
    old_value: Any = Field(default=None, description="旧值（JSON 形式）")
    new_value: Any = Field(default=None, description="新值（JSON 形式）")
    updated_by: str = Field(description="操作者 ID")
    updated_at: datetime = Field(description="记录时间")
    notes: str = Field(default="", description="更新备注")
    batch_id: str = Field(description="批次 ID")


class FieldChange(BaseModel):
    """diff 结果：单个发生变化的字段"""

    field_name: str
    old_value: Any = None
    new_value: Any = None
