"""引擎调用结果模型

审计写入（更新记录、时间轴事件）失败不回滚主写入，
失败项通过 MutationResult.audit_failures 返回给调用方。
"""

from pydantic import BaseModel, Field

from .enums import AuditWriteKind
from .task import EnrichedTask
from .update_record import UpdateRecord


class AuditFailure(BaseModel):
    """单次审计写入失败"""

    kind: AuditWriteKind = Field(description="失败的写入类别")
    task_id: str
    field_name: str | None = Field(default=None, description="关联字段路径")
    event_type: str | None = Field(default=None, description="关联时间轴事件类型")
    error_type: str
    error_message: str
    attempts: int = Field(default=1, description="已尝试次数")


class MutationResult(BaseModel):
    """create_task / update_task 返回值"""

    task: EnrichedTask
    batch_id: str | None = Field(default=None, description="update 批次 ID")
    update_records: list[UpdateRecord] = Field(default_factory=list)
    audit_failures: list[AuditFailure] = Field(default_factory=list)

    @property
    def audit_complete(self) -> bool:
        return not self.audit_failures
