"""存储调用保护

- guarded: 为单次存储调用加超时，超时映射为 StorageUnavailableError
- write_with_retry: 审计写入（更新记录、时间轴事件）有限次重试，
  最终失败返回异常而不抛出，由调用方上报为 AuditFailure
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from ..exceptions import StorageUnavailableError

log = structlog.get_logger()

T = TypeVar("T")


async def guarded(operation: str, awaitable: Awaitable[T], timeout_s: float) -> T:
    """在超时约束下执行一次存储调用

    Raises:
        StorageUnavailableError: 调用超时或存储暂时不可用
    """
    try:
        async with asyncio.timeout(timeout_s):
            return await awaitable
    except TimeoutError as e:
        raise StorageUnavailableError(operation, e) from e


async def write_with_retry(
    operation: str,
    write: Callable[[], Awaitable[None]],
    *,
    attempts: int,
    backoff_s: float,
    timeout_s: float,
    **log_ctx: object,
) -> tuple[Exception | None, int]:
    """审计写入，StorageUnavailableError 时重试

    Args:
        operation: 存储操作名（日志用）
        write: 每次尝试构造一次写入协程
        attempts: 最大尝试次数
        backoff_s: 重试间隔基数，第 n 次重试前等待 n * backoff_s
        timeout_s: 单次调用超时

    Returns:
        (error, attempts_used) -- 成功时 error 为 None
    """
    for attempt in range(1, attempts + 1):
        try:
            await guarded(operation, write(), timeout_s)
            return None, attempt
        except StorageUnavailableError as e:
            if attempt < attempts:
                log.warning(
                    "audit_write_retry",
                    operation=operation,
                    attempt=attempt,
                    **log_ctx,
                )
                await asyncio.sleep(backoff_s * attempt)
                continue
            log.error(
                "audit_write_failed",
                operation=operation,
                attempts=attempt,
                error_type=type(e).__name__,
                **log_ctx,
            )
            return e, attempt
        except Exception as e:
            # 非暂时性错误不重试，同样上报给调用方
            log.error(
                "audit_write_failed",
                operation=operation,
                attempts=attempt,
                error_type=type(e).__name__,
                **log_ctx,
            )
            return e, attempt

    raise RuntimeError("write_with_retry requires attempts >= 1")
