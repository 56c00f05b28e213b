"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出（每行一个事件，便于收集审计失败告警）
"""

import logging
import os
import sys
from typing import TextIO

import structlog


def setup_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """初始化 structlog 配置

    Args:
        log_format: "json" 或 "dev"，默认读取 TASKTRAIL_LOG_FORMAT（缺省 dev）
        log_level: 日志级别，默认读取 TASKTRAIL_LOG_LEVEL（缺省 INFO）
        stream: 输出流，默认 stderr（stdout 留给 CLI 输出）
    """
    log_format = log_format or os.environ.get("TASKTRAIL_LOG_FORMAT", "dev")
    log_level = log_level or os.environ.get("TASKTRAIL_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    # aiosqlite 的 debug 日志逐条记录 SQL 调用
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
