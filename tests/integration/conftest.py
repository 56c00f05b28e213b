"""集成测试共享 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from tasktrail.core.config import EngineConfig
from tasktrail.core.engine import TaskEngine, create_engine


@pytest.fixture(params=["memory", "sqlite"])
def integration_config(request, tmp_path: Path) -> EngineConfig:
    """集成测试配置（内存 / SQLite 各一次）"""
    return EngineConfig(
        storage_backend=request.param,
        db_path=str(tmp_path / "integration.db"),
        audit_retry_backoff_s=0,
    )


@pytest_asyncio.fixture
async def integration_engine(
    integration_config: EngineConfig,
) -> AsyncGenerator[TaskEngine, None]:
    eng = await create_engine(integration_config)
    yield eng
    await eng.close()
