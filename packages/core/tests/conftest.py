"""packages/core 测试配置 -- 核心层 fixture

engine fixture 对内存后端与 SQLite 后端各运行一次，
保证两种实现的可观察行为一致。
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from tasktrail.core.config import EngineConfig
from tasktrail.core.engine import TaskEngine, create_engine


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "core_test.db"


def make_config(backend: str, db_path: Path, **overrides) -> EngineConfig:
    """测试用配置：缩短重试间隔"""
    return EngineConfig(
        storage_backend=backend,
        db_path=str(db_path),
        audit_retry_backoff_s=0,
        **overrides,
    )


@pytest.fixture(params=["memory", "sqlite"])
def backend(request) -> str:
    return request.param


@pytest.fixture
def engine_config(backend: str, core_db_path: Path) -> EngineConfig:
    return make_config(backend, core_db_path)


@pytest_asyncio.fixture
async def engine(engine_config: EngineConfig) -> AsyncGenerator[TaskEngine, None]:
    """已初始化的任务引擎（内存 / SQLite 各一次）"""
    eng = await create_engine(engine_config)
    yield eng
    await eng.close()


@pytest_asyncio.fixture
async def make_engine(backend: str, core_db_path: Path):
    """按配置覆盖项创建引擎的工厂，测试结束后统一关闭"""
    created: list[TaskEngine] = []

    async def _factory(**overrides) -> TaskEngine:
        eng = await create_engine(make_config(backend, core_db_path, **overrides))
        created.append(eng)
        return eng

    yield _factory

    for eng in created:
        await eng.close()
