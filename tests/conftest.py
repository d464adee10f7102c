from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binary_network.config import NetworkSettings
from binary_network.database import create_engine, create_session_factory
from binary_network.models import Base


@pytest.fixture
def settings() -> NetworkSettings:
    return NetworkSettings(_env_file=None)


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    db_path = tmp_path / "test.db"
    async_url = f"sqlite+aiosqlite:///{db_path}"

    engine = create_engine(async_url)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    session_maker = create_session_factory(engine)

    try:
        yield session_maker
    finally:
        await engine.dispose()
