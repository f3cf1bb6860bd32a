"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from uwa.config import Settings, get_settings
from uwa.database import close_db, create_tables, get_session, init_db
from uwa.main import create_app


@pytest.fixture
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Settings]:
    """Settings pointing at a throwaway SQLite file per test."""
    monkeypatch.setenv("UWA_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'uwa_test.db'}")
    monkeypatch.setenv("UWA_LOG_FORMAT", "console")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[None, None]:
    """Initialize the engine and create the schema; dispose afterwards."""
    await init_db(settings.database_url)
    await create_tables()
    yield
    await close_db()


@pytest_asyncio.fixture
async def client(database: None) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client against a fresh database."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service tests and assertions."""
    async for session in get_session():
        yield session
        break


async def _report_game(
    client: AsyncClient,
    learner_id: str,
    game_type: str,
    *,
    best_score: float,
    completed_levels: int = 10,
    total_levels: int = 10,
    time_spent: float = 30.0,
    achievements: list[str] | None = None,
) -> dict:
    """Helper to report a game session through the API."""
    response = await client.put(
        f"/api/v1/progress/{learner_id}/games/{game_type}",
        json={
            "completedLevels": completed_levels,
            "totalLevels": total_levels,
            "bestScore": best_score,
            "averageScore": best_score,
            "timeSpent": time_spent,
            "achievements": achievements or [],
        },
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def report_game(client: AsyncClient):
    """Report a game session for a learner: ``await report_game(learner, game_type, best_score=...)``."""

    async def _report(learner_id: str, game_type: str, **kwargs) -> dict:
        return await _report_game(client, learner_id, game_type, **kwargs)

    return _report
