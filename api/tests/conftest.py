"""Pytest configuration and shared fixtures.

This module provides:
- A file-backed SQLite database per test (aiosqlite, BEGIN IMMEDIATE)
- Session and session-maker fixtures for repository/service tests
- FastAPI app and async HTTP client for route tests
- A fixed clock for verification tests
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_serenity.db")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DAILY_IP_SALT", "test-daily-salt")
os.environ.setdefault("SITE_URL", "https://certs.example.com")

from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.cache import TemplateListingCache
from core.config import clear_settings_cache
from core.database import create_engine, create_session_maker, create_tables
from tests.factories import FIXED_NOW


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Fresh SQLite database file with all tables, one per test."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'serenity.db'}")
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """A session for arranging and asserting data.

    SQLite holds the write lock for the whole transaction, so tests that
    also use ``session_maker`` must commit this session first.
    """
    session = session_maker()
    try:
        yield session
    finally:
        await session.close()


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def app(test_engine: AsyncEngine) -> AsyncGenerator[FastAPI]:
    """FastAPI app wired to the test database (lifespan is not run)."""
    from main import app as fastapi_app
    from routes.verify_routes import request_time

    fastapi_app.state.engine = test_engine
    fastapi_app.state.session_maker = create_session_maker(test_engine)
    fastapi_app.state.template_cache = TemplateListingCache(ttl=60, maxsize=16)
    fastapi_app.state.init_done = True
    fastapi_app.state.init_error = None
    fastapi_app.dependency_overrides[request_time] = lambda: FIXED_NOW

    yield fastapi_app

    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for testing routes."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Utility Fixtures
# =============================================================================


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio backend for anyio (required by httpx)."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None]:
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
