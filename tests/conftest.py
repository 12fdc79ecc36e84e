"""
Pytest fixtures for stores, core services and the HTTP client.

Core tests run against the in-memory store; SQL store tests use an
in-memory SQLite database through aiosqlite. Redis is disabled so the
report cache is a no-op.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENTITY_STORE_BACKEND", "memory")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from dispatch_core.api.deps import get_aggregator, get_coordinator
from dispatch_core.core.config import Settings
from dispatch_core.db.base import Base
from dispatch_core.db.session import build_session_factory
from dispatch_core.domain.states import BookingStatus
from dispatch_core.main import app
from dispatch_core.schemas.booking import BookingRead
from dispatch_core.services.analytics_service import AnalyticsAggregator
from dispatch_core.services.dispatch_coordinator import DispatchCoordinator
from dispatch_core.services.transition_engine import TransitionEngine
from dispatch_core.store.memory_store import InMemoryEntityStore
from dispatch_core.store.sqlalchemy_store import SQLAlchemyEntityStore
from helpers import drive_booking, make_booking_data

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture
def engine(store: InMemoryEntityStore) -> TransitionEngine:
    return TransitionEngine(store)


@pytest.fixture
def coordinator(store: InMemoryEntityStore, engine: TransitionEngine) -> DispatchCoordinator:
    return DispatchCoordinator(store, engine)


@pytest.fixture
def analytics_settings() -> Settings:
    return Settings(
        ANALYTICS_PARTITION_DAYS=3,
        ANALYTICS_MAX_WINDOW_DAYS=366,
        ANALYTICS_INCLUDE_CANCELLED_REVENUE=True,
        REDIS_ENABLED=False,
    )


@pytest.fixture
def aggregator(store: InMemoryEntityStore, analytics_settings: Settings) -> AnalyticsAggregator:
    return AnalyticsAggregator(store, analytics_settings)


@pytest_asyncio.fixture
async def pending_booking(coordinator: DispatchCoordinator) -> BookingRead:
    return await coordinator.create_booking(make_booking_data())


@pytest_asyncio.fixture
async def confirmed_booking(engine: TransitionEngine, pending_booking: BookingRead) -> BookingRead:
    return await drive_booking(engine, pending_booking, BookingStatus.CONFIRMED)


@pytest_asyncio.fixture
async def sql_store() -> AsyncGenerator[SQLAlchemyEntityStore, None]:
    """SQL store over a fresh in-memory SQLite database."""
    sql_engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with sql_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield SQLAlchemyEntityStore(build_session_factory(sql_engine), batch_size=2)

    async with sql_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await sql_engine.dispose()


@pytest_asyncio.fixture
async def client(
    store: InMemoryEntityStore, analytics_settings: Settings
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the core services bound to the test store."""
    app.dependency_overrides[get_coordinator] = lambda: DispatchCoordinator(store)
    app.dependency_overrides[get_aggregator] = lambda: AnalyticsAggregator(store, analytics_settings)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
