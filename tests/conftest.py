import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from turnwatch.models.base import Base
from turnwatch.models import alert  # noqa: F401
from turnwatch.alerts.store import AlertStore
from turnwatch.bot import Bot
from turnwatch.config import Settings
from turnwatch.game.scheduler import AlertScheduler
from turnwatch.main import create_app

from factories import FakeClock, FakeSource, RecordingSink

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def store(session_factory):
    alert_store = AlertStore(session_factory)
    await alert_store.load()
    return alert_store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest_asyncio.fixture
async def scheduler(store, sink, clock):
    alert_scheduler = AlertScheduler(store, sink, send_timeout=1.0, clock=clock)
    yield alert_scheduler
    await alert_scheduler.close()


@pytest.fixture
def settings():
    return Settings()


@pytest_asyncio.fixture
async def bot(settings, store, sink, clock):
    turn_bot = Bot(settings, store, FakeSource(), sink, clock=clock)
    yield turn_bot
    await turn_bot.scheduler.close()


@pytest_asyncio.fixture
async def client(bot):
    app = create_app(bot)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
