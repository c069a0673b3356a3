"""
Test fixtures - in-memory SQLite database, fixed clock and HTTP clients
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SYNC_TOKEN", "test-sync-token")
os.environ.setdefault("REFERENCE_TIMEZONE", "Asia/Taipei")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402

from nutrilog.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from nutrilog.main import app  # noqa: E402
from nutrilog.models.food import Food  # noqa: E402
from nutrilog.utils.time_manager import TimeManager, get_time_manager  # noqa: E402

SYNC_TOKEN = os.environ["SYNC_TOKEN"]
USER_ID = "u1"

# Wednesday 2024-01-17 12:00 Asia/Taipei
FIXED_NOW = datetime(2024, 1, 17, 4, 0, tzinfo=timezone.utc)


@pytest.fixture()
def tm():
    """TimeManager pinned to FIXED_NOW"""
    return TimeManager("Asia/Taipei", now_fn=lambda: FIXED_NOW)


@pytest_asyncio.fixture()
async def db_session():
    """Create a fresh in-memory SQLite database for each test"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    enable_sqlite_foreign_keys(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture()
async def seed_foods(db_session):
    """Baseline catalog: rice, chicken and one unpublished food"""
    rice = Food(
        id="f1", name="Rice", category="Carbohydrate",
        calories_per_100g=130, protein_per_100g=2.5, carbs_per_100g=28, fat_per_100g=0.3,
    )
    chicken = Food(
        id="f3", name="Chicken breast", category="Protein",
        calories_per_100g=165, protein_per_100g=31,
    )
    hidden = Food(
        id="f4", name="Rice cracker", category="Carbohydrate",
        calories_per_100g=390, protein_per_100g=7, is_published=False,
    )
    db_session.add_all([rice, chicken, hidden])
    await db_session.commit()
    return {"rice": rice, "chicken": chicken, "hidden": hidden}


def _override(db_session, tm):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_time_manager] = lambda: tm


@pytest_asyncio.fixture()
async def client(db_session, tm):
    """httpx AsyncClient acting as USER_ID"""
    _override(db_session, tm)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        ac.headers["X-User-Id"] = USER_ID
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def admin_client(db_session, tm):
    """httpx AsyncClient carrying the catalog sync bearer token"""
    _override(db_session, tm)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        ac.headers["Authorization"] = f"Bearer {SYNC_TOKEN}"
        ac.headers["X-User-Id"] = USER_ID
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauth_client(db_session, tm):
    """httpx AsyncClient without identity or token"""
    _override(db_session, tm)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac

    app.dependency_overrides.clear()
