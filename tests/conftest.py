"""Fixtures compartidas: base SQLite en memoria, usuarios y cliente HTTP"""
import os

# Antes de importar la app: shared.config lee el entorno al importarse
os.environ.setdefault("APP_ENV", "development")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shared.auth.jwt_handler import create_access_token
from shared.auth.login_attempts import login_attempts
from shared.auth.password import hash_password
from shared.database.connection import Base, get_db
from shared.database import models  # noqa: F401
from shared.database.models import User, Show
from services.catalog.services.settings_service import site_settings_service
from services.catalog.services.show_service import show_service


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def _reset_service_state():
    """El cache de settings, el throttle de auto-archivado y los fallos de login viven en singletons"""
    site_settings_service.invalidate()
    show_service._last_auto_archive = None
    login_attempts.reset()
    yield
    site_settings_service.invalidate()
    show_service._last_auto_archive = None
    login_attempts.reset()


async def _make_user(db, email, role, password="password123", name="", is_active=True) -> User:
    user = User(
        email=email,
        name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
def make_user(db):
    async def _factory(email, role="editor", password="password123", name="", is_active=True):
        return await _make_user(db, email, role, password, name, is_active)
    return _factory


@pytest.fixture
async def admin(db) -> User:
    return await _make_user(db, "admin@barby.co.il", "admin", name="Admin")


@pytest.fixture
async def editor(db) -> User:
    return await _make_user(db, "dana@barby.co.il", "editor", name="Dana Levi")


@pytest.fixture
async def other_editor(db) -> User:
    return await _make_user(db, "noa@barby.co.il", "editor", name="Noa Cohen")


@pytest.fixture
async def show(db) -> Show:
    show = Show(
        title="Hadag Nahash",
        slug="hadag-nahash",
        date_iso="2099-05-01T21:00:00",
        description="Concierto",
        venue_name="Barby",
        venue_address="Kibbutz Galuyot 52",
        ticket_tiers=[{"label": "General", "price": 120, "currency": "ILS"}],
        tags=["rock"],
        published=True,
    )
    db.add(show)
    await db.commit()
    await db.refresh(show)
    return show


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
async def client(session_maker):
    from main import app

    async def _get_test_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
