import os
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Configure test environment: throwaway SQLite database, strict chunk ordering, no background reaper
DB_PATH = Path(tempfile.gettempdir()) / f'storyhub-test-{os.getpid()}.db'
os.environ['DATABASE_URL'] = f'sqlite+aiosqlite:///{DB_PATH}'
os.environ['STORY_CHUNKS_STRICT'] = '1'
os.environ['STORY_REAPER_INTERVAL_SECONDS'] = '0'
os.environ.setdefault('JWT_SECRET', 'test-secret')

from storyhub import storage  # noqa: E402
from storyhub.auth import create_access_token  # noqa: E402
from storyhub.main import app  # noqa: E402
from storyhub.models import AsyncSessionLocal, Base, engine  # noqa: E402
from storyhub.models.users import User  # noqa: E402


@pytest_asyncio.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # pooled connections belong to this test's event loop
    await engine.dispose()


@pytest.fixture(autouse=True)
def deleted_media(monkeypatch):
    """Records media URLs the service asked object storage to delete."""
    deleted = []

    async def fake_delete_object(url):
        deleted.append(url)
        return True

    monkeypatch.setattr(storage, 'delete_object', fake_delete_object)
    return deleted


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        yield ac


async def _make_user(username: str, role: str = 'student') -> User:
    async with AsyncSessionLocal() as session:
        user = User(username=username, role=role)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest_asyncio.fixture
async def student():
    return await _make_user('maya', 'student')


@pytest_asyncio.fixture
async def other_student():
    return await _make_user('leo', 'student')


@pytest_asyncio.fixture
async def parent():
    return await _make_user('dana', 'parent')


@pytest_asyncio.fixture
async def admin():
    return await _make_user('root', 'admin')


@pytest.fixture
def auth_headers():
    def make(user) -> dict:
        token = create_access_token({'id': user.id, 'role': user.role})
        return {'Authorization': f'Bearer {token}'}
    return make
