import io
import os
import tempfile

# Configure test environment before the app modules read it
os.environ.setdefault('MEDIA_ROOT', tempfile.mkdtemp(prefix='photolog-media-'))
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('METRICS_PORT', '0')

import pytest
import pytest_asyncio
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from PIL import Image

import photolog.file_storage as media
from photolog.core import get_redis
from photolog.main import app


@pytest_asyncio.fixture
async def redis():
    conn = FakeRedis(server=FakeServer())
    yield conn
    await conn.flushall()
    await conn.aclose()


@pytest.fixture
def media_root(tmp_path, monkeypatch):
    monkeypatch.setattr(media, 'MEDIA_ROOT', str(tmp_path))
    return tmp_path


@pytest_asyncio.fixture
async def client(redis, media_root):
    async def override_get_redis():
        yield redis

    app.dependency_overrides[get_redis] = override_get_redis
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_image():
    def _make(width, height, fmt='PNG', mode='RGB'):
        img = Image.new(mode, (width, height))
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()
    return _make
