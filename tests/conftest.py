"""
Shared pytest fixtures.

Each test that touches the database gets a fresh in-memory SQLite schema with
a small type vocabulary seeded (Normal=1, Fire=2, Water=3, Grass=4). Uploaded
images go to a per-test temporary directory and Celery runs tasks eagerly, so
image cleanup happens inline.
"""
import os
import tempfile

# Settings are read at import time, so the environment is prepared first
os.environ["DATABASE_URL"] = "sqlite://:memory:"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="pokemon_test_")
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from tortoise import Tortoise, connections

from app import crud, security
from app.config import settings
from app.models import TypeList
from app.schemas import UserCreate

SEED_TYPES = ["Normal", "Fire", "Water", "Grass"]


@pytest_asyncio.fixture
async def db():
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": ["app.models"]})
    await Tortoise.generate_schemas()
    for name in SEED_TYPES:
        await TypeList.create(name=name)
    yield
    await connections.close_all()


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    """Empty image directory for the test."""
    directory = tmp_path / "uploads"
    directory.mkdir()
    monkeypatch.setattr(settings, "upload_dir", str(directory))
    return directory


@pytest.fixture
def sample_image_bytes():
    # Smallest JPEG: SOI + JFIF header + EOI
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


@pytest_asyncio.fixture
async def user(db):
    return await crud.create_user(UserCreate(username="ash_k", email="ash@example.com", password="pikachu123"))


@pytest_asyncio.fixture
async def other_user(db):
    return await crud.create_user(UserCreate(username="gary_o", email="gary@example.com", password="eevee1234"))


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {security.create_user_token(user.id)}"}


@pytest.fixture
def other_auth_headers(other_user):
    return {"Authorization": f"Bearer {security.create_user_token(other_user.id)}"}


@pytest_asyncio.fixture
async def client(db, upload_dir):
    from app.main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
