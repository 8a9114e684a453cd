"""
Shared fixtures: per-test SQLite database, fast bcrypt, fixed signing key.
"""

import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

TEST_SECRET = "test-signing-secret-0123456789-abcdefghijklmnop"
TEST_API_KEY = "ops-key-5f1c9a7e2b"

os.environ.setdefault("JWT_SECRET", TEST_SECRET)

from auth.store import CredentialStore  # noqa: E402
from config.settings import Settings  # noqa: E402
from database.session import build_engine, build_session_factory, create_schema  # noqa: E402
from main import create_app  # noqa: E402


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "jwt_secret": TEST_SECRET,
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
        "bcrypt_rounds": 4,
        "api_keys": f"ops:{TEST_API_KEY}",
        "auth_strategies": "jwt,api_key,session_token",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def store(settings):
    engine = build_engine(settings)
    await create_schema(engine)
    yield CredentialStore(build_session_factory(engine), bcrypt_rounds=settings.bcrypt_rounds)
    await engine.dispose()


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def settings_factory(tmp_path):
    def factory(**overrides) -> Settings:
        return make_settings(tmp_path, **overrides)

    return factory


@pytest.fixture
def api_key():
    return TEST_API_KEY
