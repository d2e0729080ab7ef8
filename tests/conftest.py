from __future__ import annotations

import sys
from pathlib import Path

import jwt
import pytest

ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent
for p in (ROOT, TESTS):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

from creatorconnect.core.database import Collections, ensure_indexes  # noqa: E402
from creatorconnect.core.settings import Settings  # noqa: E402
from creatorconnect.services.container import Services  # noqa: E402
from fakes import FakeDatabase  # noqa: E402

JWT_SECRET = "test-secret"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret=JWT_SECRET,
        mongodb_uri="mongodb://localhost:27017/creatorconnect_test",
        node_env="test",
        metrics_enabled=False,
        stripe_webhook_secret="whsec_test",
    )


@pytest.fixture
def db() -> FakeDatabase:
    fake = FakeDatabase()
    ensure_indexes(fake)
    return fake


@pytest.fixture
def services(db) -> Services:
    return Services.build(Collections.from_database(db))


def make_token(user_id: str, secret: str = JWT_SECRET, **claims) -> str:
    return jwt.encode({"id": user_id, **claims}, secret, algorithm="HS256")


@pytest.fixture
def auth_header():
    def _header(user_id: str) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _header


@pytest.fixture
def client(settings, db):
    from fastapi.testclient import TestClient

    from creatorconnect.main import create_app

    return TestClient(create_app(settings, db=db), raise_server_exceptions=False)
