import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEV_LOGIN_ENABLED"] = "true"
os.environ["SEED_ON_STARTUP"] = "false"
os.environ.pop("AUTH_JWKS_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quizvault.core.auth import CurrentUser, create_token
from quizvault.core.cache import get_cache
from quizvault.core.database import get_db
from quizvault.main import app
from quizvault.models.orm import Base


class FakeCache:
    """In-memory stand-in for RedisCache."""

    def __init__(self):
        self.store = {}
        self.sets = 0

    def make_key(self, *args):
        return ":".join(str(a) for a in args)

    def get(self, key, default=None):
        return self.store.get(key, default)

    def set(self, key, value, expire=None):
        self.sets += 1
        self.store[key] = value
        return True

    def incr(self, key):
        self.store[key] = int(self.store.get(key) or 0) + 1
        return self.store[key]

    def delete(self, *keys):
        return sum(1 for k in keys if self.store.pop(k, None) is not None)


@pytest.fixture()
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture()
def cache():
    return FakeCache()


@pytest.fixture()
def client(session_factory, cache):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_cache] = lambda: cache
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(subject="alice", admin=False, name=None, email=None):
    token = create_token(subject, ["admin"] if admin else [], email=email or f"{subject}@example.com", name=name or subject)
    return {"Authorization": f"Bearer {token}"}


def admin_user():
    return CurrentUser(id="admin-1", subject="admin-1", is_admin=True)


def item_payload(question="What is the capital of France?", category="geography", **extra):
    body = {"category": category, "question": question, "correct_answer": "Paris",
            "incorrect_answers": ["Lyon", "Marseille", "Nice"], "explanation": "Paris is the capital."}
    body.update(extra)
    return body
