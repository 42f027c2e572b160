import os

import pytest

test_env_vars = {
    "APP_ENV": "test",
    "ENVIRONMENT": "development",
    "DATABASE_URL": "sqlite://",
    "REDIS_URL": "redis://localhost:6379/15",
    "RATE_LIMIT_BACKEND": "memory",
    "LOG_LEVEL": "ERROR",
}
for key, value in test_env_vars.items():
    os.environ[key] = value

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from linkpeek.config import reset_settings  # noqa: E402

reset_settings()

from linkpeek.infrastructure import db  # noqa: E402
from linkpeek.models import tables  # noqa: E402,F401


@pytest.fixture()
def engine():
    e = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    db.override_engine(e)
    db.Base.metadata.create_all(e)
    yield e
    db.Base.metadata.drop_all(e)
    e.dispose()


@pytest.fixture()
def session(engine):
    s = db.new_session()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def limiter():
    from linkpeek.security.rate_limit import InMemoryRateLimiter
    return InMemoryRateLimiter()


@pytest.fixture()
def client(engine, limiter):
    from fastapi.testclient import TestClient
    from linkpeek.api.main import app
    from linkpeek.api.redirect import get_rate_limiter

    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_link(session):
    def _make(link_id="abc", dest_url="https://example.com/page", **kw):
        kw.setdefault("user_id", "user-1")
        link = tables.Link(id=link_id, dest_url=dest_url, **kw)
        session.add(link)
        session.commit()
        return link
    return _make
