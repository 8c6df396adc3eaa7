import os
import tempfile

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.gettempdir(), "plans-tests.db"))
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-0123456789abcdef0123456789")
os.environ.setdefault("IDP_JWT_SECRET", "test-idp-secret-0123456789abcdef0123456789")
os.environ.setdefault("INTERNAL_SECRET", "test-internal-secret")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("PUSH_SERVICE_URL", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from plans.auth.deps import get_jwt_config
from plans.auth.jwt_tokens import create_access_token
from plans.core.config import settings
from plans.core.db import Base, get_db
from plans.main import app
from plans.models import GuestProfile, Profile
from plans.services.hangouts import create_hangout
from plans.services.identity import resolve_profile
from plans.services.notify import get_dispatcher


class RecordingDispatcher:
    """Collects notifications; recipients in `fail_for` raise like a broken push service."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def notify(self, recipient, kind, content, link=None):
        if recipient in self.fail_for:
            raise RuntimeError("push service down")
        self.sent.append((recipient, kind, content, link))

    @property
    def recipients(self):
        return [r for r, *_ in self.sent]


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'plans.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def make_profile(db):
    counter = {"n": 0}

    def _make(name: str = "Alice") -> Profile:
        counter["n"] += 1
        return resolve_profile(db, external_id=f"ext-{counter['n']}-{name.lower()}", display_name=name)

    return _make


@pytest.fixture
def make_hangout(db):
    def _make(creator: Profile, activities=(), members=(), **kwargs):
        return create_hangout(
            db,
            creator=creator,
            activities=[(a, None) if isinstance(a, str) else a for a in activities],
            member_profile_ids=[m.id for m in members],
            **kwargs,
        )

    return _make


@pytest.fixture
def api(session_factory, dispatcher):
    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client(api):
    """Anonymous client."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def client_for(api):
    """TestClient signed in as a profile, or holding a guest cookie."""
    clients = []

    def _make(who=None) -> TestClient:
        cookies = {}
        if isinstance(who, Profile):
            cookies["access_token"] = create_access_token(get_jwt_config(), who.id)
        elif isinstance(who, GuestProfile):
            cookies[settings.GUEST_COOKIE_NAME] = who.token
        c = TestClient(app, cookies=cookies)
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.close()
