import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ADMIN_PHONE1", "0100")
os.environ.setdefault("ADMIN_PHONE2", "0200")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from identity import models  # noqa: F401
from identity.accounts import AccountManager
from identity.config import Settings
from identity.database import Base
from identity.roles import seed_roles



class FakeNotifier:
    """Records outgoing messages instead of delivering them."""

    def __init__(self):
        self.emails = []
        self.sms = []
        self.succeed = True
        self.error = None

    def send_email(self, to, subject, body):
        if self.error:
            raise self.error
        self.emails.append((to, subject, body))
        return self.succeed

    def send_sms(self, to, body):
        if self.error:
            raise self.error
        self.sms.append((to, body))
        return self.succeed


@pytest.fixture
def session_local():
    """Provide an isolated in-memory database with a seeded role catalog."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    seed_roles(session)
    session.commit()
    session.close()
    return TestingSessionLocal


@pytest.fixture
def session(session_local):
    db = session_local()
    yield db
    db.close()


@pytest.fixture
def config():
    return Settings(
        admin_phone1="0100",
        admin_phone2="0200",
        application_name="ShareMyRevenue",
        base_url_api="https://api.example.com ",
        daily_token_limit=3,
    )


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def manager(session, notifier, config):
    return AccountManager(session, notifier=notifier, config=config)


@pytest.fixture
def client(session_local, notifier, monkeypatch):
    from identity.api import app, get_notifier, limiter
    from identity.auth import get_db

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    monkeypatch.setattr(limiter, "enabled", False)
    yield TestClient(app)
    app.dependency_overrides.clear()
