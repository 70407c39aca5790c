import os
import tempfile
from datetime import datetime
from pathlib import Path

# Set testing environment before the application reads its settings
_test_dir = Path(tempfile.mkdtemp(prefix="mediassist-tests-"))
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{_test_dir / 'test.db'}"
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_MAX_REQUESTS", "1000")
os.environ.setdefault("UPSTREAM_RETRY_BACKOFF_SECONDS", "0.01")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from mediassist.main import app
from mediassist.api.deps import get_clinic_clock
from mediassist.core.database import Base, SessionLocal, engine, get_redis
from mediassist.core.security import Role
from mediassist.services.account_service import AccountService

DEFAULT_PASSWORD = "CorrectHorse1"

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db_session(test_db):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)

@pytest.fixture
def client(test_db, fake_redis):
    app.dependency_overrides[get_redis] = lambda: fake_redis
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()

@pytest.fixture
def pin_clinic_clock():
    """Pin the clinic clock the scheduling endpoints use."""
    def _pin(moment: datetime):
        app.dependency_overrides[get_clinic_clock] = lambda: (lambda: moment)
    yield _pin
    app.dependency_overrides.pop(get_clinic_clock, None)

@pytest.fixture
def make_account(db_session):
    def _make(email, roles=(Role.PATIENT,), password=DEFAULT_PASSWORD, display_name="Test User", **kwargs):
        return AccountService(db_session).register(email, password, display_name, roles, **kwargs)
    return _make
