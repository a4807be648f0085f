"""Pytest configuration and fixtures"""
import base64
import os
from typing import Generator

# Test configuration must be in place before shop_auth.config is imported
TEST_SECRET = base64.b64encode(b"shop-auth-test-signing-key-0123456789").decode()
os.environ.setdefault("JWT_SECRET", TEST_SECRET)
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_URL", "memory://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("PASSWORD_HASH_TIME_COST", "1")
os.environ.setdefault("PASSWORD_HASH_MEMORY_COST", "1024")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from shop_auth.database import Base, get_db
from shop_auth.main import create_app
from shop_auth.models.user import Role, User
from shop_auth.services.identity import IdentityDirectory
from shop_auth.utils.jwt_utils import TokenCodec
from shop_auth.utils.passwords import hash_password
from shop_auth.utils.revocation import InMemoryRevocationStore

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed start of every test, in epoch seconds
T0 = 1_700_000_000.0

USER_EMAIL = "a@b.com"
USER_PASSWORD = "Str0ng!Passw0rd"
ADMIN_EMAIL = "admin@shop.com"
ADMIN_PASSWORD = "Adm1n!Passw0rd"


class FakeClock:
    """Controllable replacement for time.time"""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(clock: FakeClock) -> TokenCodec:
    return TokenCodec(TEST_SECRET, clock=clock)


@pytest.fixture
def store(clock: FakeClock) -> InMemoryRevocationStore:
    return InMemoryRevocationStore(clock=clock)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def directory(db: Session) -> IdentityDirectory:
    return IdentityDirectory(TestingSessionLocal)


@pytest.fixture
def user(db: Session) -> User:
    """A shopper with ROLE_USER"""
    role = Role(name="ROLE_USER")
    user = User(
        first_name="Ada",
        last_name="Buyer",
        email=USER_EMAIL,
        password=hash_password(USER_PASSWORD),
        roles=[role],
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin(db: Session, user: User) -> User:
    """An administrator with ROLE_USER and ROLE_ADMIN"""
    user_role = db.query(Role).filter(Role.name == "ROLE_USER").one()
    admin = User(
        first_name="Grace",
        last_name="Admin",
        email=ADMIN_EMAIL,
        password=hash_password(ADMIN_PASSWORD),
        roles=[user_role, Role(name="ROLE_ADMIN")],
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin


@pytest.fixture(scope="function")
def client(db: Session, clock: FakeClock, store: InMemoryRevocationStore) -> Generator[TestClient, None, None]:
    """Test client wired to the fake clock, in-memory blacklist and test database"""
    app = create_app(clock=clock, revocation_store=store, session_factory=TestingSessionLocal)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
