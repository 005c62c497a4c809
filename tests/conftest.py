import os

os.environ.setdefault("CLASSBOARD_DATABASE_URL", "sqlite://")
os.environ.setdefault("CLASSBOARD_RECONCILE_ENABLED", "false")

import pytest
from httpx import ASGITransport, AsyncClient

from classboard.core import database
from classboard.core.cache import LeaderboardCache
from classboard.core.database import Base, SessionLocal, get_db
from classboard.core.events import LeaderboardBroker
from classboard.main import app
from classboard.models import Classroom, User, UserRole
from classboard.services import class_service


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(name="session")
def session_fixture():
    Base.metadata.create_all(database.engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(database.engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> LeaderboardCache:
    return LeaderboardCache(default_ttl=30, clock=clock)


@pytest.fixture
def broker() -> LeaderboardBroker:
    return LeaderboardBroker()


@pytest.fixture
def make_user(session):
    def _make_user(name: str = "Ibu Sari", role: UserRole = UserRole.ADMIN, email: str | None = None) -> User:
        user = User(name=name, email=email or f"{name.lower().replace(' ', '.')}@example.edu", role=role)
        session.add(user)
        session.commit()
        return user

    return _make_user


@pytest.fixture
def owner(make_user) -> User:
    return make_user("Ibu Sari")


@pytest.fixture
def classroom(session, owner) -> Classroom:
    return class_service.create_class(session, name="Physics 101", description="Morning section", owner=owner)


@pytest.fixture
def enroll(session, classroom):
    def _enroll(name: str, target: Classroom | None = None):
        email = f"{name.lower().replace(' ', '.')}@student.example.edu"
        enrollment = class_service.enroll_student(session, target or classroom, name=name, email=email)
        return enrollment.student

    return _enroll


@pytest.fixture(name="client")
async def client_fixture(session):
    def get_db_override():
        yield session

    app.dependency_overrides[get_db] = get_db_override
    app.state.leaderboard_cache.clear()
    client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    yield client
    await client.aclose()
    app.dependency_overrides.clear()
