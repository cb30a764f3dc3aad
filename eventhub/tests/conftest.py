import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone

# A file-backed database so that sessions on different threads really
# contend for the event row; must be set before the app modules import.
_DB_DIR = tempfile.mkdtemp(prefix="eventhub-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import func, select  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.orm.session import Session  # noqa: E402

from eventhub.core.permissions import Role  # noqa: E402
from eventhub.database.db import Base, engine, get_db  # noqa: E402
from eventhub.main import app  # noqa: E402
from eventhub.models import Category, Event, Participant, Tag, User  # noqa: E402

# expire_on_commit=False: reading a committed object must not open a new
# transaction, which on SQLite would hold the write lock
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Set up and tear down the database for the test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    shutil.rmtree(_DB_DIR, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_tables():
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    yield


# Override the database dependency
def override_get_db():
    db: Session = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


def _persist(obj):
    db = TestingSessionLocal()
    try:
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj
    finally:
        db.close()


@pytest.fixture
def make_user():
    counter = iter(range(1, 10_000))

    def factory(role: Role = Role.USER, **fields) -> User:
        n = next(counter)
        fields.setdefault("email", f"{role.value}{n}@example.com")
        fields.setdefault("first_name", role.value.title())
        fields.setdefault("last_name", f"Number{n}")
        return _persist(User(role=role.value, **fields))

    return factory


@pytest.fixture
def admin(make_user) -> User:
    return make_user(Role.ADMIN)


@pytest.fixture
def make_event(admin):
    def factory(capacity: int | None = None, **fields) -> Event:
        now = datetime.now(timezone.utc)
        fields.setdefault("title", "Test Event")
        fields.setdefault("start_date", now + timedelta(days=1))
        fields.setdefault("end_date", now + timedelta(days=2))
        fields.setdefault("participants_count", 0)
        fields.setdefault("created_by", admin.id)
        return _persist(Event(capacity=capacity, **fields))

    return factory


@pytest.fixture
def make_category(admin):
    def factory(name: str, **fields) -> Category:
        return _persist(Category(name=name, created_by=admin.id, **fields))

    return factory


@pytest.fixture
def make_tag(admin):
    def factory(name: str, **fields) -> Tag:
        return _persist(Tag(name=name, created_by=admin.id, **fields))

    return factory


@pytest.fixture
def event_state():
    """Read (participants_count, live membership rows) with a fresh session."""

    def read(event_id: int) -> tuple[int, int]:
        db = TestingSessionLocal()
        try:
            counter = db.scalar(select(Event.participants_count).where(Event.id == event_id))
            rows = db.scalar(select(func.count(Participant.id)).where(Participant.event_id == event_id))
            return counter, rows
        finally:
            db.close()

    return read


@pytest.fixture
def auth():
    def headers(user: User) -> dict[str, str]:
        return {"X-User-Id": str(user.id)}

    return headers
