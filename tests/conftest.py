"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests.
Every table except the achievement catalogue is emptied after each test,
since generation scores the whole published catalogue.
"""
import os

SQLITE_URL = "sqlite:///./test_personalization.db"
os.environ["DATABASE_URL"] = SQLITE_URL

import itertools  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from personalization.db.base import Base, get_db  # noqa: E402
from personalization.main import app  # noqa: E402
from personalization.models.achievement import Achievement  # noqa: E402
from personalization.models.content import (  # noqa: E402
    ContentStatus,
    DifficultyLevel,
    LearningContent,
)
from personalization.services.achievements import ensure_default_achievements  # noqa: E402

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

_KEEP_TABLES = {Achievement.__tablename__}
_titles = itertools.count(1)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    # Seed default achievements (normally done by the Alembic migration)
    db = TestingSessionLocal()
    try:
        ensure_default_achievements(db)
    finally:
        db.close()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            if table.name not in _KEEP_TABLES:
                conn.execute(table.delete())


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_content(db):
    """Insert a published, public LearningContent row. Keyword args override defaults."""
    def _make(**overrides) -> LearningContent:
        fields = dict(
            title=f"Lesson {next(_titles)}",
            subject_area="math",
            difficulty_level=DifficultyLevel.intermediate,
            status=ContentStatus.published,
            is_public=True,
            success_rate=Decimal("0"),
            rating_average=Decimal("0"),
            rating_count=0,
            view_count=0,
        )
        fields.update(overrides)
        content = LearningContent(**fields)
        db.add(content)
        db.commit()
        db.refresh(content)
        return content

    return _make
