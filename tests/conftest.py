"""
Pytest configuration and shared fixtures for testing.
"""
import random
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from nclex_cat.api.v1.exams import get_rng
from nclex_cat.main import app
from nclex_cat.models import Base, get_db
from nclex_cat.models.models import Item, ItemType, NCLEXCategory


@asynccontextmanager
async def _test_lifespan(app):
    """No-op lifespan for tests. Tables are managed by the db_session fixture."""
    yield


app.router.lifespan_context = _test_lifespan


# Use SQLite for tests; path is relative to this file so the .db lands
# inside tests/ regardless of the working directory.
_TEST_DB = Path(__file__).parent / "test.db"
SQLALCHEMY_DATABASE_URL = f"sqlite:///{_TEST_DB}"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 30}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Seed for the item-selection random source in API tests
API_RNG_SEED = 1234


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database and random source overrides.
    """

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rng] = lambda: random.Random(API_RNG_SEED)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_items(db_session) -> Callable[..., List[Item]]:
    """
    Factory that inserts items into the test database.

    Every item is multiple choice with options A-D and "A" as the key.
    """

    def _make(
        per_category: int = 6,
        discrimination: float = 1.0,
        difficulty: float = 0.75,
        guessing: float = 0.2,
        categories=None,
    ) -> List[Item]:
        items = []
        for category in categories or list(NCLEXCategory):
            for i in range(per_category):
                items.append(
                    Item(
                        category=category,
                        item_type=ItemType.MULTIPLE_CHOICE,
                        stem=f"{category.display_name} question {i + 1}",
                        options=[
                            {"key": "A", "text": "Correct option"},
                            {"key": "B", "text": "Distractor one"},
                            {"key": "C", "text": "Distractor two"},
                            {"key": "D", "text": "Distractor three"},
                        ],
                        correct_answers=["A"],
                        rationale="Option A is correct.",
                        discrimination=discrimination,
                        difficulty=difficulty,
                        guessing=guessing,
                    )
                )
        db_session.add_all(items)
        db_session.commit()
        for item in items:
            db_session.refresh(item)
        return items

    return _make


@pytest.fixture
def seeded_items(make_items) -> List[Item]:
    """48 items (6 per category) with a=1.0, b=0.75, c=0.2."""
    return make_items()
