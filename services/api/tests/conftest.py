from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recipeshare.main import app
from recipeshare.db import Base, get_db
from recipeshare.models import (
    Collection,
    CollectionRecipe,
    Household,
    Ingredient,
    Recipe,
    RecipeIngredient,
)
from recipeshare.storage import get_store

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool  # One shared connection so every session sees the same in-memory DB
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class MemoryStore:
    """BlobStore keeping bytes in a dict; ``fail_deletes`` simulates a broken backend."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.fail_deletes: set[str] = set()
        self.modified: dict[str, datetime] = {}

    def put_bytes(self, key, data, content_type="application/octet-stream"):
        self.blobs[key] = data
        self.modified[key] = datetime.now(timezone.utc)
        return f"/media/{key}"

    def exists(self, key):
        return key in self.blobs

    def delete(self, key):
        if key in self.fail_deletes:
            return False
        self.blobs.pop(key, None)
        return True

    def list_keys(self, prefix):
        return sorted(k for k in self.blobs if k.startswith(prefix))

    def last_modified(self, key):
        return self.modified.get(key) if key in self.blobs else None


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def client(store):
    """Test client with DB and blob store overrides."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def household(db_session):
    hh = Household(id="00000000-0000-0000-0000-000000000001", slug="test", name="Test Household")
    db_session.add(hh)
    db_session.commit()
    db_session.refresh(hh)
    return hh


@pytest.fixture
def other_household(db_session):
    hh = Household(id="00000000-0000-0000-0000-000000000002", slug="other", name="Other Household")
    db_session.add(hh)
    db_session.commit()
    db_session.refresh(hh)
    return hh


@pytest.fixture
def headers(household):
    return {"X-Household-Id": household.id}


def make_collection(db, household_id, title="Weeknight", *, is_public=False, **kwargs):
    collection = Collection(
        household_id=household_id,
        title=title,
        is_public=is_public,
        url_slug=kwargs.pop("url_slug", title.lower().replace(" ", "-")),
        **kwargs,
    )
    db.add(collection)
    db.flush()
    return collection


def make_recipe(db, household_id, name="Pasta", *, collection=None, ingredients=(), **kwargs):
    """Recipe with ingredient lines; ``ingredients`` is a list of names or Ingredient rows."""
    recipe = Recipe(
        household_id=household_id,
        name=name,
        url_slug=kwargs.pop("url_slug", name.lower().replace(" ", "-")),
        **kwargs,
    )
    db.add(recipe)
    db.flush()
    for i, item in enumerate(ingredients):
        if isinstance(item, str):
            item = Ingredient(household_id=household_id, name=item)
            db.add(item)
            db.flush()
        db.add(RecipeIngredient(
            recipe_id=recipe.id,
            ingredient_id=item.id,
            quantity_2p="1",
            quantity_4p="2",
            measure="cup",
            primary_ingredient=(i == 0),
        ))
    if collection is not None:
        db.add(CollectionRecipe(collection_id=collection.id, recipe_id=recipe.id))
    db.flush()
    return recipe


@pytest.fixture
def shared_collection(db_session, other_household):
    """Public collection C1 of the other household holding recipe R1 (tomato, basil)."""
    collection = make_collection(
        db_session, other_household.id, "Summer Classics", is_public=True,
        filename="custom_collection_004.jpg", filename_dark="custom_collection_004_dark.jpg",
    )
    recipe = make_recipe(
        db_session, other_household.id, "Caprese", collection=collection,
        ingredients=["Tomato", "Basil"], image_filename="a1b2c3d4e5f6a7b8.jpg",
    )
    db_session.commit()
    return collection, recipe


import fakeredis
from recipeshare.infra import redis_client


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    redis_client._redis_async = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)

    yield

    redis_client._redis_async = None
