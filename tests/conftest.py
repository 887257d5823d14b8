"""Shared fixtures. MongoDB is replaced by mongomock-motor; no real server is needed."""
import uuid

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

import main
from routes import get_allowed_categories, get_budgets_collection, get_expenses_collection


@pytest.fixture
def db():
    return AsyncMongoMockClient()[f"calendar_test_{uuid.uuid4().hex}"]


@pytest.fixture
def expenses_collection(db):
    return db["expenses"]


@pytest.fixture
def budgets_collection(db):
    return db["budgets"]


@pytest.fixture
def allowed_categories():
    return frozenset()


@pytest.fixture
def app(expenses_collection, budgets_collection, allowed_categories):
    main.app.dependency_overrides[get_expenses_collection] = lambda: expenses_collection
    main.app.dependency_overrides[get_budgets_collection] = lambda: budgets_collection
    main.app.dependency_overrides[get_allowed_categories] = lambda: allowed_categories
    yield main.app
    main.app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    # Not used as a context manager, so the lifespan (real MongoDB connection) never runs
    return TestClient(app)
