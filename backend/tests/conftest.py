"""
Test configuration and fixtures
"""
import os
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import mongomock
import pytest
from bson import ObjectId

# Set testing environment before the app modules read it
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["CLOUDINARY_CLOUD_NAME"] = "test-cloud"
os.environ.pop("COORDINATOR_EMAIL", None)

import auth  # noqa: E402
from factories import make_profile, make_project  # noqa: E402


@pytest.fixture
def mongo_db():
    """Fresh in-memory document store for each test"""
    client = mongomock.MongoClient()
    yield client["plataforma_ondas_test"]
    client.close()


@pytest.fixture
def insert_user(mongo_db):
    def _insert(role: str = "student", complete: bool = True, password: Optional[str] = None, **extra) -> dict:
        profile = make_profile(role, complete, **extra)
        doc = dict(profile)
        doc["_id"] = ObjectId(profile["_id"])
        if password:
            doc["hashedPassword"] = auth.get_password_hash(password)
        mongo_db.users.insert_one(doc)
        return profile
    return _insert


@pytest.fixture
def insert_project(mongo_db):
    def _insert(owner: Optional[dict] = None, members: Optional[List[str]] = None,
                state: str = "Formulation", **extra) -> dict:
        project = make_project(owner, members, state, **extra)
        doc = dict(project)
        doc["_id"] = ObjectId(project["_id"])
        mongo_db.projects.insert_one(doc)
        return project
    return _insert


@pytest.fixture
def teacher(insert_user):
    return insert_user("teacher")


@pytest.fixture
def other_teacher(insert_user):
    return insert_user("teacher")


@pytest.fixture
def coordinator(insert_user):
    return insert_user("coordinator")


@pytest.fixture
def student(insert_user):
    return insert_user("student")


@pytest.fixture
def incomplete_student(insert_user):
    return insert_user("student", complete=False, firstName=None, lastName=None,
                       identification=None, grade=None)


@pytest.fixture
def fake_storage():
    """Object storage double: upload always succeeds"""
    storage = MagicMock()
    storage.upload = AsyncMock(return_value={"url": "https://res.cloudinary.test/evidencias/file.pdf"})
    return storage


@pytest.fixture
def client(mongo_db, fake_storage):
    """HTTP test client bound to the in-memory store"""
    from fastapi.testclient import TestClient
    from main import app, get_db, get_storage

    app.dependency_overrides[get_db] = lambda: mongo_db
    app.dependency_overrides[get_storage] = lambda: fake_storage
    yield TestClient(app)
    app.dependency_overrides.clear()

