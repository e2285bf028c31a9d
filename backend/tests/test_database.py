"""
Unit Tests for database helpers
"""
import pytest
from pymongo.errors import ConnectionFailure

import auth
import database


class TestCoordinatorSeed:
    """Test seeding the first coordinator from the environment"""

    def test_seeds_once(self, mongo_db, monkeypatch):
        monkeypatch.setenv("COORDINATOR_EMAIL", "Coordinacion@Ondas.edu.co")
        monkeypatch.setenv("COORDINATOR_PASSWORD", "coordinator-pass")

        first = database.create_coordinator_user(mongo_db)
        second = database.create_coordinator_user(mongo_db)

        assert first == second
        seeded = mongo_db.users.find_one({"email": "coordinacion@ondas.edu.co"})
        assert seeded["role"] == "coordinator"
        assert seeded["profileComplete"] is True
        assert auth.verify_password("coordinator-pass", seeded["hashedPassword"])

    def test_no_seed_without_credentials(self, mongo_db, monkeypatch):
        monkeypatch.delenv("COORDINATOR_EMAIL", raising=False)
        assert database.create_coordinator_user(mongo_db) is None
        assert mongo_db.users.count_documents({}) == 0


class TestConnectionState:
    def test_get_database_before_connect(self, monkeypatch):
        monkeypatch.setattr(database, "db", None)
        with pytest.raises(ConnectionFailure):
            database.get_database()

    def test_mongo_uri_from_env(self, monkeypatch):
        monkeypatch.setenv("MONGO_URI", "mongodb://db.internal:27017/")
        assert database._resolve_mongo_uri() == "mongodb://db.internal:27017/"

    def test_atlas_mode(self, monkeypatch):
        monkeypatch.delenv("MONGO_URI", raising=False)
        monkeypatch.setenv("DEFAULT", "ATLAS")
        monkeypatch.setenv("ATLAS_URI", "mongodb+srv://cluster.example.net/")
        assert database._resolve_mongo_uri() == "mongodb+srv://cluster.example.net/"
