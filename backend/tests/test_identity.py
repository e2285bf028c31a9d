"""
Unit Tests for the Identity Resolver
"""
import pytest
from bson import ObjectId

import identity


class TestResolveProfile:
    """Test principal id lookup"""

    def test_resolves_existing(self, mongo_db, teacher):
        profile = identity.resolve_profile(mongo_db, teacher["_id"])
        assert profile["_id"] == teacher["_id"]
        assert profile["role"] == "teacher"

    def test_accepts_object_id(self, mongo_db, teacher):
        assert identity.resolve_profile(mongo_db, ObjectId(teacher["_id"]))["email"] == teacher["email"]

    def test_unknown_id_is_none(self, mongo_db):
        assert identity.resolve_profile(mongo_db, str(ObjectId())) is None

    @pytest.mark.parametrize("principal_id", ["not-an-id", "", None])
    def test_malformed_id_is_none(self, mongo_db, principal_id):
        assert identity.resolve_profile(mongo_db, principal_id) is None


class TestBootstrap:
    """Test first-sight profile creation"""

    def test_new_principal_becomes_incomplete_student(self, mongo_db):
        principal_id = str(ObjectId())
        profile = identity.bootstrap_profile(mongo_db, principal_id, "New.Person@Ondas.edu.co")

        assert profile["_id"] == principal_id
        assert profile["role"] == "student"
        assert profile["profileComplete"] is False
        assert profile["notifications"] == []
        assert profile["email"] == "new.person@ondas.edu.co"

    def test_bootstrap_is_idempotent(self, mongo_db):
        principal_id = str(ObjectId())
        identity.bootstrap_profile(mongo_db, principal_id)
        identity.bootstrap_profile(mongo_db, principal_id)
        assert mongo_db.users.count_documents({"_id": ObjectId(principal_id)}) == 1

    def test_existing_profile_untouched(self, mongo_db, coordinator):
        profile = identity.bootstrap_profile(mongo_db, coordinator["_id"])
        assert profile["role"] == "coordinator"
        assert profile["profileComplete"] is True

    def test_malformed_id_cannot_bootstrap(self, mongo_db):
        with pytest.raises(ValueError):
            identity.bootstrap_profile(mongo_db, "not-an-id")

    def test_resolve_or_bootstrap(self, mongo_db, student):
        assert identity.resolve_or_bootstrap(mongo_db, student["_id"])["role"] == "student"

        fresh = identity.resolve_or_bootstrap(mongo_db, str(ObjectId()))
        assert fresh["profileComplete"] is False
        assert mongo_db.users.count_documents({}) == 2
