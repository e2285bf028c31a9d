"""
Unit Tests for accounts, profile completion and user administration
"""
import pytest
from bson import ObjectId

import profiles
from access import LANDING_ROUTE
from errors import RoleNotAllowedError, UnauthenticatedError, ValidationFailedError


COMPLETION = {"firstName": " Ana ", "lastName": "Pérez", "identification": "1020304050", "grade": "11"}


class TestRegistration:
    """Test self-registration and login"""

    def test_register_creates_incomplete_student(self, mongo_db):
        profile = profiles.register_user(mongo_db, {"email": "Ana@Ondas.edu.co", "password": "s3cret-pass"})
        assert profile["email"] == "ana@ondas.edu.co"
        assert profile["role"] == "student"
        assert profile["profileComplete"] is False
        assert profile["hashedPassword"] != "s3cret-pass"

    def test_duplicate_email(self, mongo_db):
        profiles.register_user(mongo_db, {"email": "ana@ondas.edu.co", "password": "s3cret-pass"})
        with pytest.raises(ValidationFailedError):
            profiles.register_user(mongo_db, {"email": "ANA@ondas.edu.co", "password": "other-pass"})

    def test_short_password(self, mongo_db):
        with pytest.raises(ValidationFailedError):
            profiles.register_user(mongo_db, {"email": "ana@ondas.edu.co", "password": "short"})

    def test_authenticate(self, mongo_db, insert_user):
        user = insert_user("teacher", password="teacher-pass", email="profe@ondas.edu.co")
        assert profiles.authenticate(mongo_db, "PROFE@ondas.edu.co", "teacher-pass")["_id"] == user["_id"]

    def test_wrong_password(self, mongo_db, insert_user):
        insert_user("teacher", password="teacher-pass", email="profe@ondas.edu.co")
        with pytest.raises(UnauthenticatedError):
            profiles.authenticate(mongo_db, "profe@ondas.edu.co", "nope")

    def test_profile_without_password_cannot_log_in(self, mongo_db, insert_user):
        insert_user("student", email="external@ondas.edu.co")
        with pytest.raises(UnauthenticatedError):
            profiles.authenticate(mongo_db, "external@ondas.edu.co", "anything")


class TestCompleteProfile:
    """Test the one action open to incomplete students"""

    def test_completion_sets_flag(self, mongo_db, incomplete_student):
        profile = profiles.complete_profile(mongo_db, incomplete_student, COMPLETION)
        assert profile["profileComplete"] is True
        assert profile["firstName"] == "Ana"
        assert profile["identification"] == "1020304050"

    @pytest.mark.parametrize("identification", ["12345678901", "12-34", "abc", ""])
    def test_identification_digits_only(self, mongo_db, incomplete_student, identification):
        with pytest.raises(ValidationFailedError):
            profiles.complete_profile(mongo_db, incomplete_student, dict(COMPLETION, identification=identification))
        stored = mongo_db.users.find_one({"_id": ObjectId(incomplete_student["_id"])})
        assert stored["profileComplete"] is False

    def test_missing_grade(self, mongo_db, incomplete_student):
        payload = {k: v for k, v in COMPLETION.items() if k != "grade"}
        with pytest.raises(ValidationFailedError):
            profiles.complete_profile(mongo_db, incomplete_student, payload)

    def test_complete_profile_sent_to_dashboard(self, mongo_db, student):
        with pytest.raises(RoleNotAllowedError) as exc_info:
            profiles.complete_profile(mongo_db, student, COMPLETION)
        assert exc_info.value.target == LANDING_ROUTE


class TestUserAdministration:
    """Test coordinator-only user management"""

    def test_list_users_by_role(self, mongo_db, coordinator, teacher, student):
        users = profiles.list_users(mongo_db, coordinator, "teacher")
        assert [u["_id"] for u in users] == [teacher["_id"]]

    def test_list_users_unknown_role(self, mongo_db, coordinator):
        with pytest.raises(ValidationFailedError):
            profiles.list_users(mongo_db, coordinator, "principal")

    def test_teacher_cannot_list(self, mongo_db, teacher):
        with pytest.raises(RoleNotAllowedError):
            profiles.list_users(mongo_db, teacher)

    def test_create_teacher_account(self, mongo_db, coordinator):
        payload = {"email": "nuevo@ondas.edu.co", "password": "teacher-pass", "role": "teacher",
                   "firstName": "Luis", "lastName": "Gómez"}
        created = profiles.create_user(mongo_db, coordinator, payload)
        assert created["role"] == "teacher"
        assert created["profileComplete"] is True

    def test_change_role(self, mongo_db, coordinator, student):
        updated = profiles.update_user(mongo_db, coordinator, student["_id"], {"role": "teacher"})
        assert updated["role"] == "teacher"

    def test_cannot_demote_self(self, mongo_db, coordinator):
        with pytest.raises(ValidationFailedError):
            profiles.update_user(mongo_db, coordinator, coordinator["_id"], {"role": "teacher"})

    def test_empty_update(self, mongo_db, coordinator, student):
        with pytest.raises(ValidationFailedError):
            profiles.update_user(mongo_db, coordinator, student["_id"], {})

    @pytest.mark.parametrize("user_id", ["bad-id", str(ObjectId())])
    def test_unknown_user(self, mongo_db, coordinator, user_id):
        with pytest.raises(profiles.UserNotFoundError):
            profiles.update_user(mongo_db, coordinator, user_id, {"grade": "9"})

    def test_null_role_is_not_an_update(self, mongo_db, coordinator, student):
        with pytest.raises(ValidationFailedError):
            profiles.update_user(mongo_db, coordinator, student["_id"], {"role": None})
        stored = mongo_db.users.find_one({"_id": ObjectId(student["_id"])})
        assert stored["role"] == "student"

    def test_nulls_do_not_wipe_fields(self, mongo_db, coordinator, student):
        payload = {"firstName": None, "profileComplete": None, "grade": "9"}
        updated = profiles.update_user(mongo_db, coordinator, student["_id"], payload)
        assert updated["grade"] == "9"
        assert updated["firstName"] == student["firstName"]
        assert updated["profileComplete"] is True

    def test_null_role_on_self_keeps_coordinator(self, mongo_db, coordinator):
        updated = profiles.update_user(mongo_db, coordinator, coordinator["_id"], {"role": None, "grade": "N/A"})
        assert updated["role"] == "coordinator"
        assert updated["grade"] == "N/A"
