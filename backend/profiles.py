# Accounts, profile completion and coordinator user administration

import datetime
import logging
from datetime import timezone
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import access
import auth
from errors import ValidationFailedError, RoleNotAllowedError, UnauthenticatedError
from identity import new_profile_document, resolve_profile
from models import (
    CompleteProfileRequest, CoordinatorUserCreate, CoordinatorUserUpdate,
    Role, UserCreate, validate_payload,
)

logger = logging.getLogger(__name__)


class UserNotFoundError(ValidationFailedError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found.")


def register_user(db: Database, payload) -> dict:
    """Self-registration: always an incomplete student."""
    data: UserCreate = validate_payload(UserCreate, payload)
    email = data.email.lower()

    if db.users.find_one({"email": email}):
        raise ValidationFailedError("Email already registered.")

    user_doc = new_profile_document(email)
    user_doc["hashedPassword"] = auth.get_password_hash(data.password)
    try:
        result = db.users.insert_one(user_doc)
    except DuplicateKeyError:
        raise ValidationFailedError("Email already registered.")

    logger.info("Registered student account %s", email)
    return resolve_profile(db, result.inserted_id)


def authenticate(db: Database, email: str, password: str) -> dict:
    user = db.users.find_one({"email": email.lower()})
    if not user or not auth.verify_password(password, user.get("hashedPassword")):
        logger.info("Failed login for %s", email.lower())
        raise UnauthenticatedError("Incorrect email or password", target=None)
    user["_id"] = str(user["_id"])
    return user


def complete_profile(db: Database, profile: dict, payload) -> dict:
    """Fills in the student's personal data and marks the profile complete.

    This is the one action an incomplete student is allowed to perform.
    """
    if not access.requires_completion(profile):
        raise RoleNotAllowedError("Your profile is already complete.", target=access.LANDING_ROUTE)

    data: CompleteProfileRequest = validate_payload(CompleteProfileRequest, payload)
    db.users.update_one(
        {"_id": ObjectId(profile["_id"])},
        {"$set": {
            "firstName": data.firstName,
            "lastName": data.lastName,
            "identification": data.identification,
            "grade": data.grade,
            "profileComplete": True,
        }},
    )
    logger.info("Student %s completed their profile", profile["_id"])
    return resolve_profile(db, profile["_id"])


# ============================================
# COORDINATOR USER ADMINISTRATION
# ============================================

def _require_coordinator(actor: dict) -> None:
    access.raise_for(access.check_route(actor, access.ROUTE_TABLE["/coordinador/usuarios"]))


def list_users(db: Database, actor: dict, role: Optional[str] = None) -> List[dict]:
    _require_coordinator(actor)
    query = {}
    if role:
        if role not in {r.value for r in Role}:
            raise ValidationFailedError(f"Unknown role '{role}'.")
        query["role"] = role

    users = list(db.users.find(query).sort("createdAt", -1))
    for user in users:
        user["_id"] = str(user["_id"])
    return users


def create_user(db: Database, actor: dict, payload) -> dict:
    """Coordinator-created accounts start with a complete profile."""
    _require_coordinator(actor)
    data: CoordinatorUserCreate = validate_payload(CoordinatorUserCreate, payload)
    email = data.email.lower()
    if db.users.find_one({"email": email}):
        raise ValidationFailedError("Email already registered.")

    user_doc = {
        "email": email,
        "hashedPassword": auth.get_password_hash(data.password),
        "role": data.role.value,
        "profileComplete": True,
        "firstName": data.firstName,
        "lastName": data.lastName,
        "identification": data.identification,
        "grade": data.grade,
        "notifications": [],
        "createdAt": datetime.datetime.now(timezone.utc),
    }
    try:
        result = db.users.insert_one(user_doc)
    except DuplicateKeyError:
        raise ValidationFailedError("Email already registered.")

    logger.info("Coordinator %s created %s account %s", actor["_id"], data.role.value, email)
    return resolve_profile(db, result.inserted_id)


def update_user(db: Database, actor: dict, user_id: str, payload) -> dict:
    """Edits a user's details or changes their role."""
    _require_coordinator(actor)
    data: CoordinatorUserUpdate = validate_payload(CoordinatorUserUpdate, payload)

    try:
        user_obj_id = ObjectId(user_id)
    except InvalidId:
        raise UserNotFoundError(user_id)

    # An explicit null is treated as "not sent"
    update_doc = data.model_dump(exclude_unset=True, exclude_none=True)
    if not update_doc:
        raise ValidationFailedError("No update data provided.")

    if "role" in update_doc:
        if user_id == str(actor["_id"]) and update_doc["role"] != Role.COORDINATOR:
            raise ValidationFailedError("You cannot change your own role.")
        update_doc["role"] = Role(update_doc["role"]).value

    result = db.users.update_one({"_id": user_obj_id}, {"$set": update_doc})
    if result.matched_count == 0:
        raise UserNotFoundError(user_id)

    logger.info("Coordinator %s updated user %s: %s", actor["_id"], user_id, sorted(update_doc))
    return resolve_profile(db, user_id)
