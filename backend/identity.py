# Identity Resolver

import datetime
import logging
from datetime import timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from models import Role

logger = logging.getLogger(__name__)


def _as_object_id(principal_id) -> Optional[ObjectId]:
    try:
        return ObjectId(str(principal_id))
    except (InvalidId, TypeError):
        return None


def resolve_profile(db: Database, principal_id) -> Optional[dict]:
    """Maps a principal id to its stored profile, or None when there is none."""
    obj_id = _as_object_id(principal_id)
    if obj_id is None:
        return None
    profile = db.users.find_one({"_id": obj_id})
    if profile:
        profile["_id"] = str(profile["_id"])
    return profile


def new_profile_document(email: Optional[str] = None) -> dict:
    """Minimal profile of a principal seen for the first time."""
    return {
        "email": email.lower() if email else None,
        "role": Role.STUDENT.value,
        "profileComplete": False,
        "firstName": None,
        "lastName": None,
        "identification": None,
        "grade": None,
        "notifications": [],
        "createdAt": datetime.datetime.now(timezone.utc),
    }


def bootstrap_profile(db: Database, principal_id, email: Optional[str] = None) -> dict:
    """Creates the minimal student profile for an unregistered principal.

    An existing profile is returned untouched.
    """
    existing = resolve_profile(db, principal_id)
    if existing:
        return existing

    obj_id = _as_object_id(principal_id)
    if obj_id is None:
        raise ValueError(f"Cannot bootstrap a profile for principal id {principal_id!r}")

    doc = new_profile_document(email)
    doc["_id"] = obj_id
    try:
        db.users.insert_one(doc)
        logger.info("Bootstrapped incomplete student profile for principal %s", principal_id)
    except DuplicateKeyError:
        # Lost a race with another first request of the same principal
        logger.info("Profile for principal %s created concurrently", principal_id)

    return resolve_profile(db, principal_id)


def resolve_or_bootstrap(db: Database, principal_id, email: Optional[str] = None) -> dict:
    profile = resolve_profile(db, principal_id)
    if profile is None:
        profile = bootstrap_profile(db, principal_id, email)
    return profile
