# Project actions
#
# Each action checks the access decision first and validates its input
# before any write, then performs the write against the document store.

import datetime
import logging
from datetime import timezone
from typing import Callable, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

import access
import lifecycle
import notifications
from errors import ProjectNotFoundError, ValidationFailedError
from models import ProjectCreate, ProjectUpdate, Role, validate_payload
from storage import ALLOWED_EXTENSIONS, file_extension

logger = logging.getLogger(__name__)

Notifier = Callable[..., dict]


def _now() -> datetime.datetime:
    return datetime.datetime.now(timezone.utc)


def _project_obj_id(project_id) -> ObjectId:
    try:
        return ObjectId(str(project_id))
    except (InvalidId, TypeError):
        raise ProjectNotFoundError()


def get_project(db: Database, project_id) -> dict:
    """Fetches a project by id; malformed and unknown ids are both NotFound."""
    project = db.projects.find_one({"_id": _project_obj_id(project_id)})
    if not project:
        raise ProjectNotFoundError()
    project["_id"] = str(project["_id"])
    project.setdefault("members", [])
    project.setdefault("evidences", [])
    project.setdefault("stateHistory", [])
    return project


def member_details(db: Database, project: dict) -> List[dict]:
    """Display data for each member; unknown ids are reported, not dropped."""
    details = []
    for uid in project.get("members", []):
        try:
            user = db.users.find_one(
                {"_id": ObjectId(uid)},
                {"firstName": 1, "lastName": 1, "identification": 1, "grade": 1},
            )
        except InvalidId:
            user = None
        if user:
            details.append({
                "id": uid,
                "firstName": user.get("firstName"),
                "lastName": user.get("lastName"),
                "identification": user.get("identification"),
                "grade": user.get("grade"),
            })
        else:
            details.append({"id": uid, "firstName": "Unknown", "lastName": "Unknown",
                            "identification": None, "grade": None})
    return details


def _validate_members(db: Database, member_ids: List[str]) -> List[str]:
    """De-duplicates member ids and checks each names an existing student."""
    unique_ids = list(dict.fromkeys(str(m).strip() for m in member_ids if str(m).strip()))
    if not unique_ids:
        raise ValidationFailedError("At least one student must be selected.")

    obj_ids = []
    for uid in unique_ids:
        try:
            obj_ids.append(ObjectId(uid))
        except InvalidId:
            raise ValidationFailedError(f"Invalid student id '{uid}'.")

    found = {
        str(user["_id"])
        for user in db.users.find({"_id": {"$in": obj_ids}, "role": Role.STUDENT.value}, {"_id": 1})
    }
    missing = [uid for uid in unique_ids if uid not in found]
    if missing:
        raise ValidationFailedError(f"These ids are not registered students: {', '.join(missing)}.")
    return unique_ids


def create_project(
    db: Database,
    teacher: dict,
    payload,
    notify: Notifier = notifications.notify,
) -> Tuple[dict, List[str]]:
    """Creates a project in Formulation and notifies its members.

    Member notification is best effort: a failure there does not undo the
    project and is returned as a warning (degraded success).
    """
    access.raise_for(access.check_create_project(teacher))
    data: ProjectCreate = validate_payload(ProjectCreate, payload)
    members = _validate_members(db, data.members)

    now = _now()
    teacher_id = str(teacher["_id"])
    project_doc = {
        "title": data.title,
        "area": data.area,
        "objectives": data.objectives,
        "schedule": data.schedule,
        "budget": float(data.budget),
        "institution": data.institution,
        "notes": data.notes or "",
        "state": lifecycle.INITIAL_STATE.value,
        "ownerTeacherId": teacher_id,
        "ownerEmail": teacher.get("email"),
        "members": members,
        "evidences": [],
        "stateHistory": lifecycle.initial_history(teacher_id, now),
        "createdAt": now,
        "updatedAt": now,
    }

    result = db.projects.insert_one(project_doc)
    project_id = str(result.inserted_id)
    logger.info("Project %s created by teacher %s with %d members", project_id, teacher_id, len(members))

    warnings = []
    message = f'You have been assigned to project "{data.title}" by teacher {teacher.get("email") or teacher_id}.'
    for member_id in members:
        try:
            notify(db, member_id, message, project_id)
        except Exception as e:
            logger.warning("Could not notify member %s of project %s: %r", member_id, project_id, e)
            warnings.append(f"Member {member_id} could not be notified.")

    return get_project(db, project_id), warnings


def update_details(db: Database, actor: dict, project: dict, payload) -> dict:
    """Edits the descriptive fields. State, owner, members and history are untouched."""
    access.raise_for(access.check_edit_details(actor, project))
    data: ProjectUpdate = validate_payload(ProjectUpdate, payload)

    update_doc = {
        "title": data.title,
        "area": data.area,
        "objectives": data.objectives,
        "schedule": data.schedule or "",
        "institution": data.institution,
        "budget": float(data.budget),
        "notes": data.notes or "",
        "updatedAt": _now(),
    }
    result = db.projects.update_one({"_id": _project_obj_id(project["_id"])}, {"$set": update_doc})
    if result.matched_count == 0:
        raise ProjectNotFoundError()

    logger.info("Project %s details updated by %s", project["_id"], actor["_id"])
    return get_project(db, project["_id"])


def change_state(db: Database, actor: dict, project: dict, new_state) -> dict:
    return lifecycle.transition(db, project, new_state, actor)


def delete_project(db: Database, actor: dict, project: dict) -> None:
    access.raise_for(access.check_delete_project(actor, project))
    result = db.projects.delete_one({"_id": _project_obj_id(project["_id"])})
    if result.deleted_count == 0:
        raise ProjectNotFoundError()
    logger.info("Project %s deleted by coordinator %s", project["_id"], actor["_id"])


def _validate_evidence(filename: Optional[str], content: Optional[bytes], description: Optional[str]) -> str:
    description = (description or "").strip()
    if not filename or not content or not description:
        raise ValidationFailedError("You must select a file and write a description.")
    if file_extension(filename) not in ALLOWED_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_EXTENSIONS))
        raise ValidationFailedError(f"File type not allowed. Allowed types: {allowed}.")
    return description


async def add_evidence(
    db: Database,
    actor: dict,
    project: dict,
    filename: str,
    content: bytes,
    description: str,
    storage,
    content_type: str = "application/octet-stream",
    notify: Notifier = notifications.notify,
) -> Tuple[dict, List[str]]:
    """Uploads an evidence file and records its metadata on the project.

    Permission and input are checked before the upload. When the metadata
    write fails after a successful upload, the blob is left behind.
    """
    access.raise_for(access.check_upload_evidence(actor, project))
    description = _validate_evidence(filename, content, description)

    uploaded = await storage.upload(filename, content, content_type)

    evidence = {
        "url": uploaded["url"],
        "description": description,
        "timestamp": _now(),
        "uploadedBy": str(actor["_id"]),
    }
    try:
        result = db.projects.update_one(
            {"_id": _project_obj_id(project["_id"])},
            {"$push": {"evidences": evidence}},
        )
    except Exception:
        logger.error("Evidence uploaded to %s but metadata write failed; blob is dangling",
                     uploaded["url"], exc_info=True)
        raise
    if result.matched_count == 0:
        logger.warning("Project %s vanished after upload; blob %s is dangling", project["_id"], uploaded["url"])
        raise ProjectNotFoundError()

    logger.info("Evidence added to project %s by %s", project["_id"], actor["_id"])

    warnings = []
    owner_id = project.get("ownerTeacherId")
    if owner_id and owner_id != str(actor["_id"]):
        message = f"New evidence was uploaded to project: {project.get('title')}"
        try:
            notify(db, owner_id, message, str(project["_id"]))
        except Exception as e:
            logger.warning("Could not notify owner %s of new evidence: %r", owner_id, e)
            warnings.append("The project owner could not be notified.")

    return get_project(db, project["_id"]), warnings


def remove_evidence(db: Database, actor: dict, project: dict, index: int) -> dict:
    """Removes an evidence record. The stored file itself is kept."""
    access.raise_for(access.check_delete_evidence(actor, project))

    evidences = list(project.get("evidences") or [])
    if index < 0 or index >= len(evidences):
        raise ValidationFailedError("Evidence not found.")

    remaining = [ev for i, ev in enumerate(evidences) if i != index]
    result = db.projects.update_one(
        {"_id": _project_obj_id(project["_id"])},
        {"$set": {"evidences": remaining, "updatedAt": _now()}},
    )
    if result.matched_count == 0:
        raise ProjectNotFoundError()

    logger.info("Evidence %d removed from project %s by %s", index, project["_id"], actor["_id"])
    return get_project(db, project["_id"])
