# Visibility Filter

import re
import logging
from typing import Optional, List

from pymongo import DESCENDING
from pymongo.database import Database

from access import Decision, allow, redirect, gate, role_of, is_member, LISTING_ROUTE
from errors import ErrorKind
from models import Role, ProjectState

logger = logging.getLogger(__name__)

# States a student sees in the project listing
STUDENT_LISTED_STATES = (
    ProjectState.ACTIVE.value,
    ProjectState.FORMULATION.value,
    ProjectState.EVALUATION.value,
)
# States hidden from students who are not members (detail view)
STUDENT_HIDDEN_STATES = (
    ProjectState.INACTIVE.value,
    ProjectState.FINALIZED.value,
)


def visible_projects_query(profile: dict) -> dict:
    """Role-scoped filter for the project listing."""
    role = role_of(profile)
    user_id = str(profile["_id"])

    if role == Role.COORDINATOR.value:
        return {}
    if role == Role.TEACHER.value:
        return {"ownerTeacherId": user_id}
    if role == Role.STUDENT.value:
        # Inactive and Finalized projects never reach a student's listing,
        # membership notwithstanding.
        return {"members": user_id, "state": {"$in": list(STUDENT_LISTED_STATES)}}

    # Unknown role: nothing is visible
    return {"_id": None}


def list_visible_projects(db: Database, profile: dict, search: Optional[str] = None) -> List[dict]:
    """Projects the principal may see in the listing, newest first."""
    query = visible_projects_query(profile)

    if search and search.strip():
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        text_filter = {"$or": [
            {"title": pattern},
            {"institution": pattern},
            {"area": pattern},
        ]}
        query = {"$and": [query, text_filter]} if query else text_filter

    projects = list(db.projects.find(query).sort("createdAt", DESCENDING))
    for project in projects:
        project["_id"] = str(project["_id"])
    return projects


def check_view_project(profile: Optional[dict], project: dict) -> Decision:
    """Detail-view rule.

    Independent of the listing rule: a student member may open an Inactive
    or Finalized project that the listing never shows them.
    """
    refused = gate(profile)
    if refused:
        return refused

    role = role_of(profile)
    if role in (Role.COORDINATOR.value, Role.TEACHER.value):
        return allow()
    if role == Role.STUDENT.value:
        if project.get("state") in STUDENT_HIDDEN_STATES and not is_member(profile, project):
            return redirect(
                LISTING_ROUTE,
                ErrorKind.ROLE_NOT_ALLOWED,
                "This project is not visible to you in its current state.",
            )
        return allow()

    return redirect(LISTING_ROUTE, ErrorKind.ROLE_NOT_ALLOWED, "Your role cannot view projects.")


def can_view_project(profile: Optional[dict], project: dict) -> bool:
    return check_view_project(profile, project).allowed
