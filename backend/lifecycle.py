# Project Lifecycle State Machine

import datetime
import logging
from datetime import timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.database import Database

import access
from errors import ProjectNotFoundError, TransitionNoopError, ValidationFailedError
from models import ProjectState

logger = logging.getLogger(__name__)

INITIAL_STATE = ProjectState.FORMULATION

# Any state may move to any other state. Finalized is not terminal: a
# coordinator can reopen a finalized project.
TRANSITIONS = {
    state.value: frozenset(other.value for other in ProjectState if other is not state)
    for state in ProjectState
}


def _now() -> datetime.datetime:
    return datetime.datetime.now(timezone.utc)


def parse_state(value) -> ProjectState:
    try:
        return ProjectState(value)
    except ValueError:
        allowed = ", ".join(state.value for state in ProjectState)
        raise ValidationFailedError(f"Unknown project state '{value}'. Expected one of: {allowed}.")


def history_entry(state: ProjectState, actor_id: str, now: Optional[datetime.datetime] = None) -> dict:
    return {"state": ProjectState(state).value, "timestamp": now or _now(), "actor": actor_id}


def initial_history(actor_id: str, now: Optional[datetime.datetime] = None) -> list:
    """History of a freshly created project: a single Formulation entry."""
    return [history_entry(INITIAL_STATE, actor_id, now)]


def plan_transition(actor: dict, project: dict, new_state, now: Optional[datetime.datetime] = None) -> dict:
    """Validates a transition and returns the history entry to append.

    Pure: raises RoleNotAllowed / ProfileIncomplete, ValidationFailed or
    TransitionNoop without touching the project.
    """
    access.raise_for(access.check_change_state(actor, project))

    target = parse_state(new_state)
    current = project.get("state")
    if target.value == current:
        raise TransitionNoopError(f"The project is already in state '{current}'. Choose a different state.")
    if target.value not in TRANSITIONS.get(current, TRANSITIONS[INITIAL_STATE.value]):
        raise ValidationFailedError(f"Cannot move a project from '{current}' to '{target.value}'.")

    return history_entry(target, str(actor["_id"]), now)


def transition(db: Database, project: dict, new_state, actor: dict) -> dict:
    """Moves a project to a new state and records it in stateHistory.

    The state and its history entry are written by one single-document
    update, so neither can be persisted without the other. The append is
    not conditioned on the state read by the caller: two sessions racing
    both append and the last write decides the current state.
    """
    entry = plan_transition(actor, project, new_state)

    try:
        project_obj_id = ObjectId(str(project["_id"]))
    except InvalidId:
        raise ProjectNotFoundError()

    updated = db.projects.find_one_and_update(
        {"_id": project_obj_id},
        {
            "$set": {"state": entry["state"], "updatedAt": entry["timestamp"]},
            "$push": {"stateHistory": entry},
        },
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ProjectNotFoundError()

    logger.info(
        "Project %s moved %s -> %s by %s",
        project["_id"], project.get("state"), entry["state"], entry["actor"],
    )
    updated["_id"] = str(updated["_id"])
    return updated
