# Access Control Evaluator
#
# Pure decision functions. Every function takes the principal's profile
# (a user document, or None when nobody is authenticated) and, for
# project-level actions, the project document. Nothing here reads the
# session, touches the database or performs navigation: callers act on
# the returned Decision.

import logging
from dataclasses import dataclass
from typing import Optional, Iterable

from errors import ErrorKind, error_for
from models import Role, ProjectState, ALL_ROLES

logger = logging.getLogger(__name__)

# --- Navigation targets ---
LOGIN_ROUTE = "/login"
COMPLETION_ROUTE = "/completar-perfil"
LANDING_ROUTE = "/dashboard"
LISTING_ROUTE = "/proyectos"

# Route table: path -> roles allowed to enter it.
# The completion route is deliberately absent: it is exempt from the gate.
ROUTE_TABLE = {
    "/dashboard": ALL_ROLES,
    "/proyectos": ALL_ROLES,
    "/proyectos/{id}": ALL_ROLES,
    "/crear-proyecto": frozenset({Role.TEACHER.value}),
    "/coordinador/usuarios": frozenset({Role.COORDINATOR.value}),
}

ALLOW = "allow"
REDIRECT = "redirect"
DENY = "deny"


@dataclass(frozen=True)
class Decision:
    """Allow | Redirect(target) | Deny(reason)"""
    outcome: str
    kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    target: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome == ALLOW

    def as_error(self):
        """The exception equivalent of a refusal (None when allowed)."""
        if self.allowed:
            return None
        return error_for(self.kind, self.message, self.target)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "target": self.target,
        }


def allow() -> Decision:
    return Decision(ALLOW)


def redirect(target: str, kind: ErrorKind, message: str) -> Decision:
    return Decision(REDIRECT, kind, message, target)


def deny(kind: ErrorKind, message: str) -> Decision:
    return Decision(DENY, kind, message)


def raise_for(decision: Decision) -> None:
    """Raises the matching OndasError when the decision is a refusal."""
    if decision.allowed:
        return
    logger.info("Access refused: %s (%s)", decision.kind.value, decision.message)
    raise decision.as_error()


# ============================================
# RELATIONSHIP HELPERS
# ============================================

def role_of(profile: dict) -> Optional[str]:
    role = profile.get("role")
    return role.value if isinstance(role, Role) else role


def is_coordinator(profile: dict) -> bool:
    return role_of(profile) == Role.COORDINATOR.value


def is_owner(profile: dict, project: dict) -> bool:
    return role_of(profile) == Role.TEACHER.value and project.get("ownerTeacherId") == str(profile.get("_id"))


def is_member(profile: dict, project: dict) -> bool:
    return str(profile.get("_id")) in (project.get("members") or [])


def is_finalized(project: dict) -> bool:
    return project.get("state") == ProjectState.FINALIZED.value


# ============================================
# PROFILE COMPLETENESS GATE
# ============================================

def requires_completion(profile: dict) -> bool:
    """True iff the principal is a student whose profile is incomplete."""
    return role_of(profile) == Role.STUDENT.value and not profile.get("profileComplete", False)


def gate(profile: Optional[dict]) -> Optional[Decision]:
    """Checks shared by every protected entry point, in precedence order."""
    if profile is None:
        return redirect(LOGIN_ROUTE, ErrorKind.UNAUTHENTICATED, "Not authenticated. Please log in.")
    if requires_completion(profile):
        return redirect(
            COMPLETION_ROUTE,
            ErrorKind.PROFILE_INCOMPLETE,
            "Your student profile is incomplete. Please complete it before continuing.",
        )
    return None


# ============================================
# ROUTE ENTRY
# ============================================

def check_route(profile: Optional[dict], allowed_roles: Iterable[str]) -> Decision:
    refused = gate(profile)
    if refused:
        return refused
    allowed = {r.value if isinstance(r, Role) else r for r in allowed_roles}
    if role_of(profile) not in allowed:
        return redirect(
            LANDING_ROUTE,
            ErrorKind.ROLE_NOT_ALLOWED,
            f"Your role '{role_of(profile)}' is not allowed to access this page.",
        )
    return allow()


def can_enter_route(profile: Optional[dict], allowed_roles: Iterable[str]) -> bool:
    return check_route(profile, allowed_roles).allowed


def check_path(profile: Optional[dict], path: str) -> Decision:
    """Route entry by path, for the navigation endpoint."""
    if path == COMPLETION_ROUTE:
        if profile is None:
            return gate(profile)
        if requires_completion(profile):
            return allow()
        # Nothing left to complete
        return redirect(LANDING_ROUTE, ErrorKind.ROLE_NOT_ALLOWED, "Your profile is already complete.")
    allowed_roles = ROUTE_TABLE.get(path)
    if allowed_roles is None:
        return redirect(LANDING_ROUTE, ErrorKind.ROLE_NOT_ALLOWED, f"Unknown page '{path}'.")
    return check_route(profile, allowed_roles)


# ============================================
# PROJECT ACTIONS
# ============================================

_LOCKED_MESSAGE = "This project is Finalized; only a coordinator can {action}."


def _locked(action: str) -> Decision:
    return deny(ErrorKind.PROJECT_LOCKED, _LOCKED_MESSAGE.format(action=action))


def check_edit_details(profile: Optional[dict], project: dict) -> Decision:
    refused = gate(profile)
    if refused:
        return refused
    if is_coordinator(profile):
        return allow()
    if role_of(profile) != Role.TEACHER.value:
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Only the owner teacher or a coordinator can edit this project.")
    if is_finalized(project):
        return _locked("edit it")
    if not is_owner(profile, project):
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Only the teacher who created this project or a coordinator can edit it.")
    return allow()


def check_change_state(profile: Optional[dict], project: dict) -> Decision:
    refused = gate(profile)
    if refused:
        return refused
    if not is_coordinator(profile):
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Only a coordinator can change the project state.")
    return allow()


def check_upload_evidence(profile: Optional[dict], project: dict) -> Decision:
    refused = gate(profile)
    if refused:
        return refused
    if is_coordinator(profile):
        return allow()
    role = role_of(profile)
    if role not in (Role.TEACHER.value, Role.STUDENT.value):
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Your role cannot upload evidence.")
    if is_finalized(project):
        return _locked("add evidence")
    if role == Role.TEACHER.value and not is_owner(profile, project):
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Only the teacher who created this project can upload evidence to it.")
    if role == Role.STUDENT.value and not is_member(profile, project):
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Only members of this project can upload evidence to it.")
    return allow()


def check_delete_evidence(profile: Optional[dict], project: dict) -> Decision:
    refused = gate(profile)
    if refused:
        return refused
    if is_coordinator(profile):
        return allow()
    if role_of(profile) != Role.TEACHER.value:
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Only teachers and coordinators can delete evidence.")
    if is_finalized(project):
        return _locked("delete evidence")
    if not is_owner(profile, project):
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Only the teacher who created this project or a coordinator can delete its evidence.")
    return allow()


def check_delete_project(profile: Optional[dict], project: dict) -> Decision:
    refused = gate(profile)
    if refused:
        return refused
    if not is_coordinator(profile):
        return deny(ErrorKind.ROLE_NOT_ALLOWED, "Only a coordinator can delete projects.")
    return allow()


def check_create_project(profile: Optional[dict]) -> Decision:
    refused = gate(profile)
    if refused:
        return refused
    if role_of(profile) != Role.TEACHER.value:
        return redirect(LISTING_ROUTE, ErrorKind.ROLE_NOT_ALLOWED, "Access denied. Only teachers can create projects.")
    return allow()


def can_edit_details(profile: Optional[dict], project: dict) -> bool:
    return check_edit_details(profile, project).allowed


def can_change_state(profile: Optional[dict], project: dict) -> bool:
    return check_change_state(profile, project).allowed


def can_upload_evidence(profile: Optional[dict], project: dict) -> bool:
    return check_upload_evidence(profile, project).allowed


def can_delete_evidence(profile: Optional[dict], project: dict) -> bool:
    return check_delete_evidence(profile, project).allowed


def can_delete_project(profile: Optional[dict], project: dict) -> bool:
    return check_delete_project(profile, project).allowed


def project_permissions(profile: Optional[dict], project: dict) -> dict:
    """Per-action flags for a client rendering a project."""
    return {
        "editDetails": can_edit_details(profile, project),
        "changeState": can_change_state(profile, project),
        "uploadEvidence": can_upload_evidence(profile, project),
        "deleteEvidence": can_delete_evidence(profile, project),
        "deleteProject": can_delete_project(profile, project),
    }
