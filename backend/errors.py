# Error kinds and exceptions

from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    PROFILE_INCOMPLETE = "ProfileIncomplete"
    ROLE_NOT_ALLOWED = "RoleNotAllowed"
    PROJECT_LOCKED = "ProjectLocked"
    PROJECT_NOT_FOUND = "ProjectNotFound"
    VALIDATION_FAILED = "ValidationFailed"
    TRANSITION_NOOP = "TransitionNoop"


class OndasError(Exception):
    """Base exception for refused actions.

    Every refusal carries its kind, a user-facing message and, for the
    kinds that end in navigation, the redirect target.
    """

    kind: ErrorKind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, target: Optional[str] = None):
        self.message = message
        self.target = target
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "redirect": self.target,
        }


class UnauthenticatedError(OndasError):
    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, message: str = "Not authenticated. Please log in.", target: Optional[str] = "/login"):
        super().__init__(message, target)


class ProfileIncompleteError(OndasError):
    kind = ErrorKind.PROFILE_INCOMPLETE

    def __init__(self, message: str = "Your profile is incomplete. Please complete it first.", target: Optional[str] = "/completar-perfil"):
        super().__init__(message, target)


class RoleNotAllowedError(OndasError):
    kind = ErrorKind.ROLE_NOT_ALLOWED


class ProjectLockedError(OndasError):
    kind = ErrorKind.PROJECT_LOCKED


class ProjectNotFoundError(OndasError):
    kind = ErrorKind.PROJECT_NOT_FOUND

    def __init__(self, message: str = "Project not found.", target: Optional[str] = "/proyectos"):
        super().__init__(message, target)


class ValidationFailedError(OndasError):
    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message, None)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class TransitionNoopError(OndasError):
    kind = ErrorKind.TRANSITION_NOOP


class StorageError(Exception):
    """Object storage upload failed"""


ERROR_CLASSES = {
    ErrorKind.UNAUTHENTICATED: UnauthenticatedError,
    ErrorKind.PROFILE_INCOMPLETE: ProfileIncompleteError,
    ErrorKind.ROLE_NOT_ALLOWED: RoleNotAllowedError,
    ErrorKind.PROJECT_LOCKED: ProjectLockedError,
    ErrorKind.PROJECT_NOT_FOUND: ProjectNotFoundError,
    ErrorKind.VALIDATION_FAILED: ValidationFailedError,
    ErrorKind.TRANSITION_NOOP: TransitionNoopError,
}


def error_for(kind: ErrorKind, message: str, target: Optional[str] = None) -> OndasError:
    """Builds the exception matching an error kind."""
    error_cls = ERROR_CLASSES[kind]
    if error_cls is ValidationFailedError:
        return ValidationFailedError(message)
    return error_cls(message, target)
