# Data Models

from enum import Enum
from typing import Optional, List, Type, TypeVar

from pydantic import BaseModel, EmailStr, Field, ValidationError
from datetime import datetime
from bson import ObjectId

from errors import ValidationFailedError


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    COORDINATOR = "coordinator"


class ProjectState(str, Enum):
    FORMULATION = "Formulation"
    EVALUATION = "Evaluation"
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    FINALIZED = "Finalized"


ALL_ROLES = frozenset(role.value for role in Role)


# ============================================
# USER-RELATED MODELS
# ============================================

class UserCreate(BaseModel):
    """Self-registration. New accounts are always incomplete students."""
    email: EmailStr
    password: str = Field(..., min_length=8)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    sub: Optional[str] = None  # principal id
    email: Optional[str] = None
    role: Optional[str] = None


class Notification(BaseModel):
    message: str
    read: bool = False
    timestamp: datetime
    relatedProjectId: Optional[str] = None
    index: Optional[int] = None  # position in the stored list, for mark-as-read


class UserPublic(BaseModel):
    """User profile without sensitive info"""
    id: str = Field(..., alias="_id")
    email: Optional[str] = None
    role: Role
    profileComplete: bool = False
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    identification: Optional[str] = None
    grade: Optional[str] = None
    notifications: List[Notification] = []
    createdAt: Optional[datetime] = None

    class Config:
        populate_by_name = True
        from_attributes = True
        arbitrary_types_allowed = True
        json_encoders = {
            ObjectId: str,
            datetime: lambda dt: dt.isoformat()
        }


class CompleteProfileRequest(BaseModel):
    firstName: str = Field(..., min_length=1, max_length=100)
    lastName: str = Field(..., min_length=1, max_length=100)
    # Digits only, up to 10 of them
    identification: str = Field(..., pattern=r"^\d{1,10}$")
    grade: str = Field(..., min_length=1, max_length=50)

    class Config:
        str_strip_whitespace = True


class CoordinatorUserCreate(BaseModel):
    """Coordinator-only: creates an account with an explicit role."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: Role
    firstName: str = Field(..., min_length=1, max_length=100)
    lastName: str = Field(..., min_length=1, max_length=100)
    identification: Optional[str] = Field(None, pattern=r"^\d{1,10}$")
    grade: Optional[str] = None

    class Config:
        str_strip_whitespace = True


class CoordinatorUserUpdate(BaseModel):
    """Coordinator-only: updates profile details or changes the role."""
    firstName: Optional[str] = Field(None, min_length=1, max_length=100)
    lastName: Optional[str] = Field(None, min_length=1, max_length=100)
    identification: Optional[str] = Field(None, pattern=r"^\d{1,10}$")
    grade: Optional[str] = Field(None, min_length=1)
    role: Optional[Role] = None
    profileComplete: Optional[bool] = None

    class Config:
        str_strip_whitespace = True


# ============================================
# PROJECT-RELATED MODELS
# ============================================

class Evidence(BaseModel):
    url: str
    description: str
    timestamp: datetime
    uploadedBy: Optional[str] = None


class StateHistoryEntry(BaseModel):
    state: ProjectState
    timestamp: datetime
    actor: str


class ProjectCreate(BaseModel):
    """Model for creating a new project (teacher only)"""
    title: str = Field(..., min_length=1, max_length=200)
    area: str = Field(..., min_length=1, max_length=200)
    objectives: str = Field(..., min_length=1, max_length=2000)
    schedule: str = Field(..., min_length=1, max_length=2000)
    budget: float = Field(..., gt=0, allow_inf_nan=False)
    institution: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = ""
    members: List[str] = Field(..., min_length=1)

    class Config:
        str_strip_whitespace = True


class ProjectUpdate(BaseModel):
    """Request to update project details"""
    title: str = Field(..., min_length=1, max_length=200)
    area: str = Field(..., min_length=1, max_length=200)
    objectives: str = Field(..., min_length=1, max_length=2000)
    schedule: Optional[str] = ""
    budget: float = Field(..., gt=0, allow_inf_nan=False)
    institution: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = ""

    class Config:
        str_strip_whitespace = True


class StateChangeRequest(BaseModel):
    state: str


class ProjectPublic(BaseModel):
    """Complete project model as stored in database"""
    id: str = Field(..., alias="_id")
    title: str
    area: str
    objectives: str
    schedule: Optional[str] = ""
    budget: float
    institution: str
    notes: Optional[str] = ""
    state: ProjectState
    ownerTeacherId: str
    ownerEmail: Optional[str] = None
    members: List[str] = []
    evidences: List[Evidence] = []
    stateHistory: List[StateHistoryEntry] = []
    createdAt: datetime
    updatedAt: Optional[datetime] = None

    class Config:
        populate_by_name = True
        from_attributes = True
        arbitrary_types_allowed = True
        json_encoders = {
            ObjectId: str,
            datetime: lambda dt: dt.isoformat()
        }


class MemberDetail(BaseModel):
    id: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    identification: Optional[str] = None
    grade: Optional[str] = None


class ProjectPermissions(BaseModel):
    editDetails: bool = False
    changeState: bool = False
    uploadEvidence: bool = False
    deleteEvidence: bool = False
    deleteProject: bool = False


class ProjectDetail(ProjectPublic):
    """Single-project view: members resolved, actions pre-evaluated."""
    memberDetails: List[MemberDetail] = []
    permissions: ProjectPermissions = ProjectPermissions()


class ProjectActionResult(BaseModel):
    """A write that succeeded, possibly with a failed secondary step."""
    project: ProjectPublic
    degraded: bool = False
    warnings: List[str] = []


# ============================================
# NAVIGATION / DASHBOARD MODELS
# ============================================

class DecisionPublic(BaseModel):
    outcome: str  # enum: "allow", "redirect", "deny"
    kind: Optional[str] = None
    message: Optional[str] = None
    target: Optional[str] = None


class DashboardResponse(BaseModel):
    profile: UserPublic
    projects: List[ProjectPublic] = []
    unreadNotifications: int = 0


ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_payload(model_cls: Type[ModelT], data) -> ModelT:
    """Parses raw input into a model, refusing with ValidationFailed."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        first = errors[0] if errors else {"field": "", "message": "Invalid input"}
        raise ValidationFailedError(f"{first['field']}: {first['message']}", errors=errors)
