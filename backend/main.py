# Plataforma Ondas backend

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional, List

from fastapi import FastAPI, Depends, File, Form, Header, Query, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from pymongo.errors import ConnectionFailure

import access
import auth
import database
import models
import notifications
import profiles
import projects
import visibility
from errors import ErrorKind, OndasError, StorageError, UnauthenticatedError
from identity import resolve_or_bootstrap
from logging_config import setup_logging, set_request_id, generate_request_id
from storage import CloudinaryStorage

setup_logging()
logger = logging.getLogger(__name__)


# --- Database Connection Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        database.connect_to_mongo()
        database.create_coordinator_user()
    except ConnectionFailure as e:
        logger.critical("Could not connect to MongoDB on startup. %s", e)
    yield
    database.close_mongo_connection()


# --- App Initialization ---
app = FastAPI(title="Plataforma Ondas Backend", lifespan=lifespan)

# --- CORS Middleware ---
# Comma separated list; "*" is convenient for local dev but unsafe for production.
origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.PROFILE_INCOMPLETE: status.HTTP_403_FORBIDDEN,
    ErrorKind.ROLE_NOT_ALLOWED: status.HTTP_403_FORBIDDEN,
    ErrorKind.PROJECT_LOCKED: status.HTTP_423_LOCKED,
    ErrorKind.PROJECT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.TRANSITION_NOOP: status.HTTP_409_CONFLICT,
}


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# --- Exception handlers ---
# Refusals are answered as {kind, message, redirect}; the client decides
# how to navigate.
@app.exception_handler(OndasError)
async def ondas_error_handler(request: Request, exc: OndasError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.UNAUTHENTICATED else None
    return JSONResponse(status_code=STATUS_BY_KIND[exc.kind], content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    first = errors[0] if errors else {"field": "", "message": "Invalid input"}
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "kind": ErrorKind.VALIDATION_FAILED.value,
            "message": f"{first['field']}: {first['message']}",
            "redirect": None,
            "errors": errors,
        },
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"kind": "UploadFailed", "message": "Error uploading the file. Please try again.", "redirect": None},
    )


@app.exception_handler(ConnectionFailure)
async def connection_failure_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database unavailable: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"kind": "ServiceUnavailable", "message": "The database is not available.", "redirect": None},
    )


# --- Dependencies ---
def get_db() -> Database:
    # get_database raises ConnectionFailure if not connected
    return database.get_database()


def get_storage() -> CloudinaryStorage:
    return CloudinaryStorage()


def get_token_data(authorization: Optional[str] = Header(None)) -> Optional[models.TokenData]:
    """Bearer token payload, or None when no usable token was sent."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return auth.verify_token(parts[1])


def get_optional_profile(
    token_data: Optional[models.TokenData] = Depends(get_token_data),
    db: Database = Depends(get_db),
) -> Optional[dict]:
    if token_data is None:
        return None
    # A principal without a stored profile is an unregistered student
    try:
        return resolve_or_bootstrap(db, token_data.sub, token_data.email)
    except ValueError as e:
        logger.warning("Unusable principal id in token: %s", e)
        return None


def get_current_profile(profile: Optional[dict] = Depends(get_optional_profile)) -> dict:
    """Authenticated principal's profile; no completeness or role check."""
    if profile is None:
        raise UnauthenticatedError()
    return profile


def require_route(path: str):
    """Dependency gating an endpoint with the route table entry for `path`."""
    def dependency(profile: Optional[dict] = Depends(get_optional_profile)) -> dict:
        access.raise_for(access.check_path(profile, path))
        return profile
    return dependency


def _project_detail(db: Database, profile: dict, project: dict) -> dict:
    detail = dict(project)
    detail["memberDetails"] = projects.member_details(db, project)
    detail["permissions"] = access.project_permissions(profile, project)
    return detail


# --- API Endpoints ---

@app.get("/")
async def read_root():
    return {"message": "Welcome to Plataforma Ondas Backend"}


@app.post("/register", response_model=models.UserPublic, status_code=status.HTTP_201_CREATED)
async def register_user(user_data: models.UserCreate, db: Database = Depends(get_db)):
    """Registers a new student account (profile incomplete)."""
    return profiles.register_user(db, user_data)


@app.post("/login", response_model=models.Token)
async def login_for_access_token(form_data: models.LoginRequest, db: Database = Depends(get_db)):
    """Authenticates a user and returns a JWT token."""
    user = profiles.authenticate(db, form_data.email, form_data.password)
    access_token = auth.create_access_token(user["_id"], email=user.get("email"), role=user.get("role"))
    return {"access_token": access_token, "token_type": "bearer"}


@app.get("/navigation", response_model=models.DecisionPublic)
async def check_navigation(
    path: str = Query(..., description="Client route the user is trying to enter"),
    profile: Optional[dict] = Depends(get_optional_profile),
):
    """Tells the client whether to render a page or where to redirect."""
    return access.check_path(profile, path).to_dict()


# ============================================
# CURRENT USER ENDPOINTS
# ============================================

@app.get("/users/me", response_model=models.UserPublic)
async def get_current_user_details(current_user: dict = Depends(get_current_profile)):
    """Gets the profile of the logged-in user, complete or not."""
    return current_user


@app.post("/users/me/complete-profile", response_model=models.UserPublic)
async def complete_student_profile(
    profile_data: models.CompleteProfileRequest,
    current_user: dict = Depends(get_current_profile),
    db: Database = Depends(get_db),
):
    """Completes a student profile; the only action open to incomplete students."""
    return profiles.complete_profile(db, current_user, profile_data)


@app.get("/users/me/notifications", response_model=List[models.Notification])
async def get_my_notifications(current_user: dict = Depends(require_route("/dashboard"))):
    return notifications.list_notifications(current_user)


@app.post("/users/me/notifications/{index}/read", response_model=models.Notification)
async def mark_notification_read(
    index: int,
    current_user: dict = Depends(require_route("/dashboard")),
    db: Database = Depends(get_db),
):
    return notifications.mark_read(db, current_user, index)


@app.get("/dashboard", response_model=models.DashboardResponse)
async def get_dashboard(
    current_user: dict = Depends(require_route("/dashboard")),
    db: Database = Depends(get_db),
):
    """Profile, visible projects and unread notification count."""
    return {
        "profile": current_user,
        "projects": visibility.list_visible_projects(db, current_user),
        "unreadNotifications": notifications.count_unread(current_user),
    }


# ============================================
# PROJECT MANAGEMENT ENDPOINTS
# ============================================

@app.get("/projects", response_model=List[models.ProjectPublic])
async def list_projects(
    q: Optional[str] = Query(None, description="Search by title, institution or area"),
    current_user: dict = Depends(require_route("/proyectos")),
    db: Database = Depends(get_db),
):
    """List the projects visible to the current user"""
    return visibility.list_visible_projects(db, current_user, q)


@app.post("/projects", response_model=models.ProjectActionResult, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: models.ProjectCreate,
    current_user: dict = Depends(require_route("/crear-proyecto")),
    db: Database = Depends(get_db),
):
    """Create a new project (teacher only)"""
    project, warnings = projects.create_project(db, current_user, project_data)
    return {"project": project, "degraded": bool(warnings), "warnings": warnings}


@app.get("/projects/{project_id}", response_model=models.ProjectDetail)
async def get_project(
    project_id: str,
    current_user: dict = Depends(require_route("/proyectos/{id}")),
    db: Database = Depends(get_db),
):
    """Get single project details"""
    project = projects.get_project(db, project_id)
    access.raise_for(visibility.check_view_project(current_user, project))
    return _project_detail(db, current_user, project)


@app.put("/projects/{project_id}", response_model=models.ProjectPublic)
async def update_project(
    project_id: str,
    update_data: models.ProjectUpdate,
    current_user: dict = Depends(require_route("/proyectos/{id}")),
    db: Database = Depends(get_db),
):
    """Update project details"""
    project = projects.get_project(db, project_id)
    return projects.update_details(db, current_user, project, update_data)


@app.delete("/projects/{project_id}")
async def delete_project(
    project_id: str,
    current_user: dict = Depends(require_route("/proyectos/{id}")),
    db: Database = Depends(get_db),
):
    """Delete project (coordinator only)"""
    project = projects.get_project(db, project_id)
    projects.delete_project(db, current_user, project)
    return {"message": "Project deleted successfully"}


@app.post("/projects/{project_id}/state", response_model=models.ProjectPublic)
async def change_project_state(
    project_id: str,
    state_data: models.StateChangeRequest,
    current_user: dict = Depends(require_route("/proyectos/{id}")),
    db: Database = Depends(get_db),
):
    """Move the project to another lifecycle state (coordinator only)"""
    project = projects.get_project(db, project_id)
    return projects.change_state(db, current_user, project, state_data.state)


@app.post("/projects/{project_id}/evidences", response_model=models.ProjectActionResult,
          status_code=status.HTTP_201_CREATED)
async def upload_evidence(
    project_id: str,
    file: UploadFile = File(...),
    description: str = Form(...),
    current_user: dict = Depends(require_route("/proyectos/{id}")),
    db: Database = Depends(get_db),
    storage: CloudinaryStorage = Depends(get_storage),
):
    """Upload an evidence file and attach it to the project"""
    project = projects.get_project(db, project_id)
    # Refuse before reading the upload body
    access.raise_for(access.check_upload_evidence(current_user, project))

    content = await file.read()
    project, warnings = await projects.add_evidence(
        db, current_user, project,
        filename=file.filename,
        content=content,
        description=description,
        storage=storage,
        content_type=file.content_type or "application/octet-stream",
    )
    return {"project": project, "degraded": bool(warnings), "warnings": warnings}


@app.delete("/projects/{project_id}/evidences/{index}", response_model=models.ProjectPublic)
async def delete_evidence(
    project_id: str,
    index: int,
    current_user: dict = Depends(require_route("/proyectos/{id}")),
    db: Database = Depends(get_db),
):
    """Remove an evidence record (the stored file is kept)"""
    project = projects.get_project(db, project_id)
    return projects.remove_evidence(db, current_user, project, index)


# ============================================
# COORDINATOR ENDPOINTS
# ============================================

@app.get("/coordinator/users", response_model=List[models.UserPublic])
async def get_all_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    coordinator: dict = Depends(require_route("/coordinador/usuarios")),
    db: Database = Depends(get_db),
):
    """Fetches all users, optionally filtered by role."""
    return profiles.list_users(db, coordinator, role)


@app.post("/coordinator/users", response_model=models.UserPublic, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: models.CoordinatorUserCreate,
    coordinator: dict = Depends(require_route("/coordinador/usuarios")),
    db: Database = Depends(get_db),
):
    """Coordinator-only: creates an account with any role."""
    return profiles.create_user(db, coordinator, user_data)


@app.put("/coordinator/users/{user_id}", response_model=models.UserPublic)
async def update_user_details(
    user_id: str,
    update_data: models.CoordinatorUserUpdate,
    coordinator: dict = Depends(require_route("/coordinador/usuarios")),
    db: Database = Depends(get_db),
):
    """Coordinator-only: updates a user's details or role."""
    return profiles.update_user(db, coordinator, user_id, update_data)


# --- Run the server (for local development) ---
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Plataforma Ondas backend server...")
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8001")), reload=True)
