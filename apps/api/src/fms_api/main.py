from __future__ import annotations

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from fms_api.activity_log import ActivityLog
from fms_api.directory import build_directory
from fms_api.errors import (
    DirectoryUnavailableError,
    IllegalTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from fms_api.logging_setup import setup_logging
from fms_api.schemas import (
    ActivityRead,
    ActivityType,
    DepartmentList,
    ProjectCreate,
    ProjectRead,
    TaskRead,
    TaskStatusUpdate,
    TaskStatusUpdateResult,
    TemplateCreate,
    TemplateRead,
    TemplateSummary,
)
from fms_api.settings import Settings
from fms_api.store import InMemoryStore

settings = Settings.from_env()
setup_logging(level=settings.log_level, log_dir=settings.log_dir)

app = FastAPI(title="fms api", version="0.1.0")
store = InMemoryStore(
    state_file=settings.state_file,
    activity_log=ActivityLog(settings.activity_log_file),
    directory=build_directory(settings),
    step_gating=settings.step_gating,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allow_origins),
    allow_origin_regex=settings.cors_allow_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/templates", response_model=TemplateRead)
def create_template(payload: TemplateCreate) -> TemplateRead:
    try:
        return store.create_template(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/templates", response_model=list[TemplateSummary])
def list_templates() -> list[TemplateSummary]:
    return store.list_templates()


@app.get("/templates/{template_id}", response_model=TemplateRead)
def get_template(template_id: int) -> TemplateRead:
    try:
        return store.get_template(template_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/projects", response_model=ProjectRead)
def start_project(payload: ProjectCreate) -> ProjectRead:
    try:
        return store.start_project(payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/projects", response_model=list[ProjectRead])
def list_projects() -> list[ProjectRead]:
    return store.list_projects()


@app.get("/projects/{project_id}", response_model=ProjectRead)
def get_project(project_id: int) -> ProjectRead:
    try:
        return store.get_project(project_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/tasks", response_model=list[TaskRead])
def list_tasks_for_department(department: str = Query(min_length=1)) -> list[TaskRead]:
    return store.list_tasks_for(department)


@app.get("/tasks/{task_id}", response_model=TaskRead)
def get_task(task_id: int) -> TaskRead:
    try:
        return store.get_task(task_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/tasks/{task_id}/status", response_model=TaskStatusUpdateResult)
def update_task_status(task_id: int, payload: TaskStatusUpdate) -> TaskStatusUpdateResult:
    try:
        return store.update_task_status(task_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except IllegalTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/users/{username}/tasks", response_model=list[TaskRead])
def list_tasks_for_user(username: str) -> list[TaskRead]:
    try:
        return store.list_tasks_for_user(username)
    except DirectoryUnavailableError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/departments", response_model=DepartmentList)
def list_departments() -> DepartmentList:
    try:
        return DepartmentList(departments=store.list_departments())
    except DirectoryUnavailableError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/activity", response_model=list[ActivityRead])
def list_activity(limit: int = 50, event_type: ActivityType | None = None) -> list[ActivityRead]:
    return store.list_activity(limit, event_type=event_type)
