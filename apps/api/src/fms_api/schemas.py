from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class TaskStatus(str, Enum):
    LOCKED = "Locked"
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


class ActivityType(str, Enum):
    TEMPLATE_CREATED = "TEMPLATE_CREATED"
    PROJECT_CREATED = "PROJECT_CREATED"
    TASK_UPDATED = "TASK_UPDATED"


class StepInput(BaseModel):
    what: str = Field(min_length=1)
    who: str = Field(min_length=1)
    how: str = Field(min_length=1)
    when: int = Field(ge=1)

    @model_validator(mode="after")
    def strip_text_fields(self) -> "StepInput":
        self.what = _require_text(self.what, "what")
        self.who = _require_text(self.who, "who")
        self.how = _require_text(self.how, "how")
        return self


class Step(BaseModel):
    step_no: int = Field(ge=1)
    what: str
    who: str
    how: str
    when: int = Field(ge=1)


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1)
    steps: list[StepInput] = Field(min_length=1)
    created_by: str = Field(min_length=1)

    @model_validator(mode="after")
    def strip_fields(self) -> "TemplateCreate":
        self.name = _require_text(self.name, "name")
        self.created_by = _require_text(self.created_by, "created_by")
        return self


class TemplateRead(BaseModel):
    id: int
    name: str
    steps: list[Step]
    created_by: str
    created_at: str


class TemplateSummary(BaseModel):
    id: int
    name: str
    step_count: int
    created_by: str
    created_at: str


class ProjectCreate(BaseModel):
    template_id: int
    name: str = Field(min_length=1)
    start_date: date
    created_by: str = Field(min_length=1)

    @model_validator(mode="after")
    def strip_fields(self) -> "ProjectCreate":
        self.name = _require_text(self.name, "name")
        self.created_by = _require_text(self.created_by, "created_by")
        return self


class TaskRead(BaseModel):
    id: int
    project_id: int
    project_name: str
    step_no: int
    what: str
    who: str
    how: str
    planned_due_date: date
    status: TaskStatus = TaskStatus.PENDING
    completed_at: str | None = None
    updated_at: str | None = None
    updated_by: str | None = None


class ProjectRead(BaseModel):
    id: int
    name: str
    template_id: int
    template_name: str
    start_date: date
    created_by: str
    created_at: str
    tasks: list[TaskRead] = Field(default_factory=list)


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    actor: str = Field(min_length=1)

    @model_validator(mode="after")
    def strip_actor(self) -> "TaskStatusUpdate":
        self.actor = _require_text(self.actor, "actor")
        return self


class TaskStatusUpdateResult(BaseModel):
    task: TaskRead
    previous_status: TaskStatus
    changed: bool
    unlocked_task_id: int | None = None


class ActivityRead(BaseModel):
    id: int
    event_type: ActivityType
    actor: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str


class DepartmentList(BaseModel):
    departments: list[str] = Field(default_factory=list)


def _require_text(value: str, field_name: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{field_name} must not be blank")
    return trimmed
