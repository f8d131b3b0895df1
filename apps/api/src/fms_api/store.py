from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable

from fms_api.activity_log import ActivityLog
from fms_api.directory import Directory, StaticDirectory
from fms_api.errors import (
    IllegalTransitionError,
    PersistenceError,
    ProjectNotFoundError,
    TaskNotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from fms_api.lifecycle import initial_status, resolve_transition, stamps_completion
from fms_api.scheduler import compute_due_dates
from fms_api.schemas import (
    ActivityRead,
    ActivityType,
    ProjectCreate,
    ProjectRead,
    Step,
    TaskRead,
    TaskStatus,
    TaskStatusUpdate,
    TaskStatusUpdateResult,
    TemplateCreate,
    TemplateRead,
    TemplateSummary,
)
from fms_api.step_validation import validate_step_sequence

logger = logging.getLogger(__name__)


@dataclass
class _TemplateRecord:
    id: int
    name: str
    steps: list[Step]
    created_by: str
    created_at: str


@dataclass
class _ProjectRecord:
    id: int
    name: str
    template_id: int
    template_name: str
    start_date: str
    created_by: str
    created_at: str


@dataclass
class _TaskRecord:
    id: int
    project_id: int
    step_no: int
    what: str
    who: str
    how: str
    planned_due_date: str
    status: str = TaskStatus.PENDING.value
    completed_at: str | None = None
    updated_at: str | None = None
    updated_by: str | None = None


class InMemoryStore:
    def __init__(
        self,
        state_file: str | None = None,
        *,
        activity_log: ActivityLog | None = None,
        directory: Directory | None = None,
        step_gating: bool = False,
    ) -> None:
        self._state_file = Path(state_file).expanduser() if state_file else None
        self._activity_log = activity_log if activity_log is not None else ActivityLog()
        self._directory = directory if directory is not None else StaticDirectory()
        self._step_gating = step_gating
        self._lock = threading.RLock()
        self._templates: dict[int, _TemplateRecord] = {}
        self._projects: dict[int, _ProjectRecord] = {}
        self._tasks: dict[int, _TaskRecord] = {}
        self._project_tasks: dict[int, list[int]] = {}
        self._template_seq = 1
        self._project_seq = 1
        self._task_seq = 1
        self._load_state()

    def create_template(self, template: TemplateCreate) -> TemplateRead:
        self._validate_template_input(template)
        steps = [
            Step(step_no=index, what=step.what, who=step.who, how=step.how, when=step.when)
            for index, step in enumerate(template.steps, start=1)
        ]

        with self._lock:
            template_id = self._template_seq
            record = _TemplateRecord(
                id=template_id,
                name=template.name,
                steps=steps,
                created_by=template.created_by,
                created_at=self._utc_now(),
            )
            self._templates[template_id] = record
            self._template_seq += 1

            def rollback() -> None:
                self._templates.pop(template_id, None)
                self._template_seq = template_id

            self._commit(rollback, f"create template '{template.name}'")
            logger.info("template %d '%s' created with %d steps by %s", template_id, record.name, len(steps), record.created_by)
            self._append_activity(
                ActivityType.TEMPLATE_CREATED,
                actor=record.created_by,
                payload={
                    "template_id": template_id,
                    "template_name": record.name,
                    "step_count": len(steps),
                },
            )
            return self._to_template_read(record)

    def list_templates(self) -> list[TemplateSummary]:
        with self._lock:
            return [
                TemplateSummary(
                    id=record.id,
                    name=record.name,
                    step_count=len(record.steps),
                    created_by=record.created_by,
                    created_at=record.created_at,
                )
                for record in sorted(self._templates.values(), key=lambda item: item.id, reverse=True)
            ]

    def get_template(self, template_id: int) -> TemplateRead:
        with self._lock:
            record = self._templates.get(template_id)
            if record is None:
                raise TemplateNotFoundError(template_id)
            return self._to_template_read(record)

    def start_project(self, project: ProjectCreate) -> ProjectRead:
        if not project.name.strip():
            raise ValidationError("project name must not be blank")
        if not isinstance(project.start_date, date):
            raise ValidationError("project start_date must be a calendar date")

        with self._lock:
            template = self._templates.get(project.template_id)
            if template is None:
                raise TemplateNotFoundError(project.template_id)

            steps = sorted(template.steps, key=lambda step: step.step_no)
            try:
                validate_step_sequence(steps)
                due_dates = compute_due_dates([step.when for step in steps], project.start_date)
            except ValueError as exc:
                raise ValidationError(f"template {template.id} cannot be scheduled: {exc}") from exc

            now = self._utc_now()
            project_id = self._project_seq
            first_task_id = self._task_seq
            project_record = _ProjectRecord(
                id=project_id,
                name=project.name,
                template_id=template.id,
                template_name=template.name,
                start_date=project.start_date.isoformat(),
                created_by=project.created_by,
                created_at=now,
            )
            task_records = [
                _TaskRecord(
                    id=first_task_id + offset,
                    project_id=project_id,
                    step_no=step.step_no,
                    what=step.what,
                    who=step.who,
                    how=step.how,
                    planned_due_date=due_date.isoformat(),
                    status=initial_status(step.step_no, step_gating=self._step_gating).value,
                    updated_at=now,
                    updated_by=project.created_by,
                )
                for offset, (step, due_date) in enumerate(zip(steps, due_dates))
            ]

            self._projects[project_id] = project_record
            for task_record in task_records:
                self._tasks[task_record.id] = task_record
            self._project_tasks[project_id] = [task_record.id for task_record in task_records]
            self._project_seq = project_id + 1
            self._task_seq = first_task_id + len(task_records)

            def rollback() -> None:
                for task_record in task_records:
                    self._tasks.pop(task_record.id, None)
                self._project_tasks.pop(project_id, None)
                self._projects.pop(project_id, None)
                self._project_seq = project_id
                self._task_seq = first_task_id

            self._commit(rollback, f"start project '{project.name}'")
            logger.info(
                "project %d '%s' started from template %d with %d tasks by %s",
                project_id,
                project_record.name,
                template.id,
                len(task_records),
                project_record.created_by,
            )
            self._append_activity(
                ActivityType.PROJECT_CREATED,
                actor=project_record.created_by,
                payload={
                    "project_id": project_id,
                    "project_name": project_record.name,
                    "template_id": template.id,
                    "template_name": template.name,
                    "start_date": project_record.start_date,
                    "task_count": len(task_records),
                },
            )
            return self._to_project_read(project_record)

    def list_projects(self) -> list[ProjectRead]:
        with self._lock:
            return [
                self._to_project_read(record)
                for record in sorted(self._projects.values(), key=lambda item: item.id, reverse=True)
            ]

    def get_project(self, project_id: int) -> ProjectRead:
        with self._lock:
            record = self._projects.get(project_id)
            if record is None:
                raise ProjectNotFoundError(project_id)
            return self._to_project_read(record)

    def get_task(self, task_id: int) -> TaskRead:
        with self._lock:
            record = self._tasks.get(task_id)
            if record is None:
                raise TaskNotFoundError(task_id)
            return self._to_task_read(record)

    def list_tasks_for(self, department: str) -> list[TaskRead]:
        return self._visible_tasks({department.strip()})

    def list_tasks_for_user(self, username: str) -> list[TaskRead]:
        departments = {item for item in self._directory.departments_of(username) if item}
        return self._visible_tasks(departments)

    def list_departments(self) -> list[str]:
        return self._directory.list_departments()

    def update_task_status(self, task_id: int, update: TaskStatusUpdate) -> TaskStatusUpdateResult:
        with self._lock:
            record = self._tasks.get(task_id)
            if record is None:
                raise TaskNotFoundError(task_id)

            current = TaskStatus(record.status)
            requested = update.status
            try:
                changed = resolve_transition(task_id, current, requested)
            except IllegalTransitionError:
                logger.warning(
                    "rejected task %d transition %s -> %s by %s",
                    task_id,
                    current.value,
                    requested.value,
                    update.actor,
                )
                raise

            if not changed:
                return TaskStatusUpdateResult(
                    task=self._to_task_read(record),
                    previous_status=current,
                    changed=False,
                )

            now = self._utc_now()
            previous = replace(record)
            record.status = requested.value
            record.updated_at = now
            record.updated_by = update.actor
            if stamps_completion(current, requested) and record.completed_at is None:
                record.completed_at = now

            unlocked = None
            if requested == TaskStatus.DONE:
                unlocked = self._unlock_next_task(record, now=now, actor=update.actor)

            def rollback() -> None:
                self._tasks[task_id] = previous
                if unlocked is not None:
                    self._tasks[unlocked[0].id] = unlocked[0]

            self._commit(rollback, f"update task {task_id}")
            project = self._projects[record.project_id]
            logger.info(
                "task %d (project %d step %d) moved %s -> %s by %s",
                task_id,
                record.project_id,
                record.step_no,
                current.value,
                requested.value,
                update.actor,
            )
            self._append_activity(
                ActivityType.TASK_UPDATED,
                actor=update.actor,
                payload={
                    "task_id": task_id,
                    "project_id": record.project_id,
                    "project_name": project.name,
                    "step_no": record.step_no,
                    "what": record.what,
                    "previous_status": current.value,
                    "status": requested.value,
                },
            )
            return TaskStatusUpdateResult(
                task=self._to_task_read(record),
                previous_status=current,
                changed=True,
                unlocked_task_id=unlocked[1].id if unlocked is not None else None,
            )

    def list_activity(self, limit: int = 50, *, event_type: ActivityType | None = None) -> list[ActivityRead]:
        return self._activity_log.list_recent(limit, event_type=event_type)

    def _unlock_next_task(
        self,
        record: _TaskRecord,
        *,
        now: str,
        actor: str,
    ) -> tuple[_TaskRecord, _TaskRecord] | None:
        """Release the following step's task; returns (before, after) when one was unlocked."""
        for task_id in self._project_tasks.get(record.project_id, []):
            candidate = self._tasks[task_id]
            if candidate.step_no != record.step_no + 1:
                continue
            if candidate.status != TaskStatus.LOCKED.value:
                return None
            before = replace(candidate)
            candidate.status = TaskStatus.PENDING.value
            candidate.updated_at = now
            candidate.updated_by = actor
            return before, candidate
        return None

    def _visible_tasks(self, departments: set[str]) -> list[TaskRead]:
        if not departments:
            return []

        with self._lock:
            visible = [
                record
                for record in self._tasks.values()
                if record.who in departments and record.status != TaskStatus.LOCKED.value
            ]
            visible.sort(key=lambda item: (item.planned_due_date, item.project_id, item.step_no))
            return [self._to_task_read(record) for record in visible]

    @staticmethod
    def _validate_template_input(template: TemplateCreate) -> None:
        if not template.name or not template.name.strip():
            raise ValidationError("template name must not be blank")
        if not template.created_by or not template.created_by.strip():
            raise ValidationError("template creator must not be blank")
        if not template.steps:
            raise ValidationError("template must have at least one step")
        for index, step in enumerate(template.steps, start=1):
            for field_name in ("what", "who", "how"):
                value = getattr(step, field_name)
                if not isinstance(value, str) or not value.strip():
                    raise ValidationError(f"step {index} field '{field_name}' must not be blank")
            if not isinstance(step.when, int) or step.when < 1:
                raise ValidationError(f"step {index} duration must be a whole number of days >= 1")

    def _append_activity(self, event_type: ActivityType, *, actor: str, payload: dict[str, Any]) -> None:
        try:
            self._activity_log.append(event_type=event_type, actor=actor, payload=payload)
        except PersistenceError:
            logger.exception("activity entry %s lost after commit: %s", event_type.value, payload)

    def _commit(self, rollback: Callable[[], None], operation: str) -> None:
        try:
            self._persist_state()
        except (OSError, TimeoutError) as exc:
            rollback()
            logger.exception("%s failed to persist; in-memory changes rolled back", operation)
            raise PersistenceError(f"{operation} failed: state could not be persisted") from exc

    def _persist_state(self) -> None:
        if self._state_file is None:
            return

        snapshot = self._snapshot()
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self._state_file.with_name(f"{self._state_file.name}.tmp")
        tmp_file.write_text(json.dumps(snapshot, ensure_ascii=True, sort_keys=True), encoding="utf-8")
        tmp_file.replace(self._state_file)

    def _load_state(self) -> None:
        if self._state_file is None or not self._state_file.exists():
            return

        raw = self._state_file.read_text(encoding="utf-8")
        data = json.loads(raw)
        self._templates = {
            int(key): _TemplateRecord(
                id=int(value["id"]),
                name=value["name"],
                steps=[Step(**step) for step in value["steps"]],
                created_by=value["created_by"],
                created_at=value["created_at"],
            )
            for key, value in data.get("templates", {}).items()
        }
        for template in self._templates.values():
            validate_step_sequence(template.steps)
        self._projects = {
            int(key): _ProjectRecord(**value)
            for key, value in data.get("projects", {}).items()
        }
        self._tasks = {
            int(key): _TaskRecord(**value)
            for key, value in data.get("tasks", {}).items()
        }
        self._project_tasks = {}
        for record in sorted(self._tasks.values(), key=lambda item: (item.project_id, item.step_no)):
            self._project_tasks.setdefault(record.project_id, []).append(record.id)

        sequences = data.get("sequences", {})
        self._template_seq = int(sequences.get("template_seq", 1))
        self._project_seq = int(sequences.get("project_seq", 1))
        self._task_seq = int(sequences.get("task_seq", 1))

    def _snapshot(self) -> dict[str, Any]:
        return {
            "templates": {
                str(key): {
                    "id": value.id,
                    "name": value.name,
                    "steps": [step.model_dump() for step in value.steps],
                    "created_by": value.created_by,
                    "created_at": value.created_at,
                }
                for key, value in self._templates.items()
            },
            "projects": {str(key): value.__dict__ for key, value in self._projects.items()},
            "tasks": {str(key): value.__dict__ for key, value in self._tasks.items()},
            "sequences": {
                "template_seq": self._template_seq,
                "project_seq": self._project_seq,
                "task_seq": self._task_seq,
            },
        }

    @staticmethod
    def _to_template_read(record: _TemplateRecord) -> TemplateRead:
        return TemplateRead(
            id=record.id,
            name=record.name,
            steps=sorted(record.steps, key=lambda step: step.step_no),
            created_by=record.created_by,
            created_at=record.created_at,
        )

    def _to_project_read(self, record: _ProjectRecord) -> ProjectRead:
        tasks = [self._to_task_read(self._tasks[task_id]) for task_id in self._project_tasks.get(record.id, [])]
        tasks.sort(key=lambda task: task.step_no)
        return ProjectRead(
            id=record.id,
            name=record.name,
            template_id=record.template_id,
            template_name=record.template_name,
            start_date=record.start_date,
            created_by=record.created_by,
            created_at=record.created_at,
            tasks=tasks,
        )

    def _to_task_read(self, record: _TaskRecord) -> TaskRead:
        return TaskRead(
            id=record.id,
            project_id=record.project_id,
            project_name=self._projects[record.project_id].name,
            step_no=record.step_no,
            what=record.what,
            who=record.who,
            how=record.how,
            planned_due_date=record.planned_due_date,
            status=record.status,
            completed_at=record.completed_at,
            updated_at=record.updated_at,
            updated_by=record.updated_by,
        )

    @staticmethod
    def _utc_now() -> str:
        return datetime.now(timezone.utc).isoformat()
