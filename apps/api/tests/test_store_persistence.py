from datetime import date
from pathlib import Path

from fms_api.activity_log import ActivityLog
from fms_api.schemas import ActivityType, ProjectCreate, StepInput, TaskStatus, TaskStatusUpdate, TemplateCreate
from fms_api.store import InMemoryStore


def test_store_restores_snapshot_from_state_file(tmp_path: Path) -> None:
    state_file = tmp_path / "fms-state.json"
    log_file = tmp_path / "activity.jsonl"
    first = InMemoryStore(state_file=str(state_file), activity_log=ActivityLog(str(log_file)))

    template = first.create_template(
        TemplateCreate(
            name="Audit",
            steps=[
                StepInput(what="Gather evidence", who="Compliance", how="Checklist", when=3),
                StepInput(what="Sign off", who="Management", how="Meeting", when=1),
            ],
            created_by="alice",
        )
    )
    project = first.start_project(
        ProjectCreate(template_id=template.id, name="Q1 audit", start_date=date(2024, 4, 1), created_by="alice")
    )
    done = first.update_task_status(project.tasks[0].id, TaskStatusUpdate(status=TaskStatus.DONE, actor="bob"))

    second = InMemoryStore(state_file=str(state_file), activity_log=ActivityLog(str(log_file)))
    restored_template = second.get_template(template.id)
    restored_project = second.get_project(project.id)
    events = second.list_activity(100)

    assert restored_template.name == "Audit"
    assert [step.what for step in restored_template.steps] == ["Gather evidence", "Sign off"]
    assert restored_project.name == "Q1 audit"
    assert [task.status for task in restored_project.tasks] == [TaskStatus.DONE, TaskStatus.PENDING]
    assert restored_project.tasks[0].completed_at == done.task.completed_at
    assert [task.planned_due_date for task in restored_project.tasks] == [date(2024, 4, 4), date(2024, 4, 5)]
    assert [event.event_type for event in events] == [
        ActivityType.TASK_UPDATED,
        ActivityType.PROJECT_CREATED,
        ActivityType.TEMPLATE_CREATED,
    ]


def test_sequences_continue_after_restart(tmp_path: Path) -> None:
    state_file = tmp_path / "nested" / "fms-state.json"
    first = InMemoryStore(state_file=str(state_file))
    template = first.create_template(
        TemplateCreate(
            name="Tiny",
            steps=[StepInput(what="Only step", who="Ops", how="Manual", when=1)],
            created_by="alice",
        )
    )
    first.start_project(
        ProjectCreate(template_id=template.id, name="One", start_date=date(2024, 1, 1), created_by="alice")
    )

    second = InMemoryStore(state_file=str(state_file))
    project = second.start_project(
        ProjectCreate(template_id=template.id, name="Two", start_date=date(2024, 1, 1), created_by="alice")
    )

    assert project.id == 2
    assert project.tasks[0].id == 2
    assert [item.name for item in second.list_projects()] == ["Two", "One"]


def test_step_gating_state_survives_restart(tmp_path: Path) -> None:
    state_file = tmp_path / "fms-state.json"
    first = InMemoryStore(state_file=str(state_file), step_gating=True)
    template = first.create_template(
        TemplateCreate(
            name="Gated",
            steps=[
                StepInput(what="A", who="Ops", how="Manual", when=1),
                StepInput(what="B", who="Ops", how="Manual", when=1),
            ],
            created_by="alice",
        )
    )
    project = first.start_project(
        ProjectCreate(template_id=template.id, name="G", start_date=date(2024, 1, 1), created_by="alice")
    )

    second = InMemoryStore(state_file=str(state_file), step_gating=True)
    result = second.update_task_status(project.tasks[0].id, TaskStatusUpdate(status=TaskStatus.DONE, actor="bob"))

    assert result.unlocked_task_id == project.tasks[1].id
    assert second.get_task(project.tasks[1].id).status == TaskStatus.PENDING


def test_fresh_activity_log_file_is_written_by_the_store(tmp_path: Path) -> None:
    log_file = tmp_path / "activity.jsonl"
    activity_log = ActivityLog(str(log_file))
    store = InMemoryStore(activity_log=activity_log)

    store.create_template(
        TemplateCreate(
            name="First run",
            steps=[StepInput(what="Only step", who="Ops", how="Manual", when=1)],
            created_by="alice",
        )
    )

    assert len(activity_log) == 1
    assert log_file.exists()
    assert [entry.event_type for entry in ActivityLog(str(log_file)).list_recent(10)] == [
        ActivityType.TEMPLATE_CREATED
    ]
