from __future__ import annotations

import itertools
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from fms_api.errors import IllegalTransitionError
from fms_api.schemas import (
    ActivityType,
    ProjectCreate,
    StepInput,
    TaskStatus,
    TaskStatusUpdate,
    TemplateCreate,
)
from fms_api.store import InMemoryStore

_name_seq = itertools.count(1)


@dataclass(frozen=True)
class ConcurrencyStressConfig:
    completion_iterations: int = 4
    completion_parallelism: int = 8
    start_iterations: int = 4
    start_parallelism: int = 8
    start_projects: int = 16
    template_steps: int = 5


def run_concurrency_stress_suite(config: ConcurrencyStressConfig | None = None) -> dict[str, Any]:
    cfg = config or ConcurrencyStressConfig()
    if min(
        cfg.completion_iterations,
        cfg.completion_parallelism,
        cfg.start_iterations,
        cfg.start_parallelism,
        cfg.start_projects,
        cfg.template_steps,
    ) < 1:
        raise ValueError("all concurrency stress options must be >= 1")

    completion_iterations = [_run_completion_race_iteration(index, cfg) for index in range(cfg.completion_iterations)]
    start_iterations = [_run_parallel_start_iteration(index, cfg) for index in range(cfg.start_iterations)]

    scenarios = [
        _scenario_report(
            name="same-task-completion-race",
            objective="Racing Done requests on one task complete it once and log it once.",
            iterations=completion_iterations,
            metric_keys=["attempts_total", "changed_count", "noop_count", "illegal_count", "duration_ms"],
        ),
        _scenario_report(
            name="parallel-project-start",
            objective="Parallel project starts from one template never expose partial task sets.",
            iterations=start_iterations,
            metric_keys=["projects_started", "partial_reads", "project_created_entries", "duration_ms"],
        ),
    ]

    invariants_total = 0
    invariants_passed = 0
    for scenario in scenarios:
        invariants_total += len(scenario["invariants"])
        invariants_passed += sum(1 for item in scenario["invariants"] if item["passed"])

    overall_status = "pass" if invariants_total == invariants_passed else "fail"
    return {
        "generated_at_utc": datetime.now(tz=timezone.utc).isoformat(),
        "config": {
            "completion_iterations": cfg.completion_iterations,
            "completion_parallelism": cfg.completion_parallelism,
            "start_iterations": cfg.start_iterations,
            "start_parallelism": cfg.start_parallelism,
            "start_projects": cfg.start_projects,
            "template_steps": cfg.template_steps,
        },
        "summary": {
            "scenario_count": len(scenarios),
            "invariants_total": invariants_total,
            "invariants_passed": invariants_passed,
            "overall_status": overall_status,
        },
        "scenarios": scenarios,
    }


def _run_completion_race_iteration(index: int, cfg: ConcurrencyStressConfig) -> dict[str, Any]:
    started = time.perf_counter()
    store = InMemoryStore()
    template_id = _create_template(store, steps=cfg.template_steps)
    project = store.start_project(
        ProjectCreate(
            template_id=template_id,
            name=_next_name("stress-completion-project"),
            start_date=date(2024, 1, 1),
            created_by=f"stress-{index}",
        )
    )
    target_task_id = project.tasks[0].id

    lock = threading.Lock()
    metrics: Counter[str] = Counter()
    barrier = threading.Barrier(cfg.completion_parallelism)

    def worker(worker_index: int) -> None:
        barrier.wait()
        with lock:
            metrics["attempts_total"] += 1
        try:
            result = store.update_task_status(
                target_task_id,
                TaskStatusUpdate(status=TaskStatus.DONE, actor=f"worker-{worker_index}"),
            )
        except IllegalTransitionError:
            with lock:
                metrics["illegal_count"] += 1
            return
        with lock:
            if result.changed:
                metrics["changed_count"] += 1
            else:
                metrics["noop_count"] += 1

    with ThreadPoolExecutor(max_workers=cfg.completion_parallelism) as executor:
        futures = [executor.submit(worker, worker_index) for worker_index in range(cfg.completion_parallelism)]
        for future in as_completed(futures):
            future.result()

    task = store.get_task(target_task_id)
    update_entries = [
        entry
        for entry in store.list_activity(10_000, event_type=ActivityType.TASK_UPDATED)
        if entry.payload.get("task_id") == target_task_id
    ]
    duration_ms = int((time.perf_counter() - started) * 1000)
    metrics_payload = {
        "attempts_total": int(metrics["attempts_total"]),
        "changed_count": int(metrics["changed_count"]),
        "noop_count": int(metrics["noop_count"]),
        "illegal_count": int(metrics["illegal_count"]),
        "task_updated_entries": len(update_entries),
        "final_status": task.status.value,
        "completed_at": task.completed_at,
        "duration_ms": duration_ms,
    }

    invariants = [
        _invariant(
            "single_transition",
            "exactly one racing request changed the task",
            metrics_payload["changed_count"] == 1,
            expected={"changed_count": 1},
            actual={"changed_count": metrics_payload["changed_count"]},
        ),
        _invariant(
            "single_log_entry",
            "exactly one TASK_UPDATED entry exists for the task",
            metrics_payload["task_updated_entries"] == 1,
            expected={"task_updated_entries": 1},
            actual={"task_updated_entries": metrics_payload["task_updated_entries"]},
        ),
        _invariant(
            "done_with_completion",
            "task ends Done with a completion timestamp",
            task.status == TaskStatus.DONE and task.completed_at is not None,
            expected={"final_status": TaskStatus.DONE.value, "completed_at": "set"},
            actual={"final_status": task.status.value, "completed_at": task.completed_at},
        ),
        _invariant(
            "losers_are_noops",
            "every other request observed Done as a no-op",
            metrics_payload["noop_count"] == cfg.completion_parallelism - 1
            and metrics_payload["illegal_count"] == 0,
            expected={"noop_count": cfg.completion_parallelism - 1, "illegal_count": 0},
            actual={"noop_count": metrics_payload["noop_count"], "illegal_count": metrics_payload["illegal_count"]},
        ),
    ]
    return {"iteration": index, "metrics": metrics_payload, "invariants": invariants}


def _run_parallel_start_iteration(index: int, cfg: ConcurrencyStressConfig) -> dict[str, Any]:
    started = time.perf_counter()
    store = InMemoryStore()
    template_id = _create_template(store, steps=cfg.template_steps)

    lock = threading.Lock()
    metrics: Counter[str] = Counter()
    stop_reading = threading.Event()

    def starter(project_index: int) -> None:
        store.start_project(
            ProjectCreate(
                template_id=template_id,
                name=_next_name(f"stress-start-{project_index}"),
                start_date=date(2024, 1, 1),
                created_by=f"stress-{index}",
            )
        )
        with lock:
            metrics["projects_started"] += 1

    def reader() -> None:
        while not stop_reading.is_set():
            for project in store.list_projects():
                if len(project.tasks) != cfg.template_steps:
                    with lock:
                        metrics["partial_reads"] += 1
            time.sleep(0)

    reader_thread = threading.Thread(target=reader, daemon=True)
    reader_thread.start()
    with ThreadPoolExecutor(max_workers=cfg.start_parallelism) as executor:
        futures = [executor.submit(starter, project_index) for project_index in range(cfg.start_projects)]
        for future in as_completed(futures):
            future.result()
    stop_reading.set()
    reader_thread.join(timeout=5)

    projects = store.list_projects()
    task_ids = [task.id for project in projects for task in project.tasks]
    created_entries = store.list_activity(10_000, event_type=ActivityType.PROJECT_CREATED)
    duration_ms = int((time.perf_counter() - started) * 1000)
    metrics_payload = {
        "projects_started": int(metrics["projects_started"]),
        "partial_reads": int(metrics["partial_reads"]),
        "project_created_entries": len(created_entries),
        "unique_task_ids": len(set(task_ids)),
        "task_count": len(task_ids),
        "duration_ms": duration_ms,
    }

    invariants = [
        _invariant(
            "no_partial_projects",
            "readers never saw a project with a partial task set",
            metrics_payload["partial_reads"] == 0,
            expected={"partial_reads": 0},
            actual={"partial_reads": metrics_payload["partial_reads"]},
        ),
        _invariant(
            "one_entry_per_project",
            "one PROJECT_CREATED entry per started project",
            metrics_payload["project_created_entries"] == cfg.start_projects == len(projects),
            expected={"project_created_entries": cfg.start_projects},
            actual={"project_created_entries": metrics_payload["project_created_entries"], "projects": len(projects)},
        ),
        _invariant(
            "unique_task_ids",
            "task ids are unique across concurrently started projects",
            metrics_payload["unique_task_ids"] == metrics_payload["task_count"] == cfg.start_projects * cfg.template_steps,
            expected={"task_count": cfg.start_projects * cfg.template_steps},
            actual={"unique_task_ids": metrics_payload["unique_task_ids"], "task_count": metrics_payload["task_count"]},
        ),
    ]
    return {"iteration": index, "metrics": metrics_payload, "invariants": invariants}


def _create_template(store: InMemoryStore, *, steps: int) -> int:
    template = store.create_template(
        TemplateCreate(
            name=_next_name("stress-template"),
            steps=[
                StepInput(what=f"Step {step_no}", who=f"dept-{step_no % 3}", how="checklist", when=1 + step_no % 2)
                for step_no in range(1, steps + 1)
            ],
            created_by="stress",
        )
    )
    return template.id


def _scenario_report(
    *,
    name: str,
    objective: str,
    iterations: list[dict[str, Any]],
    metric_keys: list[str],
) -> dict[str, Any]:
    invariant_ids = [item["id"] for item in iterations[0]["invariants"]] if iterations else []
    invariants: list[dict[str, Any]] = []
    for invariant_id in invariant_ids:
        checks = [
            next(item for item in iteration["invariants"] if item["id"] == invariant_id)
            for iteration in iterations
        ]
        failures = [
            {"iteration": iteration["iteration"], "actual": check["actual"]}
            for iteration, check in zip(iterations, checks)
            if not check["passed"]
        ]
        invariants.append(
            {
                "id": invariant_id,
                "description": checks[0]["description"],
                "passed": not failures,
                "actual_failures": failures,
            }
        )

    totals = {
        key: sum(int(iteration["metrics"].get(key, 0)) for iteration in iterations)
        for key in metric_keys
    }
    status = "pass" if all(item["passed"] for item in invariants) else "fail"
    return {
        "name": name,
        "objective": objective,
        "status": status,
        "iterations": len(iterations),
        "metrics_total": totals,
        "invariants": invariants,
    }


def _invariant(
    invariant_id: str,
    description: str,
    passed: bool,
    *,
    expected: dict[str, Any],
    actual: dict[str, Any],
) -> dict[str, Any]:
    return {
        "id": invariant_id,
        "description": description,
        "passed": bool(passed),
        "expected": expected,
        "actual": actual,
    }


def _next_name(prefix: str) -> str:
    return f"{prefix}-{next(_name_seq)}"
