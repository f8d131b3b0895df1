from __future__ import annotations

from fms_api.errors import IllegalTransitionError
from fms_api.schemas import TaskStatus

_ALLOWED_TRANSITIONS: frozenset[tuple[TaskStatus, TaskStatus]] = frozenset(
    {
        (TaskStatus.PENDING, TaskStatus.IN_PROGRESS),
        (TaskStatus.PENDING, TaskStatus.DONE),
        (TaskStatus.IN_PROGRESS, TaskStatus.DONE),
    }
)


def resolve_transition(task_id: int, current: TaskStatus, requested: TaskStatus) -> bool:
    """True when the status must change, False for a same-status no-op."""
    if requested == TaskStatus.LOCKED:
        raise IllegalTransitionError(
            task_id, current.value, requested.value, "locked is set only by step gating"
        )
    if current == TaskStatus.LOCKED:
        raise IllegalTransitionError(
            task_id, current.value, requested.value, "previous step is not done yet"
        )
    if current == requested:
        return False
    if current == TaskStatus.DONE:
        raise IllegalTransitionError(task_id, current.value, requested.value, "done is terminal")
    if (current, requested) not in _ALLOWED_TRANSITIONS:
        raise IllegalTransitionError(task_id, current.value, requested.value, "transition not allowed")
    return True


def stamps_completion(current: TaskStatus, requested: TaskStatus) -> bool:
    return requested == TaskStatus.DONE and current != TaskStatus.DONE


def initial_status(step_no: int, *, step_gating: bool) -> TaskStatus:
    if step_gating and step_no > 1:
        return TaskStatus.LOCKED
    return TaskStatus.PENDING
