import pytest

from fms_api.errors import IllegalTransitionError
from fms_api.lifecycle import initial_status, resolve_transition, stamps_completion
from fms_api.schemas import TaskStatus


@pytest.mark.parametrize(
    ("current", "requested"),
    [
        (TaskStatus.PENDING, TaskStatus.IN_PROGRESS),
        (TaskStatus.PENDING, TaskStatus.DONE),
        (TaskStatus.IN_PROGRESS, TaskStatus.DONE),
    ],
)
def test_allowed_transitions_change_status(current: TaskStatus, requested: TaskStatus) -> None:
    assert resolve_transition(7, current, requested) is True


@pytest.mark.parametrize("status", [TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.DONE])
def test_same_status_is_a_noop(status: TaskStatus) -> None:
    assert resolve_transition(7, status, status) is False


@pytest.mark.parametrize("requested", [TaskStatus.PENDING, TaskStatus.IN_PROGRESS])
def test_done_is_terminal(requested: TaskStatus) -> None:
    with pytest.raises(IllegalTransitionError) as exc_info:
        resolve_transition(7, TaskStatus.DONE, requested)
    assert exc_info.value.task_id == 7
    assert exc_info.value.current == "Done"
    assert exc_info.value.requested == requested.value
    assert "terminal" in str(exc_info.value)


def test_in_progress_cannot_return_to_pending() -> None:
    with pytest.raises(IllegalTransitionError, match="not allowed"):
        resolve_transition(3, TaskStatus.IN_PROGRESS, TaskStatus.PENDING)


@pytest.mark.parametrize("requested", [TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.DONE])
def test_locked_task_cannot_be_moved_by_actors(requested: TaskStatus) -> None:
    with pytest.raises(IllegalTransitionError, match="previous step"):
        resolve_transition(3, TaskStatus.LOCKED, requested)


@pytest.mark.parametrize("current", [TaskStatus.LOCKED, TaskStatus.PENDING, TaskStatus.DONE])
def test_locked_cannot_be_requested(current: TaskStatus) -> None:
    with pytest.raises(IllegalTransitionError, match="step gating"):
        resolve_transition(3, current, TaskStatus.LOCKED)


def test_completion_is_stamped_only_when_first_reaching_done() -> None:
    assert stamps_completion(TaskStatus.PENDING, TaskStatus.DONE)
    assert stamps_completion(TaskStatus.IN_PROGRESS, TaskStatus.DONE)
    assert not stamps_completion(TaskStatus.DONE, TaskStatus.DONE)
    assert not stamps_completion(TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


def test_initial_status_respects_step_gating() -> None:
    assert initial_status(1, step_gating=False) == TaskStatus.PENDING
    assert initial_status(4, step_gating=False) == TaskStatus.PENDING
    assert initial_status(1, step_gating=True) == TaskStatus.PENDING
    assert initial_status(2, step_gating=True) == TaskStatus.LOCKED
