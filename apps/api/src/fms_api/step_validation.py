from __future__ import annotations

from typing import Protocol, Sequence


class StepLike(Protocol):
    step_no: int
    when: int


def validate_step_sequence(steps: Sequence[StepLike]) -> None:
    if not steps:
        raise ValueError("template must have at least one step")

    step_numbers = [step.step_no for step in steps]
    if len(set(step_numbers)) != len(step_numbers):
        raise ValueError("template step numbers must be unique")

    expected = list(range(1, len(steps) + 1))
    if sorted(step_numbers) != expected:
        raise ValueError(f"template step numbers must be contiguous from 1 to {len(steps)}")

    for step in steps:
        if step.when < 1:
            raise ValueError(f"step {step.step_no} duration must be at least 1 day")
