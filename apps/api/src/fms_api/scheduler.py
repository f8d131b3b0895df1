from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable


def compute_due_dates(durations: Iterable[int], start_date: date) -> list[date]:
    """Step i is due at start_date + sum(durations[:i + 1])."""
    values = list(durations)
    if not values:
        raise ValueError("at least one step duration is required")

    due_dates: list[date] = []
    elapsed_days = 0
    for position, days in enumerate(values, start=1):
        if days < 1:
            raise ValueError(f"step {position} duration must be at least 1 day")
        elapsed_days += days
        due_dates.append(start_date + timedelta(days=elapsed_days))
    return due_dates
