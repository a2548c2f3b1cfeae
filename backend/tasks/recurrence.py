"""
Recurrence generator.

When a recurring task is completed, the next occurrence is a brand new
task; the completed one is left as it is. ``next_occurrence_date`` is a
pure function of the task and the completion date, so the same inputs
always produce the same due date.

Date policy:
- The base date is the task's due date, or the completion date when the
  task has none.
- Monthly recurrences clamp to the last day of short months
  (Jan 31 -> Feb 28/29, never Mar 2/3).
- Yearly recurrences from Feb 29 land on Feb 28 in non-leap years.
"""

from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Optional

from .dates import (
    add_days,
    add_months,
    add_weeks,
    add_years,
    next_matching_weekday,
    nth_weekday_of_month,
)
from .entities import Frequency, Subtask, Task, TaskStatus, new_task_id, utc_now
from .errors import TaskValidationError


def next_occurrence_date(task: Task, completion_date: date) -> Optional[date]:
    """
    Due date of the occurrence that follows ``task``.

    Returns None when the task does not recur, or when the computed date is
    after the recurrence end date.
    """
    recurrence = task.recurrence
    if recurrence is None:
        return None
    recurrence.validate()

    base = task.due_date or completion_date
    frequency = recurrence.frequency

    if frequency is Frequency.DAILY:
        next_date = add_days(base, 1)
    elif frequency is Frequency.WEEKLY:
        if recurrence.days_of_week:
            next_date = next_matching_weekday(base, recurrence.days_of_week)
        else:
            next_date = add_weeks(base, 1)
    elif frequency is Frequency.BIWEEKLY:
        next_date = add_weeks(base, 2)
    elif frequency is Frequency.MONTHLY:
        if recurrence.day_of_month is not None:
            next_date = add_months(base, 1, day=recurrence.day_of_month)
        elif recurrence.nth_weekday_of_month is not None:
            target = add_months(base, 1, day=1)
            next_date = nth_weekday_of_month(
                target.year,
                target.month,
                recurrence.nth_weekday_of_month.week,
                recurrence.nth_weekday_of_month.weekday
            )
        else:
            next_date = add_months(base, 1)
    elif frequency is Frequency.YEARLY:
        next_date = add_years(base, 1)
    else:
        raise TaskValidationError(
            f"Unsupported recurrence frequency: {frequency!r}", task_id=task.id, field='recurrence'
        )

    if recurrence.end_date is not None and next_date > recurrence.end_date:
        return None
    return next_date


def next_occurrence(
    task: Task,
    completion_date: date,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_task_id
) -> Optional[Task]:
    """
    Build the next occurrence of a recurring task.

    Everything is copied from ``task`` except identity, dates, status and
    completion state. Subtasks come back unchecked, time spent resets, and
    the new task points at the root of the series through
    ``recurrence_parent_id``.

    Returns None when no further occurrence is due (see
    ``next_occurrence_date``).
    """
    due_date = next_occurrence_date(task, completion_date)
    if due_date is None:
        return None

    now = now or utc_now()
    return replace(
        task,
        id=id_factory(),
        status=TaskStatus.NEXT if task.project_id else TaskStatus.INBOX,
        previous_status=None,
        completed=False,
        completed_at=None,
        due_date=due_date,
        time_spent_minutes=0,
        subtasks=tuple(Subtask(title=s.title, completed=False) for s in task.subtasks),
        recurrence_parent_id=task.recurrence_parent_id or task.id,
        created_at=now,
        updated_at=now,
    ).validate()
