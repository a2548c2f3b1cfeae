"""
Task and Project records for the lifecycle engine.

These are plain dataclasses with explicit validation, independent of the
storage layer. The engine never mutates a record in place: every operation
builds a new record with ``dataclasses.replace`` and validates it before it
is written back into the caller's collection.

Attributes use snake_case; ``task_to_dict`` produces the camelCase field
names of the storage serialization contract.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .errors import InvalidStatusError, TaskValidationError

MAX_TITLE_LENGTH = 500
MAX_TIME_ESTIMATE_MINUTES = 480


class TaskStatus(Enum):
    """GTD statuses. No other values are legal."""
    INBOX = "inbox"
    NEXT = "next"
    WAITING = "waiting"
    SOMEDAY = "someday"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, value) -> 'TaskStatus':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatusError(
                f"Invalid status: {value!r}. Valid options: {[s.value for s in cls]}",
                field='status'
            )


class Energy(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Frequency(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ProjectStatus(Enum):
    ACTIVE = "active"
    SOMEDAY = "someday"
    COMPLETED = "completed"
    ARCHIVED = "archived"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex[:12]}"


def _unique(values: Iterable) -> Tuple:
    """Deduplicate while keeping first-seen order."""
    return tuple(dict.fromkeys(values))


@dataclass
class NthWeekday:
    """The ``week``-th ``weekday`` of a month, e.g. week=3, weekday=4 is the third Thursday."""
    week: int
    weekday: int

    def validate(self) -> None:
        if not isinstance(self.week, int) or not 1 <= self.week <= 5:
            raise TaskValidationError(
                f"nthWeekdayOfMonth.week must be between 1 and 5, got {self.week!r}",
                field='recurrence'
            )
        if not isinstance(self.weekday, int) or not 0 <= self.weekday <= 6:
            raise TaskValidationError(
                f"nthWeekdayOfMonth.weekday must be between 0 and 6, got {self.weekday!r}",
                field='recurrence'
            )


@dataclass
class Recurrence:
    """
    Repeat rule attached to a task.

    Attributes:
        frequency: How often the task repeats
        days_of_week: Weekly only; weekdays (0 = Sunday) the task falls on
        day_of_month: Monthly only; pinned day, clamped to the month length
        nth_weekday_of_month: Monthly only; e.g. "second Tuesday"
        end_date: No occurrence is generated after this date
    """
    frequency: Frequency
    days_of_week: FrozenSet[int] = frozenset()
    day_of_month: Optional[int] = None
    nth_weekday_of_month: Optional[NthWeekday] = None
    end_date: Optional[date] = None

    def __post_init__(self):
        if not isinstance(self.frequency, Frequency):
            try:
                self.frequency = Frequency(self.frequency)
            except ValueError:
                raise TaskValidationError(
                    f"Invalid recurrence frequency: {self.frequency!r}",
                    field='recurrence'
                )
        self.days_of_week = frozenset(self.days_of_week or ())

    def validate(self) -> None:
        for weekday in self.days_of_week:
            if not isinstance(weekday, int) or not 0 <= weekday <= 6:
                raise TaskValidationError(
                    f"daysOfWeek entries must be between 0 and 6, got {weekday!r}",
                    field='recurrence'
                )
        if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
            raise TaskValidationError(
                f"dayOfMonth must be between 1 and 31, got {self.day_of_month!r}",
                field='recurrence'
            )
        if self.nth_weekday_of_month is not None:
            self.nth_weekday_of_month.validate()

    def to_dict(self) -> Dict:
        result = {'frequency': self.frequency.value}
        if self.days_of_week:
            result['daysOfWeek'] = sorted(self.days_of_week)
        if self.day_of_month is not None:
            result['dayOfMonth'] = self.day_of_month
        if self.nth_weekday_of_month is not None:
            result['nthWeekdayOfMonth'] = {
                'week': self.nth_weekday_of_month.week,
                'weekday': self.nth_weekday_of_month.weekday
            }
        if self.end_date is not None:
            result['endDate'] = self.end_date.isoformat()
        return result


@dataclass
class Subtask:
    title: str
    completed: bool = False


@dataclass
class Project:
    """Minimal project record; tasks hold a weak reference to it."""
    id: str
    title: str = ''
    status: ProjectStatus = ProjectStatus.ACTIVE

    def __post_init__(self):
        if not isinstance(self.status, ProjectStatus):
            self.status = ProjectStatus(self.status)


@dataclass
class Task:
    """
    A single GTD item.

    ``completed`` mirrors ``status == COMPLETED`` for legacy readers and
    must always agree with it. ``previous_status`` remembers where the task
    came from so ``reopen()`` can put it back.
    """
    title: str
    id: str = field(default_factory=new_task_id)
    status: TaskStatus = TaskStatus.INBOX
    completed: bool = False
    project_id: Optional[str] = None
    contexts: Tuple[str, ...] = ()
    energy: Optional[Energy] = None
    time_estimate_minutes: int = 0
    time_spent_minutes: int = 0
    due_date: Optional[date] = None
    defer_date: Optional[date] = None
    depends_on: Tuple[str, ...] = ()
    waiting_for_description: str = ''
    recurrence: Optional[Recurrence] = None
    recurrence_parent_id: Optional[str] = None
    subtasks: Tuple[Subtask, ...] = ()
    starred: bool = False
    position: int = 0
    description: str = ''
    notes: str = ''
    previous_status: Optional[TaskStatus] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = TaskStatus.parse(self.status)
        if self.previous_status is not None:
            self.previous_status = TaskStatus.parse(self.previous_status)
        if self.energy is not None and not isinstance(self.energy, Energy):
            try:
                self.energy = Energy(self.energy)
            except ValueError:
                raise TaskValidationError(
                    f"Invalid energy level: {self.energy!r}", task_id=self.id, field='energy'
                )
        self.contexts = _unique(self.contexts or ())
        self.depends_on = _unique(self.depends_on or ())
        self.subtasks = tuple(self.subtasks or ())

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> 'Task':
        """Check every field invariant, raising ``TaskValidationError``.

        Returns the task itself so construction and validation chain.
        """
        if not isinstance(self.title, str) or not self.title.strip():
            raise TaskValidationError(
                "Task title is required and cannot be empty", task_id=self.id, field='title'
            )
        if len(self.title.strip()) > MAX_TITLE_LENGTH:
            raise TaskValidationError(
                f"Task title is too long (max {MAX_TITLE_LENGTH} characters)",
                task_id=self.id, field='title'
            )

        for context in self.contexts:
            if not isinstance(context, str) or not context.startswith('@') or len(context) < 2:
                raise TaskValidationError(
                    f"Context {context!r} must start with @ and name a context",
                    task_id=self.id, field='contexts'
                )

        if not 0 <= self.time_estimate_minutes <= MAX_TIME_ESTIMATE_MINUTES:
            raise TaskValidationError(
                f"Time estimate must be between 0 and {MAX_TIME_ESTIMATE_MINUTES} minutes",
                task_id=self.id, field='timeEstimateMinutes'
            )
        if self.time_spent_minutes < 0:
            raise TaskValidationError(
                "Time spent cannot be negative", task_id=self.id, field='timeSpentMinutes'
            )

        if self.completed != (self.status is TaskStatus.COMPLETED):
            raise TaskValidationError(
                f"completed={self.completed} disagrees with status={self.status.value}",
                task_id=self.id, field='completed'
            )

        if self.id in self.depends_on:
            raise TaskValidationError(
                "A task cannot depend on itself", task_id=self.id, field='dependsOn'
            )

        for subtask in self.subtasks:
            if not subtask.title or not subtask.title.strip():
                raise TaskValidationError(
                    "Subtask title cannot be empty", task_id=self.id, field='subtasks'
                )

        if self.recurrence is not None:
            self.recurrence.validate()
        return self

    # ------------------------------------------------------------------
    # Date helpers
    # ------------------------------------------------------------------

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def is_active(self) -> bool:
        return self.status not in (TaskStatus.COMPLETED, TaskStatus.ARCHIVED)

    @property
    def is_done(self) -> bool:
        """Completed or archived; either way it no longer holds up dependents."""
        return self.completed or self.status is TaskStatus.ARCHIVED

    def days_until_due(self, reference_date: date) -> Optional[int]:
        if self.due_date is None:
            return None
        return (self.due_date - reference_date).days

    def is_overdue(self, reference_date: date) -> bool:
        days = self.days_until_due(reference_date)
        return days is not None and days < 0 and not self.completed

    def is_due_today(self, reference_date: date) -> bool:
        return self.days_until_due(reference_date) == 0 and not self.completed

    def is_available(self, reference_date: date) -> bool:
        """False while the defer date is still in the future."""
        return self.defer_date is None or self.defer_date <= reference_date


def index_tasks(tasks: Iterable[Task]) -> Dict[str, Task]:
    """Build the id-indexed arena the engine operates on."""
    indexed: Dict[str, Task] = {}
    for task in tasks:
        if task.id in indexed:
            raise TaskValidationError(f"Duplicate task ID: {task.id}", task_id=task.id, field='id')
        indexed[task.id] = task
    return indexed


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def task_to_dict(task: Task) -> Dict:
    """Convert a Task to its camelCase JSON representation."""
    return {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'notes': task.notes,
        'status': task.status.value,
        'previousStatus': task.previous_status.value if task.previous_status else None,
        'completed': task.completed,
        'projectId': task.project_id,
        'contexts': list(task.contexts),
        'energy': task.energy.value if task.energy else None,
        'timeEstimateMinutes': task.time_estimate_minutes,
        'timeSpentMinutes': task.time_spent_minutes,
        'dueDate': _isoformat(task.due_date),
        'deferDate': _isoformat(task.defer_date),
        'dependsOn': list(task.depends_on),
        'waitingForDescription': task.waiting_for_description,
        'recurrence': task.recurrence.to_dict() if task.recurrence else None,
        'recurrenceParentId': task.recurrence_parent_id,
        'subtasks': [
            {'title': subtask.title, 'completed': subtask.completed}
            for subtask in task.subtasks
        ],
        'starred': task.starred,
        'position': task.position,
        'createdAt': _isoformat(task.created_at),
        'updatedAt': _isoformat(task.updated_at),
        'completedAt': _isoformat(task.completed_at),
    }


def tasks_to_list(tasks: Iterable[Task]) -> List[Dict]:
    return [task_to_dict(task) for task in tasks]
