"""
Status state machine for GTD tasks.

States: inbox, next, waiting, someday, completed, archived.

Direct status writes are always legal except into or out of ``completed``,
which only happen through ``complete()`` and ``reopen()``. Archived tasks
must be moved back to an open status before they can be completed.

The automatic transitions are:

- assigning a project moves an ``inbox`` task to ``next``;
- completing a task records where it was (``previous_status``) and, for a
  recurring task, appends the next occurrence as a new task;
- setting dependencies that leave the task blocked moves it to ``waiting``.
  The reverse is never automatic: a task whose prerequisites are all done
  stays in ``waiting`` until the caller moves it, e.g. with
  ``release_ready()``.

All mutators validate the new record before writing it into the collection,
so a failed call leaves the collection as it was.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Iterable, List, MutableMapping, Optional

import structlog

from .dependencies import DependencyGraph, is_blocked
from .entities import Task, TaskStatus, new_task_id, utc_now
from .errors import (
    AlreadyCompletedError,
    InvalidTransitionError,
    TaskEngineError,
    TaskValidationError,
)
from .recurrence import next_occurrence

logger = structlog.get_logger(__name__)

# Statuses a blocked task may be pulled out of into ``waiting``
AUTO_WAITING_SOURCES = (TaskStatus.INBOX, TaskStatus.NEXT, TaskStatus.SOMEDAY)


@dataclass
class CompletionResult:
    """Outcome of ``complete()``."""
    task: Task
    next_occurrence: Optional[Task] = None
    unblocked: List[Task] = field(default_factory=list)


class TaskLifecycle:
    """
    Applies lifecycle operations to a caller-owned task collection.

    Args:
        tasks: Mutable mapping of task id to Task, typically built with
               ``index_tasks``. Updated records replace their entries.
        id_factory: Generates ids for captured tasks and recurrences
    """

    def __init__(
        self,
        tasks: MutableMapping[str, Task],
        id_factory: Callable[[], str] = new_task_id
    ):
        self.tasks = tasks
        self.graph = DependencyGraph(tasks)
        self.id_factory = id_factory

    def _commit(self, task: Task) -> Task:
        task.validate()
        self.tasks[task.id] = task
        return task

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def capture(self, title: str, now: Optional[datetime] = None, **fields) -> Task:
        """
        Create a task in the collection.

        Defaults to ``inbox``; a task captured straight into a project starts
        as ``next``. Dependencies passed here are cycle-checked like any
        other edit.
        """
        now = now or utc_now()
        depends_on = tuple(fields.pop('depends_on', ()))
        if 'status' not in fields:
            fields['status'] = TaskStatus.NEXT if fields.get('project_id') else TaskStatus.INBOX
        if TaskStatus.parse(fields['status']) is TaskStatus.COMPLETED:
            raise InvalidTransitionError("Tasks cannot be captured as completed", field='status')

        task = Task(
            title=title.strip() if isinstance(title, str) else title,
            id=fields.pop('id', None) or self.id_factory(),
            created_at=now,
            updated_at=now,
            **fields
        )
        if task.id in self.tasks:
            raise TaskValidationError(f"Duplicate task ID: {task.id}", task_id=task.id, field='id')
        task.validate()

        self.tasks[task.id] = task
        if depends_on:
            try:
                task = self.set_dependencies(task.id, depends_on, now=now)
            except TaskEngineError:
                del self.tasks[task.id]
                raise

        logger.info("task_captured", task_id=task.id, status=task.status.value)
        return task

    # ------------------------------------------------------------------
    # Direct writes
    # ------------------------------------------------------------------

    def set_status(self, task_id: str, status, now: Optional[datetime] = None) -> Task:
        """
        User-requested status change.

        Bringing a task back out of ``archived`` drops the completion
        history it carried into the archive.

        Raises:
            InvalidStatusError: ``status`` is not a GTD status
            InvalidTransitionError: the change enters or leaves ``completed``
        """
        new_status = TaskStatus.parse(status)
        task = self.graph.get(task_id)
        if new_status is task.status:
            return task
        if TaskStatus.COMPLETED in (new_status, task.status):
            raise InvalidTransitionError(
                f"Cannot move task from {task.status.value} to {new_status.value}; "
                "use complete() or reopen()",
                task_id=task_id,
                field='status'
            )

        changes = {}
        if task.status is TaskStatus.ARCHIVED:
            changes = {'completed_at': None, 'previous_status': None}

        updated = self._commit(replace(task, status=new_status, updated_at=now or utc_now(), **changes))
        logger.info(
            "status_changed",
            task_id=task_id,
            from_status=task.status.value,
            to_status=new_status.value
        )
        return updated

    def assign_project(
        self,
        task_id: str,
        project_id: Optional[str],
        now: Optional[datetime] = None
    ) -> Task:
        """
        Put a task into a project (or take it out with ``None``).

        Inbox items become ``next`` once they belong to a project; other
        statuses are kept.
        """
        task = self.graph.get(task_id)
        status = task.status
        if project_id and status is TaskStatus.INBOX:
            status = TaskStatus.NEXT

        updated = self._commit(replace(
            task, project_id=project_id or None, status=status, updated_at=now or utc_now()
        ))
        logger.info(
            "project_assigned",
            task_id=task_id,
            project_id=project_id,
            status=updated.status.value
        )
        return updated

    def add_time_spent(self, task_id: str, minutes: int, now: Optional[datetime] = None) -> Task:
        if minutes < 0:
            raise TaskValidationError(
                "Time spent increment cannot be negative", task_id=task_id, field='timeSpentMinutes'
            )
        task = self.graph.get(task_id)
        return self._commit(replace(
            task,
            time_spent_minutes=task.time_spent_minutes + minutes,
            updated_at=now or utc_now()
        ))

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def complete(self, task_id: str, now: Optional[datetime] = None) -> CompletionResult:
        """
        Mark a task completed.

        The status it held is stored in ``previous_status`` for ``reopen()``.
        A recurring task spawns its next occurrence, unless the recurrence
        end date has been passed; the completed task itself is not reused.

        Raises:
            AlreadyCompletedError: the task is already completed
            InvalidTransitionError: the task is archived; restore it with
                ``set_status()`` first
        """
        now = now or utc_now()
        task = self.graph.get(task_id)
        if task.completed or task.status is TaskStatus.COMPLETED:
            raise AlreadyCompletedError(f"Task {task_id} is already completed", task_id=task_id)
        if task.status is TaskStatus.ARCHIVED:
            raise InvalidTransitionError(
                f"Task {task_id} is archived and cannot be completed",
                task_id=task_id,
                field='status'
            )

        completed = replace(
            task,
            status=TaskStatus.COMPLETED,
            completed=True,
            completed_at=now,
            previous_status=task.status,
            updated_at=now
        ).validate()

        spawned = None
        if completed.recurrence is not None:
            spawned = next_occurrence(completed, now.date(), now=now, id_factory=self.id_factory)

        self.tasks[task_id] = completed
        if spawned is not None:
            self.tasks[spawned.id] = spawned

        unblocked = self.graph.on_task_completed(task_id)
        logger.info(
            "task_completed",
            task_id=task_id,
            previous_status=task.status.value,
            next_occurrence_id=spawned.id if spawned else None,
            next_due_date=spawned.due_date.isoformat() if spawned and spawned.due_date else None,
            unblocked=[t.id for t in unblocked]
        )
        return CompletionResult(task=completed, next_occurrence=spawned, unblocked=unblocked)

    def reopen(self, task_id: str, now: Optional[datetime] = None) -> Task:
        """
        Undo a completion, restoring the status held before it.

        Records completed before ``previous_status`` was tracked go back to
        ``inbox``. An occurrence already spawned by a recurring task stays.

        Raises:
            InvalidTransitionError: the task is not completed
        """
        task = self.graph.get(task_id)
        if task.status is not TaskStatus.COMPLETED:
            raise InvalidTransitionError(
                f"Only completed tasks can be reopened; task is {task.status.value}",
                task_id=task_id,
                field='status'
            )

        restored = task.previous_status or TaskStatus.INBOX
        if restored in (TaskStatus.COMPLETED, TaskStatus.ARCHIVED):
            restored = TaskStatus.INBOX

        updated = self._commit(replace(
            task,
            status=restored,
            completed=False,
            completed_at=None,
            previous_status=None,
            updated_at=now or utc_now()
        ))
        logger.info("task_reopened", task_id=task_id, status=restored.value)
        return updated

    def toggle_complete(self, task_id: str, now: Optional[datetime] = None) -> CompletionResult:
        """Checkbox gesture: complete an open task, reopen a completed one."""
        task = self.graph.get(task_id)
        if task.status is TaskStatus.COMPLETED:
            return CompletionResult(task=self.reopen(task_id, now=now))
        return self.complete(task_id, now=now)

    def archive(self, task_id: str, now: Optional[datetime] = None) -> Task:
        """
        Retire a task. Allowed from every status, including ``completed``;
        ``completed_at`` is kept as history. An archived task no longer
        blocks its dependents and cannot be completed until it is moved
        back to an open status.
        """
        task = self.graph.get(task_id)
        if task.status is TaskStatus.ARCHIVED:
            return task

        updated = self._commit(replace(
            task,
            status=TaskStatus.ARCHIVED,
            completed=False,
            previous_status=task.status,
            updated_at=now or utc_now()
        ))
        logger.info("task_archived", task_id=task_id, from_status=task.status.value)
        return updated

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def set_dependencies(
        self,
        task_id: str,
        prerequisite_ids: Iterable[str],
        now: Optional[datetime] = None,
        keep_status: bool = False
    ) -> Task:
        """
        Replace a task's prerequisites.

        If the task ends up blocked it moves to ``waiting``, unless
        ``keep_status`` is set or the task is completed or archived. A task
        that becomes unblocked keeps its status.
        """
        now = now or utc_now()
        task = self.graph.replace_dependencies(task_id, prerequisite_ids, now=now)

        if (
            not keep_status
            and task.status in AUTO_WAITING_SOURCES
            and is_blocked(task, self.tasks)
        ):
            previous = task.status
            task = self._commit(replace(task, status=TaskStatus.WAITING, updated_at=now))
            logger.info(
                "status_changed",
                task_id=task_id,
                from_status=previous.value,
                to_status=TaskStatus.WAITING.value,
                reason="blocked"
            )
        return task

    def add_dependency(
        self,
        task_id: str,
        prerequisite_id: str,
        now: Optional[datetime] = None,
        keep_status: bool = False
    ) -> Task:
        """Add one prerequisite, with the same status rule as ``set_dependencies``."""
        task = self.graph.get(task_id)
        return self.set_dependencies(
            task_id, task.depends_on + (prerequisite_id,), now=now, keep_status=keep_status
        )

    def remove_dependency(
        self,
        task_id: str,
        prerequisite_id: str,
        now: Optional[datetime] = None
    ) -> Task:
        return self.graph.remove_dependency(task_id, prerequisite_id, now=now)

    # ------------------------------------------------------------------
    # Bulk passes
    # ------------------------------------------------------------------

    def release_ready(self, now: Optional[datetime] = None) -> List[Task]:
        """
        Move ``waiting`` tasks whose prerequisites are all satisfied to ``next``.

        Only tasks that actually have dependencies are considered; a task
        waiting on someone (``waiting_for_description``) with no
        dependency edges stays put. Returns the moved tasks.
        """
        now = now or utc_now()
        released = []
        for task in list(self.tasks.values()):
            if (
                task.status is TaskStatus.WAITING
                and task.depends_on
                and not is_blocked(task, self.tasks)
            ):
                released.append(self._commit(replace(task, status=TaskStatus.NEXT, updated_at=now)))

        if released:
            logger.info("waiting_tasks_released", task_ids=[t.id for t in released])
        return released

    def migrate_blocked_to_waiting(self, now: Optional[datetime] = None) -> List[Task]:
        """One-shot pass moving blocked ``next``/``someday`` tasks to ``waiting``."""
        now = now or utc_now()
        moved = []
        for task in list(self.tasks.values()):
            if (
                task.status in (TaskStatus.NEXT, TaskStatus.SOMEDAY)
                and is_blocked(task, self.tasks)
            ):
                moved.append(self._commit(replace(task, status=TaskStatus.WAITING, updated_at=now)))

        if moved:
            logger.info("blocked_tasks_migrated", count=len(moved))
        return moved
