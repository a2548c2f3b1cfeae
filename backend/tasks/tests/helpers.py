"""Shared fixtures for the engine tests. All dates are fixed."""

from datetime import date, datetime, timezone

from tasks.entities import Task, TaskStatus, index_tasks

REFERENCE_DATE = date(2024, 3, 15)
NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


def make_task(task_id, title=None, **fields):
    """Build a validated task created at NOW unless told otherwise."""
    fields.setdefault('created_at', NOW)
    fields.setdefault('updated_at', NOW)
    if fields.get('status') in ('completed', TaskStatus.COMPLETED):
        fields.setdefault('completed', True)
    return Task(title=title or f'Task {task_id}', id=task_id, **fields).validate()


def make_collection(*tasks):
    return index_tasks(tasks)


def sequential_ids(prefix='new'):
    """id_factory returning new_1, new_2, ..."""
    counter = {'value': 0}

    def factory():
        counter['value'] += 1
        return f"{prefix}_{counter['value']}"
    return factory
