"""
Serializers for the task wire format.

This module is the serialization contract for storage and API clients:
camelCase field names, optional fields defaulting as documented
(``dependsOn``/``contexts`` empty, ``subtasks`` empty, ``status`` inbox).
Validated payloads are turned into engine records with ``build_task`` and
``build_project``.
"""

from typing import Dict, Tuple

from django.utils import timezone
from rest_framework import serializers

from .entities import (
    MAX_TIME_ESTIMATE_MINUTES,
    MAX_TITLE_LENGTH,
    Energy,
    Frequency,
    NthWeekday,
    Project,
    ProjectStatus,
    Recurrence,
    Subtask,
    Task,
    TaskStatus,
)
from .errors import TaskEngineError


def _choices(enum_cls):
    return [(member.value, member.value) for member in enum_cls]


class NthWeekdaySerializer(serializers.Serializer):
    week = serializers.IntegerField(min_value=1, max_value=5)
    weekday = serializers.IntegerField(min_value=0, max_value=6)


class RecurrenceSerializer(serializers.Serializer):
    frequency = serializers.ChoiceField(choices=_choices(Frequency))
    daysOfWeek = serializers.ListField(
        child=serializers.IntegerField(min_value=0, max_value=6),
        required=False,
        default=list
    )
    dayOfMonth = serializers.IntegerField(
        min_value=1, max_value=31, required=False, allow_null=True
    )
    nthWeekdayOfMonth = NthWeekdaySerializer(required=False, allow_null=True)
    endDate = serializers.DateField(required=False, allow_null=True)


class SubtaskSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=MAX_TITLE_LENGTH)
    completed = serializers.BooleanField(default=False)


class ProjectSerializer(serializers.Serializer):
    id = serializers.CharField()
    title = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(
        choices=_choices(ProjectStatus), default=ProjectStatus.ACTIVE.value
    )


class TaskSerializer(serializers.Serializer):
    """
    Validates one task payload.

    Field checks run here; cross-field invariants (``completed`` agreeing
    with ``status``, no self-dependency) are checked by building the engine
    record and validating it.
    """

    id = serializers.CharField(required=False)
    title = serializers.CharField(max_length=MAX_TITLE_LENGTH)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    status = serializers.ChoiceField(choices=_choices(TaskStatus), default=TaskStatus.INBOX.value)
    previousStatus = serializers.ChoiceField(
        choices=_choices(TaskStatus), required=False, allow_null=True
    )
    completed = serializers.BooleanField(required=False)
    projectId = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    contexts = serializers.ListField(
        child=serializers.CharField(), required=False, default=list
    )
    # The legacy format stores "no energy" as an empty string
    energy = serializers.ChoiceField(
        choices=_choices(Energy), required=False, allow_null=True, allow_blank=True
    )
    timeEstimateMinutes = serializers.IntegerField(
        min_value=0, max_value=MAX_TIME_ESTIMATE_MINUTES, required=False, default=0
    )
    timeSpentMinutes = serializers.IntegerField(min_value=0, required=False, default=0)
    dueDate = serializers.DateField(required=False, allow_null=True)
    deferDate = serializers.DateField(required=False, allow_null=True)
    dependsOn = serializers.ListField(
        child=serializers.CharField(), required=False, default=list
    )
    waitingForDescription = serializers.CharField(required=False, allow_blank=True, default='')
    recurrence = RecurrenceSerializer(required=False, allow_null=True)
    recurrenceParentId = serializers.CharField(required=False, allow_null=True)
    subtasks = SubtaskSerializer(many=True, required=False)
    starred = serializers.BooleanField(required=False, default=False)
    position = serializers.IntegerField(required=False, default=0)
    createdAt = serializers.DateTimeField(required=False)
    updatedAt = serializers.DateTimeField(required=False)
    completedAt = serializers.DateTimeField(required=False, allow_null=True)

    def validate_title(self, value):
        """Ensure title is not empty or just whitespace."""
        if not value or not value.strip():
            raise serializers.ValidationError("Title cannot be empty")
        return value.strip()

    def validate_contexts(self, value):
        for context in value:
            if not context.startswith('@') or len(context) < 2:
                raise serializers.ValidationError(f"Context {context!r} must start with @")
        return value

    def validate(self, attrs):
        if 'completed' not in attrs:
            attrs['completed'] = attrs['status'] == TaskStatus.COMPLETED.value
        try:
            build_task(attrs).validate()
        except TaskEngineError as exc:
            raise serializers.ValidationError({exc.field or 'non_field_errors': exc.message})
        return attrs


def build_recurrence(data) -> Recurrence:
    nth = data.get('nthWeekdayOfMonth')
    return Recurrence(
        frequency=Frequency(data['frequency']),
        days_of_week=frozenset(data.get('daysOfWeek') or ()),
        day_of_month=data.get('dayOfMonth'),
        nth_weekday_of_month=NthWeekday(week=nth['week'], weekday=nth['weekday']) if nth else None,
        end_date=data.get('endDate')
    )


def build_task(data) -> Task:
    """Turn validated TaskSerializer data into a Task record."""
    now = timezone.now()
    optional = {}
    if data.get('id'):
        optional['id'] = data['id']

    return Task(
        title=data['title'],
        status=TaskStatus(data.get('status', TaskStatus.INBOX.value)),
        completed=data.get('completed', data.get('status') == TaskStatus.COMPLETED.value),
        previous_status=data.get('previousStatus') or None,
        project_id=data.get('projectId') or None,
        contexts=tuple(data.get('contexts') or ()),
        energy=data.get('energy') or None,
        time_estimate_minutes=data.get('timeEstimateMinutes', 0),
        time_spent_minutes=data.get('timeSpentMinutes', 0),
        due_date=data.get('dueDate'),
        defer_date=data.get('deferDate'),
        depends_on=tuple(data.get('dependsOn') or ()),
        waiting_for_description=data.get('waitingForDescription', ''),
        recurrence=build_recurrence(data['recurrence']) if data.get('recurrence') else None,
        recurrence_parent_id=data.get('recurrenceParentId'),
        subtasks=tuple(
            Subtask(title=s['title'], completed=s.get('completed', False))
            for s in data.get('subtasks') or ()
        ),
        starred=data.get('starred', False),
        position=data.get('position', 0),
        description=data.get('description', ''),
        notes=data.get('notes', ''),
        created_at=data.get('createdAt') or now,
        updated_at=data.get('updatedAt') or now,
        completed_at=data.get('completedAt'),
        **optional
    )


def build_project(data) -> Project:
    return Project(
        id=data['id'],
        title=data.get('title', ''),
        status=ProjectStatus(data.get('status', ProjectStatus.ACTIVE.value))
    )


# ============================================
# REQUEST SERIALIZERS
# ============================================

class TaskCollectionSerializer(serializers.Serializer):
    """
    Base for every request: the caller's full task collection.

    The engine is stateless; callers send the collection and store the
    collection that comes back.
    """

    tasks = serializers.ListField(child=TaskSerializer(), allow_empty=True)
    projects = serializers.ListField(child=ProjectSerializer(), required=False, default=list)

    def validate_tasks(self, value):
        seen = set()
        for task in value:
            task_id = task.get('id')
            if not task_id:
                continue
            if task_id in seen:
                raise serializers.ValidationError(f"Duplicate task ID: {task_id}")
            seen.add(task_id)
        return value

    def build_collection(self) -> Tuple[Dict[str, Task], Dict[str, Project]]:
        """Index validated tasks and projects by id, preserving request order."""
        tasks: Dict[str, Task] = {}
        for data in self.validated_data['tasks']:
            task = build_task(data)
            tasks[task.id] = task
        projects = {
            project.id: project
            for project in (build_project(p) for p in self.validated_data['projects'])
        }
        return tasks, projects


class ScoreRequestSerializer(TaskCollectionSerializer):
    referenceDate = serializers.DateField(required=False, allow_null=True)


class SuggestRequestSerializer(ScoreRequestSerializer):
    count = serializers.IntegerField(min_value=1, max_value=20, required=False)
    availableMinutes = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class TaskActionSerializer(TaskCollectionSerializer):
    taskId = serializers.CharField()
    now = serializers.DateTimeField(required=False, allow_null=True)


class StatusChangeSerializer(TaskActionSerializer):
    # Free-form so unknown values reach the engine and fail as ERR_INVALID_STATUS
    status = serializers.CharField()


class AssignProjectSerializer(TaskActionSerializer):
    projectId = serializers.CharField(allow_null=True, allow_blank=True)


class DependencyEditSerializer(TaskActionSerializer):
    prerequisiteId = serializers.CharField()
    keepStatus = serializers.BooleanField(default=False)


class DependencySetSerializer(TaskActionSerializer):
    dependsOn = serializers.ListField(child=serializers.CharField(), allow_empty=True)
    keepStatus = serializers.BooleanField(default=False)


class ReleaseReadySerializer(TaskCollectionSerializer):
    now = serializers.DateTimeField(required=False, allow_null=True)


class RecurrencePreviewSerializer(serializers.Serializer):
    task = TaskSerializer()
    completionDate = serializers.DateField()
    count = serializers.IntegerField(min_value=1, max_value=24, default=1)

    def validate_task(self, value):
        if not value.get('recurrence'):
            raise serializers.ValidationError("Task has no recurrence rule")
        return value
