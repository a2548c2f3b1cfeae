"""
API Views for the task lifecycle engine.

Every endpoint is stateless: the request carries the caller's task
collection, the engine applies one operation to it, and the response
returns the whole updated collection for the caller to store. Engine
errors come back in a ``{success, error_code, message}`` envelope.
"""

from dataclasses import replace
from typing import Callable, Dict

import structlog
from django.conf import settings
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, throttle_classes
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from .dependencies import DependencyGraph, pending_prerequisites
from .entities import tasks_to_list, task_to_dict
from .errors import ErrorCode, TaskEngineError
from .lifecycle import TaskLifecycle
from .recurrence import next_occurrence_date
from .scoring import PriorityScorer, scored_task_to_dict
from .serializers import (
    AssignProjectSerializer,
    DependencyEditSerializer,
    DependencySetSerializer,
    RecurrencePreviewSerializer,
    ReleaseReadySerializer,
    ScoreRequestSerializer,
    StatusChangeSerializer,
    SuggestRequestSerializer,
    TaskActionSerializer,
    build_task,
)

logger = structlog.get_logger(__name__)


# ============================================
# RATE LIMITING CLASSES
# ============================================

class ReadRateThrottle(AnonRateThrottle):
    """Rate limit for scoring and analysis endpoints."""
    scope = 'engine_read'


class WriteRateThrottle(AnonRateThrottle):
    """Rate limit for endpoints that change the collection."""
    scope = 'engine_write'


# ============================================
# HELPERS
# ============================================

ERROR_STATUS = {
    ErrorCode.ERR_VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_INVALID_STATUS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_INVALID_TRANSITION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_SELF_DEPENDENCY: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_DANGLING_REFERENCE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ERR_CIRCULAR_DEPENDENCY: status.HTTP_409_CONFLICT,
    ErrorCode.ERR_ALREADY_COMPLETED: status.HTTP_409_CONFLICT,
}


def get_scorer() -> PriorityScorer:
    """Build a scorer from the TASK_ENGINE settings block."""
    config = settings.TASK_ENGINE
    return PriorityScorer(
        stale_days=config['STALE_DAYS'],
        aging_days=config['AGING_DAYS'],
        quick_task_minutes=config['QUICK_TASK_MINUTES'],
        due_soon_days=config['DUE_SOON_DAYS'],
        due_this_week_days=config['DUE_THIS_WEEK_DAYS']
    )


def invalid_input(serializer) -> Response:
    return Response(
        {
            'success': False,
            'error_code': ErrorCode.ERR_VALIDATION.value,
            'errors': serializer.errors,
            'message': 'Invalid input data. Please check your tasks format.'
        },
        status=status.HTTP_400_BAD_REQUEST
    )


def engine_error(exc: TaskEngineError) -> Response:
    logger.warning("engine_error", error_code=exc.code.value, task_id=exc.task_id, message=exc.message)
    body = {'success': False}
    body.update(exc.to_dict())
    return Response(body, status=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST))


def run_action(request: Request, serializer_class, action: Callable[[TaskLifecycle, Dict], Dict]) -> Response:
    """
    Validate the request, apply ``action`` to a lifecycle over the submitted
    collection, and respond with the action's payload plus the updated tasks.
    """
    serializer = serializer_class(data=request.data)
    if not serializer.is_valid():
        return invalid_input(serializer)

    tasks, _ = serializer.build_collection()
    lifecycle = TaskLifecycle(tasks)
    try:
        payload = action(lifecycle, serializer.validated_data)
    except TaskEngineError as exc:
        return engine_error(exc)

    response_data = {
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
    }
    response_data.update(payload)
    response_data['tasks'] = tasks_to_list(tasks.values())
    return Response(response_data)


# ============================================
# SCORING
# ============================================

@extend_schema(
    summary="Score and rank tasks",
    description="Score every active task (0-100) and return them highest first.",
    request=ScoreRequestSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Scoring']
)
@api_view(['POST'])
@throttle_classes([ReadRateThrottle])
def score_tasks(request: Request) -> Response:
    """
    POST /api/tasks/score/

    Request Body:
    {
        "tasks": [...],
        "projects": [...],            // Optional, for the active-project bonus
        "referenceDate": "2024-03-01" // Optional, defaults to today
    }
    """
    serializer = ScoreRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input(serializer)

    tasks, projects = serializer.build_collection()
    ranked = get_scorer().rank_tasks(
        tasks, serializer.validated_data.get('referenceDate'), projects
    )
    result_tasks = [scored_task_to_dict(s) for s in ranked]

    labels: Dict[str, int] = {}
    for scored in ranked:
        labels[scored.label] = labels.get(scored.label, 0) + 1

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'count': len(result_tasks),
        'tasks': result_tasks,
        'summary': {
            'total_tasks': len(result_tasks),
            'blocked_count': sum(1 for s in ranked if s.is_blocked),
            'overdue_count': sum(1 for s in ranked if s.is_overdue),
            'labels': labels
        }
    })


@extend_schema(
    summary="Suggest next actions",
    description="Pick the top unblocked, available tasks that fit a time budget.",
    request=SuggestRequestSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Scoring']
)
@api_view(['POST'])
@throttle_classes([ReadRateThrottle])
def suggest_tasks(request: Request) -> Response:
    """
    POST /api/tasks/suggest/

    Request Body:
    {
        "tasks": [...],
        "count": 3,                 // Optional
        "availableMinutes": 60      // Optional time budget
    }
    """
    serializer = SuggestRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input(serializer)

    data = serializer.validated_data
    tasks, projects = serializer.build_collection()
    suggested, message = get_scorer().suggest_next_actions(
        tasks,
        count=data.get('count') or settings.TASK_ENGINE['SUGGESTION_COUNT'],
        available_minutes=data.get('availableMinutes'),
        reference_date=data.get('referenceDate'),
        projects=projects
    )

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'suggested_tasks': [scored_task_to_dict(s) for s in suggested],
        'total_estimated_minutes': sum(s.task.time_estimate_minutes for s in suggested),
        'message': message
    })


# ============================================
# LIFECYCLE
# ============================================

@extend_schema(
    summary="Complete a task",
    description="Mark a task completed; recurring tasks append their next occurrence.",
    request=TaskActionSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Lifecycle']
)
@api_view(['POST'])
@throttle_classes([WriteRateThrottle])
def complete_task(request: Request) -> Response:
    """POST /api/tasks/complete/"""
    def action(lifecycle: TaskLifecycle, data: Dict) -> Dict:
        result = lifecycle.complete(data['taskId'], now=data.get('now'))
        return {
            'task': task_to_dict(result.task),
            'next_occurrence': task_to_dict(result.next_occurrence) if result.next_occurrence else None,
            'unblocked': [t.id for t in result.unblocked]
        }
    return run_action(request, TaskActionSerializer, action)


@extend_schema(
    summary="Reopen a completed task",
    request=TaskActionSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Lifecycle']
)
@api_view(['POST'])
@throttle_classes([WriteRateThrottle])
def reopen_task(request: Request) -> Response:
    """POST /api/tasks/reopen/"""
    def action(lifecycle: TaskLifecycle, data: Dict) -> Dict:
        return {'task': task_to_dict(lifecycle.reopen(data['taskId'], now=data.get('now')))}
    return run_action(request, TaskActionSerializer, action)


@extend_schema(
    summary="Change a task's status",
    description="Direct status write. Completing and reopening have their own endpoints.",
    request=StatusChangeSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Lifecycle']
)
@api_view(['POST'])
@throttle_classes([WriteRateThrottle])
def change_status(request: Request) -> Response:
    """POST /api/tasks/status/"""
    def action(lifecycle: TaskLifecycle, data: Dict) -> Dict:
        task = lifecycle.set_status(data['taskId'], data['status'], now=data.get('now'))
        return {'task': task_to_dict(task)}
    return run_action(request, StatusChangeSerializer, action)


@extend_schema(
    summary="Assign a task to a project",
    description="Inbox tasks become next actions once they belong to a project.",
    request=AssignProjectSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Lifecycle']
)
@api_view(['POST'])
@throttle_classes([WriteRateThrottle])
def assign_project(request: Request) -> Response:
    """POST /api/tasks/assign-project/"""
    def action(lifecycle: TaskLifecycle, data: Dict) -> Dict:
        task = lifecycle.assign_project(data['taskId'], data.get('projectId'), now=data.get('now'))
        return {'task': task_to_dict(task)}
    return run_action(request, AssignProjectSerializer, action)


@extend_schema(
    summary="Release ready waiting tasks",
    description="Move waiting tasks whose prerequisites are all done back to next.",
    request=ReleaseReadySerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Lifecycle']
)
@api_view(['POST'])
@throttle_classes([WriteRateThrottle])
def release_ready(request: Request) -> Response:
    """POST /api/tasks/release-ready/"""
    def action(lifecycle: TaskLifecycle, data: Dict) -> Dict:
        released = lifecycle.release_ready(now=data.get('now'))
        return {'released': [t.id for t in released]}
    return run_action(request, ReleaseReadySerializer, action)


# ============================================
# DEPENDENCIES
# ============================================

@extend_schema(
    summary="Add a dependency",
    description="Make taskId wait for prerequisiteId. Rejected with 409 if it would create a cycle.",
    request=DependencyEditSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Dependencies']
)
@api_view(['POST'])
@throttle_classes([WriteRateThrottle])
def add_dependency(request: Request) -> Response:
    """POST /api/tasks/dependencies/add/"""
    def action(lifecycle: TaskLifecycle, data: Dict) -> Dict:
        task = lifecycle.add_dependency(
            data['taskId'], data['prerequisiteId'],
            now=data.get('now'), keep_status=data['keepStatus']
        )
        return {'task': task_to_dict(task)}
    return run_action(request, DependencyEditSerializer, action)


@extend_schema(
    summary="Remove a dependency",
    request=DependencyEditSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Dependencies']
)
@api_view(['POST'])
@throttle_classes([WriteRateThrottle])
def remove_dependency(request: Request) -> Response:
    """POST /api/tasks/dependencies/remove/"""
    def action(lifecycle: TaskLifecycle, data: Dict) -> Dict:
        task = lifecycle.remove_dependency(data['taskId'], data['prerequisiteId'], now=data.get('now'))
        return {'task': task_to_dict(task)}
    return run_action(request, DependencyEditSerializer, action)


@extend_schema(
    summary="Replace a task's dependencies",
    request=DependencySetSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Dependencies']
)
@api_view(['POST'])
@throttle_classes([WriteRateThrottle])
def set_dependencies(request: Request) -> Response:
    """POST /api/tasks/dependencies/set/"""
    def action(lifecycle: TaskLifecycle, data: Dict) -> Dict:
        task = lifecycle.set_dependencies(
            data['taskId'], data['dependsOn'],
            now=data.get('now'), keep_status=data['keepStatus']
        )
        return {'task': task_to_dict(task)}
    return run_action(request, DependencySetSerializer, action)


@extend_schema(
    summary="Analyze the dependency graph",
    description="Blocked tasks with their pending prerequisites, cycles, critical path and stats.",
    request=ScoreRequestSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Dependencies']
)
@api_view(['POST'])
@throttle_classes([ReadRateThrottle])
def analyze_dependencies(request: Request) -> Response:
    """POST /api/tasks/dependencies/analyze/"""
    serializer = ScoreRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input(serializer)

    tasks, projects = serializer.build_collection()
    graph = DependencyGraph(tasks)
    blocked = {
        task.id: [p.id for p in pending_prerequisites(task, tasks)]
        for task in tasks.values()
        if not task.is_done and pending_prerequisites(task, tasks)
    }

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'blocked': blocked,
        'cycles': sorted(graph.find_cycles()),
        'critical_path': [t.id for t in graph.critical_path()],
        'levels': graph.dependency_levels(),
        'stats': graph.stats().to_dict(),
        'dangling_references': [
            ref.to_dict() for ref in graph.dangling_references(projects or None)
        ]
    })


# ============================================
# RECURRENCE
# ============================================

@extend_schema(
    summary="Preview upcoming occurrences",
    description="Due dates the next occurrences of a recurring task would get.",
    request=RecurrencePreviewSerializer,
    responses={200: OpenApiTypes.OBJECT},
    tags=['Recurrence']
)
@api_view(['POST'])
@throttle_classes([ReadRateThrottle])
def preview_recurrence(request: Request) -> Response:
    """
    POST /api/tasks/recurrence/preview/

    Each date is computed from the previous one, as if every occurrence
    were completed on its due date.
    """
    serializer = RecurrencePreviewSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input(serializer)

    data = serializer.validated_data
    task = build_task(data['task'])
    completion_date = data['completionDate']
    dates = []
    try:
        for _ in range(data['count']):
            next_date = next_occurrence_date(task, completion_date)
            if next_date is None:
                break
            dates.append(next_date.isoformat())
            task = replace(task, due_date=next_date)
            completion_date = next_date
    except TaskEngineError as exc:
        return engine_error(exc)

    return Response({
        'success': True,
        'error_code': ErrorCode.SUCCESS.value,
        'dates': dates,
        'ended': len(dates) < data['count']
    })


# ============================================
# INFO
# ============================================

@extend_schema(
    summary="API information",
    description="Get API information and available endpoints.",
    responses={200: OpenApiTypes.OBJECT},
    tags=['Info']
)
@api_view(['GET'])
def api_info(request: Request) -> Response:
    """
    Return API information and available endpoints.

    GET /api/
    """
    return Response({
        'name': 'GTD Task Engine API',
        'version': '1.0.0',
        'documentation': '/api/docs/',
        'endpoints': {
            'POST /api/tasks/score/': 'Score and rank tasks',
            'POST /api/tasks/suggest/': 'Suggest next actions',
            'POST /api/tasks/complete/': 'Complete a task (spawns recurrences)',
            'POST /api/tasks/reopen/': 'Reopen a completed task',
            'POST /api/tasks/status/': 'Change a task status',
            'POST /api/tasks/assign-project/': 'Assign a task to a project',
            'POST /api/tasks/release-ready/': 'Move ready waiting tasks to next',
            'POST /api/tasks/dependencies/add/': 'Add a dependency',
            'POST /api/tasks/dependencies/remove/': 'Remove a dependency',
            'POST /api/tasks/dependencies/set/': 'Replace dependencies',
            'POST /api/tasks/dependencies/analyze/': 'Dependency graph analysis',
            'POST /api/tasks/recurrence/preview/': 'Preview recurrence dates',
            'GET /api/docs/': 'Interactive API documentation',
            'GET /api/schema/': 'OpenAPI schema',
            'GET /api/': 'This info endpoint'
        },
        'statuses': ['inbox', 'next', 'waiting', 'someday', 'completed', 'archived'],
        'error_codes': {
            code.value: code.name for code in ErrorCode
        }
    })
