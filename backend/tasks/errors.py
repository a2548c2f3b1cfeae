"""
Typed errors raised by the task lifecycle engine.

Every error carries a machine-readable ``ErrorCode`` so the API layer can
turn it into a stable response envelope without string matching.
"""

from enum import Enum
from typing import Dict, Optional


class ErrorCode(Enum):
    """Error codes surfaced in API responses."""
    SUCCESS = "SUCCESS"
    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_INVALID_STATUS = "ERR_INVALID_STATUS"
    ERR_INVALID_TRANSITION = "ERR_INVALID_TRANSITION"
    ERR_ALREADY_COMPLETED = "ERR_ALREADY_COMPLETED"
    ERR_CIRCULAR_DEPENDENCY = "ERR_CIRCULAR_DEPENDENCY"
    ERR_SELF_DEPENDENCY = "ERR_SELF_DEPENDENCY"
    ERR_DANGLING_REFERENCE = "ERR_DANGLING_REFERENCE"


class TaskEngineError(Exception):
    """Base class for all engine failures."""

    code = ErrorCode.ERR_VALIDATION

    def __init__(
        self,
        message: str,
        task_id: Optional[str] = None,
        field: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.task_id = task_id
        self.field = field

    def to_dict(self) -> Dict:
        result = {
            'error_code': self.code.value,
            'message': self.message
        }
        if self.field:
            result['field'] = self.field
        if self.task_id is not None:
            result['task_id'] = self.task_id
        return result


class TaskValidationError(TaskEngineError):
    """Malformed input: bad dates, out-of-range recurrence values, etc."""
    code = ErrorCode.ERR_VALIDATION


class TaskNotFoundError(TaskEngineError):
    code = ErrorCode.ERR_NOT_FOUND


class InvalidStatusError(TaskEngineError):
    """A status value outside the GTD status set."""
    code = ErrorCode.ERR_INVALID_STATUS


class InvalidTransitionError(TaskEngineError):
    """A legal status value reached through an illegal path.

    Entering or leaving ``completed`` has to go through ``complete()`` and
    ``reopen()``.
    """
    code = ErrorCode.ERR_INVALID_TRANSITION


class AlreadyCompletedError(TaskEngineError):
    code = ErrorCode.ERR_ALREADY_COMPLETED


class CircularDependencyError(TaskEngineError):
    """Adding the edge would close a cycle in the dependency graph."""

    code = ErrorCode.ERR_CIRCULAR_DEPENDENCY

    def __init__(self, task_id: str, prerequisite_id: str):
        if task_id == prerequisite_id:
            message = "A task cannot depend on itself"
            self.code = ErrorCode.ERR_SELF_DEPENDENCY
        else:
            message = (
                f"Task {task_id} cannot depend on {prerequisite_id}: "
                f"{prerequisite_id} already depends on {task_id}"
            )
        super().__init__(message, task_id=task_id, field='dependsOn')
        self.prerequisite_id = prerequisite_id


class DanglingReferenceError(TaskEngineError):
    """A reference to a task or project that does not exist.

    Lookups during queries treat dangling references as satisfied or absent;
    this error is only raised when an edit names a missing entity.
    """
    code = ErrorCode.ERR_DANGLING_REFERENCE

    def __init__(self, reference_id: str, field: str, task_id: Optional[str] = None):
        super().__init__(
            f"Reference {reference_id!r} in {field} does not resolve to an existing entity",
            task_id=task_id,
            field=field
        )
        self.reference_id = reference_id
