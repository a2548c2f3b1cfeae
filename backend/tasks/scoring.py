"""
Priority Scoring for GTD tasks.

Maps a task and the current date to an integer between 0 and 100 used for
sorting and highlighting. The score is additive: every factor contributes
at most once, starting from a neutral base of 50, and the total is clamped.

Scoring Factors:
---------------
- Due date: overdue +25, today +20, tomorrow +15, within 3 days +10,
  within 7 days +5
- Starred: +15
- Status: next +10, inbox +5
- Dependencies (only when the task has any): ready +10, blocked -10
- Energy vs. time: high energy and <= 15 min +8; low energy and > 60 min -5
- Quick task (estimate <= 15 min): +5
- Project: assigned to an active project +5
- Deferred (defer date in the future): -20
- Age: older than 14 days +7, older than 7 days +3

Completed and archived tasks score 0. The scorer is read-only and safe to
call for every render.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .dependencies import is_blocked
from .entities import Energy, Project, ProjectStatus, Task, TaskStatus, index_tasks, task_to_dict

TaskCollection = Union[Mapping[str, Task], Iterable[Task]]

PRIORITY_LABELS = (
    (80, 'Urgent'),
    (60, 'High'),
    (40, 'Medium'),
    (20, 'Low'),
)


def priority_label(score: int) -> str:
    for threshold, label in PRIORITY_LABELS:
        if score >= threshold:
            return label
    return 'Very Low'


@dataclass
class ScoredTask:
    """A task with its priority score and the factors that produced it."""
    task: Task
    score: int
    label: str
    reasons: List[str] = field(default_factory=list)
    is_blocked: bool = False
    is_overdue: bool = False


def _as_index(tasks: TaskCollection) -> Mapping[str, Task]:
    if isinstance(tasks, Mapping):
        return tasks
    return index_tasks(tasks)


class PriorityScorer:
    """
    Computes priority scores for tasks.

    Thresholds are configurable so the API can take them from settings;
    the defaults match the factor table in the module docstring.
    """

    BASE_SCORE = 50
    MIN_SCORE = 0
    MAX_SCORE = 100

    OVERDUE_POINTS = 25
    DUE_TODAY_POINTS = 20
    DUE_TOMORROW_POINTS = 15
    DUE_SOON_POINTS = 10
    DUE_THIS_WEEK_POINTS = 5
    STARRED_POINTS = 15
    NEXT_STATUS_POINTS = 10
    INBOX_STATUS_POINTS = 5
    READY_POINTS = 10
    BLOCKED_PENALTY = -10
    QUICK_HIGH_ENERGY_POINTS = 8
    LONG_LOW_ENERGY_PENALTY = -5
    QUICK_TASK_POINTS = 5
    ACTIVE_PROJECT_POINTS = 5
    DEFERRED_PENALTY = -20
    STALE_POINTS = 7
    AGING_POINTS = 3

    LONG_TASK_MINUTES = 60

    def __init__(
        self,
        stale_days: int = 14,
        aging_days: int = 7,
        quick_task_minutes: int = 15,
        due_soon_days: int = 3,
        due_this_week_days: int = 7
    ):
        """
        Args:
            stale_days: Age in days past which a task earns the stale bonus
            aging_days: Age in days past which a task earns the smaller aging bonus
            quick_task_minutes: Largest estimate that still counts as quick
            due_soon_days: Window for the "due soon" bonus
            due_this_week_days: Window for the "due this week" bonus
        """
        self.stale_days = stale_days
        self.aging_days = aging_days
        self.quick_task_minutes = quick_task_minutes
        self.due_soon_days = due_soon_days
        self.due_this_week_days = due_this_week_days

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def calculate_due_date_points(
        self,
        task: Task,
        reference_date: date
    ) -> Tuple[int, Optional[str]]:
        days_until_due = task.days_until_due(reference_date)
        if days_until_due is None:
            return 0, None
        if days_until_due < 0:
            return self.OVERDUE_POINTS, 'Overdue'
        if days_until_due == 0:
            return self.DUE_TODAY_POINTS, 'Due today'
        if days_until_due == 1:
            return self.DUE_TOMORROW_POINTS, 'Due tomorrow'
        if days_until_due <= self.due_soon_days:
            return self.DUE_SOON_POINTS, 'Due soon'
        if days_until_due <= self.due_this_week_days:
            return self.DUE_THIS_WEEK_POINTS, None
        return 0, None

    def calculate_status_points(self, task: Task) -> Tuple[int, Optional[str]]:
        if task.status is TaskStatus.NEXT:
            return self.NEXT_STATUS_POINTS, 'Next action'
        if task.status is TaskStatus.INBOX:
            return self.INBOX_STATUS_POINTS, None
        return 0, None

    def calculate_dependency_points(
        self,
        task: Task,
        all_tasks: Mapping[str, Task]
    ) -> Tuple[int, Optional[str]]:
        """Only tasks that have dependencies are affected; dangling
        prerequisites count as satisfied."""
        if not task.depends_on:
            return 0, None
        if is_blocked(task, all_tasks):
            return self.BLOCKED_PENALTY, 'Blocked'
        return self.READY_POINTS, 'Ready to start'

    def calculate_energy_points(self, task: Task) -> Tuple[int, Optional[str]]:
        minutes = task.time_estimate_minutes
        if not minutes or task.energy is None:
            return 0, None
        if task.energy is Energy.HIGH and minutes <= self.quick_task_minutes:
            return self.QUICK_HIGH_ENERGY_POINTS, 'Quick & high energy'
        if task.energy is Energy.LOW and minutes > self.LONG_TASK_MINUTES:
            return self.LONG_LOW_ENERGY_PENALTY, None
        return 0, None

    def calculate_effort_points(self, task: Task) -> Tuple[int, Optional[str]]:
        # An estimate of 0 means "not estimated", not "instant"
        minutes = task.time_estimate_minutes
        if minutes and minutes <= self.quick_task_minutes:
            return self.QUICK_TASK_POINTS, 'Quick task'
        return 0, None

    def calculate_project_points(
        self,
        task: Task,
        projects: Optional[Mapping[str, Project]]
    ) -> Tuple[int, Optional[str]]:
        if not task.project_id or not projects:
            return 0, None
        project = projects.get(task.project_id)
        if project is not None and project.status is ProjectStatus.ACTIVE:
            return self.ACTIVE_PROJECT_POINTS, 'Active project'
        return 0, None

    def calculate_defer_points(self, task: Task, reference_date: date) -> Tuple[int, Optional[str]]:
        if not task.is_available(reference_date):
            return self.DEFERRED_PENALTY, 'Deferred'
        return 0, None

    def calculate_age_points(self, task: Task, reference_date: date) -> Tuple[int, Optional[str]]:
        age_days = (reference_date - task.created_at.date()).days
        if age_days > self.stale_days:
            return self.STALE_POINTS, 'Old task'
        if age_days > self.aging_days:
            return self.AGING_POINTS, None
        return 0, None

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_task(
        self,
        task: Task,
        all_tasks: TaskCollection,
        reference_date: Optional[date] = None,
        projects: Optional[Mapping[str, Project]] = None
    ) -> ScoredTask:
        """Score one task and keep the reasons behind the number."""
        if reference_date is None:
            reference_date = date.today()
        all_tasks = _as_index(all_tasks)
        blocked = is_blocked(task, all_tasks)

        if not task.is_active:
            return ScoredTask(task=task, score=0, label=priority_label(0), is_blocked=blocked)

        factors = [
            self.calculate_due_date_points(task, reference_date),
            (self.STARRED_POINTS, 'Starred') if task.starred else (0, None),
            self.calculate_status_points(task),
            self.calculate_dependency_points(task, all_tasks),
            self.calculate_energy_points(task),
            self.calculate_effort_points(task),
            self.calculate_project_points(task, projects),
            self.calculate_defer_points(task, reference_date),
            self.calculate_age_points(task, reference_date),
        ]

        total = self.BASE_SCORE + sum(points for points, _ in factors)
        score = max(self.MIN_SCORE, min(self.MAX_SCORE, total))
        return ScoredTask(
            task=task,
            score=score,
            label=priority_label(score),
            reasons=[reason for _, reason in factors if reason],
            is_blocked=blocked,
            is_overdue=task.is_overdue(reference_date)
        )

    def score(
        self,
        task: Task,
        all_tasks: TaskCollection,
        reference_date: Optional[date] = None,
        projects: Optional[Mapping[str, Project]] = None
    ) -> int:
        """Priority score in [0, 100]."""
        return self.score_task(task, all_tasks, reference_date, projects).score

    def rank_tasks(
        self,
        tasks: TaskCollection,
        reference_date: Optional[date] = None,
        projects: Optional[Mapping[str, Project]] = None
    ) -> List[ScoredTask]:
        """
        Score every active task, highest first.

        Ties keep manual order: lower ``position`` first, then the most
        recently updated.
        """
        all_tasks = _as_index(tasks)
        scored = [
            self.score_task(task, all_tasks, reference_date, projects)
            for task in all_tasks.values()
            if task.is_active
        ]
        # Two stable sorts: secondary key first
        scored.sort(key=lambda s: s.task.updated_at, reverse=True)
        scored.sort(key=lambda s: (-s.score, s.task.position))
        return scored

    def suggest_next_actions(
        self,
        tasks: TaskCollection,
        count: int = 3,
        available_minutes: Optional[int] = None,
        reference_date: Optional[date] = None,
        projects: Optional[Mapping[str, Project]] = None
    ) -> Tuple[List[ScoredTask], str]:
        """
        Pick what to work on now.

        Candidates are active, unblocked, available tasks outside
        ``someday``/``waiting``. Overdue tasks are taken first, then the
        rest by score while the summed estimates fit ``available_minutes``.
        The first pick is always allowed, even if it alone exceeds the budget.

        Returns:
            Tuple of (suggested tasks, summary message)
        """
        if reference_date is None:
            reference_date = date.today()

        candidates = [
            scored for scored in self.rank_tasks(tasks, reference_date, projects)
            if not scored.is_blocked
            and scored.task.is_available(reference_date)
            and scored.task.status not in (TaskStatus.SOMEDAY, TaskStatus.WAITING)
        ]
        if not candidates:
            return [], "No actionable tasks right now."

        suggested: List[ScoredTask] = []
        total_minutes = 0

        def fits(scored: ScoredTask) -> bool:
            if not suggested or available_minutes is None:
                return True
            return total_minutes + scored.task.time_estimate_minutes <= available_minutes

        for scored in candidates:
            if scored.is_overdue and len(suggested) < count and fits(scored):
                suggested.append(scored)
                total_minutes += scored.task.time_estimate_minutes

        for scored in candidates:
            if len(suggested) >= count:
                break
            if scored in suggested:
                continue
            if fits(scored):
                suggested.append(scored)
                total_minutes += scored.task.time_estimate_minutes

        return suggested, self._generate_summary(suggested, total_minutes)

    def _generate_summary(self, suggested: List[ScoredTask], total_minutes: int) -> str:
        overdue_count = sum(1 for s in suggested if s.is_overdue)
        parts = [
            f"Recommended {len(suggested)} task(s)",
            f"Total estimated time: {total_minutes} min"
        ]
        if overdue_count:
            parts.append(f"{overdue_count} overdue task(s) need attention")
        return " | ".join(parts)


def scored_task_to_dict(scored: ScoredTask) -> Dict:
    """Convert a ScoredTask to a dictionary for JSON serialization."""
    result = task_to_dict(scored.task)
    result.update({
        'priorityScore': scored.score,
        'priorityLabel': scored.label,
        'reasons': scored.reasons,
        'isBlocked': scored.is_blocked,
        'isOverdue': scored.is_overdue
    })
    return result
