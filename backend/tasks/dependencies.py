"""
Dependency graph over tasks.

Edges come from ``Task.depends_on``: an edge ``A -> B`` means "A waits for
B". The graph must stay acyclic, so every new edge is checked with a
reachability search before it is committed.

The graph does not own the tasks. It reads and writes the caller's
id-indexed collection, replacing records rather than mutating them, and it
treats references to deleted tasks as satisfied.
"""

from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, MutableMapping, Optional, Set, Tuple

import structlog

from .entities import Project, Task, utc_now
from .errors import CircularDependencyError, DanglingReferenceError, TaskNotFoundError

logger = structlog.get_logger(__name__)


@dataclass
class DependencyStats:
    """Counts shown in the dependency overview."""
    total_tasks: int = 0
    with_dependencies: int = 0
    blocked: int = 0
    ready: int = 0

    def to_dict(self) -> Dict:
        return {
            'totalTasks': self.total_tasks,
            'withDependencies': self.with_dependencies,
            'blocked': self.blocked,
            'ready': self.ready
        }


@dataclass
class DanglingReference:
    """A ``dependsOn`` or ``projectId`` value that points at nothing."""
    task_id: str
    field: str
    reference_id: str

    def to_dict(self) -> Dict:
        return {'taskId': self.task_id, 'field': self.field, 'referenceId': self.reference_id}


def is_blocked(task: Task, all_tasks: Mapping[str, Task]) -> bool:
    """
    True while at least one existing prerequisite is still open.

    Completed and archived prerequisites are satisfied, and a prerequisite
    id that no longer resolves to a task never blocks.
    """
    return any(
        prerequisite_id in all_tasks and not all_tasks[prerequisite_id].is_done
        for prerequisite_id in task.depends_on
    )


def pending_prerequisites(task: Task, all_tasks: Mapping[str, Task]) -> List[Task]:
    """Open prerequisites in ``depends_on`` order."""
    return [
        all_tasks[prerequisite_id]
        for prerequisite_id in task.depends_on
        if prerequisite_id in all_tasks and not all_tasks[prerequisite_id].is_done
    ]


class DependencyGraph:
    """
    Dependency operations over a caller-supplied task collection.

    Args:
        tasks: Mutable mapping of task id to Task. Successful edits replace
               entries in this mapping; failed edits leave it untouched.
    """

    def __init__(self, tasks: MutableMapping[str, Task]):
        self.tasks = tasks

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, task_id: str) -> Task:
        try:
            return self.tasks[task_id]
        except KeyError:
            raise TaskNotFoundError(f"Task with ID {task_id} does not exist", task_id=task_id)

    def dependents_of(self, task_id: str) -> List[Task]:
        """Tasks that list ``task_id`` as a prerequisite."""
        return [task for task in self.tasks.values() if task_id in task.depends_on]

    # ------------------------------------------------------------------
    # Cycle checks
    # ------------------------------------------------------------------

    def has_path(self, start_id: str, target_id: str) -> bool:
        """
        Whether ``target_id`` is reachable from ``start_id`` by following
        ``depends_on`` edges. Breadth-first, O(V + E).
        """
        if start_id == target_id:
            return True

        visited: Set[str] = {start_id}
        queue = deque([start_id])
        while queue:
            current = self.tasks.get(queue.popleft())
            if current is None:
                continue
            for neighbor in current.depends_on:
                if neighbor == target_id:
                    return True
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        return False

    def would_create_cycle(self, task_id: str, prerequisite_id: str) -> bool:
        """Adding ``task_id -> prerequisite_id`` closes a cycle iff the
        prerequisite already reaches the task."""
        return self.has_path(prerequisite_id, task_id)

    def find_cycles(self) -> Set[str]:
        """
        Ids of tasks that sit on a dependency cycle.

        Collections loaded from storage may predate the insertion check, so
        this walks the whole graph with a DFS and a recursion stack.
        """
        in_cycle: Set[str] = set()
        visited: Set[str] = set()

        for root in self.tasks:
            if root in visited:
                continue
            # Iterative DFS; each stack frame is (node, iterator over its edges)
            path: List[str] = [root]
            on_path: Set[str] = {root}
            stack = [(root, iter(self.tasks[root].depends_on))]
            visited.add(root)
            while stack:
                node, edges = stack[-1]
                advanced = False
                for neighbor in edges:
                    if neighbor not in self.tasks:
                        continue
                    if neighbor in on_path:
                        in_cycle.update(path[path.index(neighbor):])
                        continue
                    if neighbor not in visited:
                        visited.add(neighbor)
                        path.append(neighbor)
                        on_path.add(neighbor)
                        stack.append((neighbor, iter(self.tasks[neighbor].depends_on)))
                        advanced = True
                        break
                if not advanced:
                    stack.pop()
                    on_path.discard(path.pop())
        return in_cycle

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def check_edge(self, task_id: str, prerequisite_id: str) -> None:
        """Raise if ``task_id -> prerequisite_id`` may not be committed."""
        self.get(task_id)
        if prerequisite_id not in self.tasks:
            raise DanglingReferenceError(prerequisite_id, field='dependsOn', task_id=task_id)
        if task_id == prerequisite_id or self.would_create_cycle(task_id, prerequisite_id):
            logger.warning(
                "dependency_rejected",
                task_id=task_id,
                prerequisite_id=prerequisite_id,
                reason="cycle"
            )
            raise CircularDependencyError(task_id, prerequisite_id)

    def add_dependency(
        self,
        task_id: str,
        prerequisite_id: str,
        now: Optional[datetime] = None
    ) -> Task:
        """
        Make ``task_id`` depend on ``prerequisite_id``.

        Raises:
            TaskNotFoundError: ``task_id`` does not exist
            DanglingReferenceError: ``prerequisite_id`` does not exist
            CircularDependencyError: the edge would close a cycle

        Returns:
            The updated task. Its status is left alone; deciding whether it
            moves to ``waiting`` is up to the state machine.
        """
        task = self.get(task_id)
        if prerequisite_id in task.depends_on:
            return task

        self.check_edge(task_id, prerequisite_id)

        updated = replace(
            task,
            depends_on=task.depends_on + (prerequisite_id,),
            updated_at=now or utc_now()
        )
        self.tasks[task_id] = updated
        logger.info("dependency_added", task_id=task_id, prerequisite_id=prerequisite_id)
        return updated

    def remove_dependency(
        self,
        task_id: str,
        prerequisite_id: str,
        now: Optional[datetime] = None
    ) -> Task:
        """Drop an edge. Removing an edge that is not there is a no-op."""
        task = self.get(task_id)
        if prerequisite_id not in task.depends_on:
            return task

        updated = replace(
            task,
            depends_on=tuple(d for d in task.depends_on if d != prerequisite_id),
            updated_at=now or utc_now()
        )
        self.tasks[task_id] = updated
        logger.info("dependency_removed", task_id=task_id, prerequisite_id=prerequisite_id)
        return updated

    def replace_dependencies(
        self,
        task_id: str,
        prerequisite_ids: Iterable[str],
        now: Optional[datetime] = None
    ) -> Task:
        """
        Swap the whole prerequisite set of a task.

        Every new edge is checked before anything is written, so a rejected
        set leaves the collection unchanged.
        """
        task = self.get(task_id)
        new_ids: Tuple[str, ...] = tuple(dict.fromkeys(prerequisite_ids))
        for prerequisite_id in new_ids:
            if prerequisite_id not in task.depends_on:
                self.check_edge(task_id, prerequisite_id)

        if new_ids == task.depends_on:
            return task

        updated = replace(task, depends_on=new_ids, updated_at=now or utc_now())
        self.tasks[task_id] = updated
        logger.info("dependencies_replaced", task_id=task_id, depends_on=list(new_ids))
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_blocked(self, task_id: str) -> bool:
        return is_blocked(self.get(task_id), self.tasks)

    def pending_prerequisites(self, task_id: str) -> List[Task]:
        return pending_prerequisites(self.get(task_id), self.tasks)

    def on_task_completed(self, task_id: str) -> List[Task]:
        """
        Tasks for which ``task_id`` was the last incomplete prerequisite.

        Works whether or not ``task_id`` has already been marked completed.
        This is a query only; no statuses change.
        """
        unblocked = []
        for dependent in self.dependents_of(task_id):
            if dependent.is_done:
                continue
            remaining = [
                prerequisite for prerequisite in pending_prerequisites(dependent, self.tasks)
                if prerequisite.id != task_id
            ]
            if not remaining:
                unblocked.append(dependent)
        return unblocked

    def _chain_depths(self, roots: Iterable[str]) -> Tuple[Dict[str, int], Dict[str, str]]:
        """
        Length of the longest chain of open prerequisites ending at every
        task reachable from ``roots``, plus the prerequisite each chain came
        through. Edges that loop back onto the current walk are ignored, so
        stored cycles still terminate.
        """
        depths: Dict[str, int] = {}
        via: Dict[str, str] = {}

        for root in roots:
            if root in depths:
                continue
            # Iterative post-order DFS; each stack frame is (node, iterator over its open prerequisites)
            on_path: Set[str] = {root}
            stack = [(root, iter(pending_prerequisites(self.tasks[root], self.tasks)))]
            while stack:
                node, prerequisites = stack[-1]
                advanced = False
                for prerequisite in prerequisites:
                    if prerequisite.id in depths or prerequisite.id in on_path:
                        continue
                    on_path.add(prerequisite.id)
                    stack.append((prerequisite.id, iter(pending_prerequisites(prerequisite, self.tasks))))
                    advanced = True
                    break
                if advanced:
                    continue

                stack.pop()
                on_path.discard(node)
                best = 0
                for prerequisite in pending_prerequisites(self.tasks[node], self.tasks):
                    if depths.get(prerequisite.id, 0) > best:
                        best = depths[prerequisite.id]
                        via[node] = prerequisite.id
                depths[node] = best + 1
        return depths, via

    def dependency_level(self, task_id: str) -> int:
        """0 for a task with no open prerequisites, else one more than
        the deepest open prerequisite."""
        self.get(task_id)
        depths, _ = self._chain_depths([task_id])
        return depths[task_id] - 1

    def dependency_levels(self) -> Dict[str, int]:
        """``dependency_level`` for every open task in one walk."""
        open_ids = [tid for tid, t in self.tasks.items() if not t.is_done]
        depths, _ = self._chain_depths(open_ids)
        return {tid: depths[tid] - 1 for tid in open_ids}

    def critical_path(self) -> List[Task]:
        """
        Longest chain of open tasks joined by dependency edges,
        ordered prerequisite first.
        """
        open_ids = [tid for tid, t in self.tasks.items() if not t.is_done]
        depths, via = self._chain_depths(open_ids)

        end_id = None
        for task_id in open_ids:
            if end_id is None or depths[task_id] > depths[end_id]:
                end_id = task_id
        if end_id is None or depths[end_id] < 2:
            return []

        path = [end_id]
        while path[-1] in via:
            path.append(via[path[-1]])
        return [self.tasks[task_id] for task_id in reversed(path)]

    def stats(self, project_id: Optional[str] = None) -> DependencyStats:
        """Overview counts over open tasks, optionally for one project."""
        tasks = [t for t in self.tasks.values() if not t.is_done]
        if project_id:
            tasks = [t for t in tasks if t.project_id == project_id]

        blocked = sum(1 for t in tasks if is_blocked(t, self.tasks))
        return DependencyStats(
            total_tasks=len(tasks),
            with_dependencies=sum(1 for t in tasks if t.depends_on),
            blocked=blocked,
            ready=len(tasks) - blocked
        )

    def dangling_references(
        self,
        projects: Optional[Mapping[str, Project]] = None
    ) -> List[DanglingReference]:
        """
        References left behind by deletions elsewhere.

        Project references are only checked when ``projects`` is given.
        """
        found = []
        for task in self.tasks.values():
            for prerequisite_id in task.depends_on:
                if prerequisite_id not in self.tasks:
                    found.append(DanglingReference(task.id, 'dependsOn', prerequisite_id))
            if projects is not None and task.project_id and task.project_id not in projects:
                found.append(DanglingReference(task.id, 'projectId', task.project_id))
        return found
