"""
Tests for the dependency graph.

Covers cycle prevention on insert, detection of cycles already present in
stored data, blocked-state queries and the graph overview helpers.
"""

from dataclasses import replace

from django.test import TestCase

from tasks.dependencies import DependencyGraph, is_blocked, pending_prerequisites
from tasks.entities import Project, TaskStatus
from tasks.errors import (
    CircularDependencyError,
    DanglingReferenceError,
    ErrorCode,
    TaskNotFoundError,
)

from .helpers import NOW, make_collection, make_task


class CircularDependencyTests(TestCase):
    """Tests for cycle prevention when edges are added."""

    def setUp(self):
        self.tasks = make_collection(
            make_task('x', status='next'),
            make_task('y', status='next'),
            make_task('z', status='next'),
        )
        self.graph = DependencyGraph(self.tasks)

    def test_direct_cycle_rejected(self):
        """X depends on Y, so Y may not depend on X."""
        self.graph.add_dependency('x', 'y', now=NOW)
        with self.assertRaises(CircularDependencyError) as ctx:
            self.graph.add_dependency('y', 'x', now=NOW)
        self.assertEqual(ctx.exception.code, ErrorCode.ERR_CIRCULAR_DEPENDENCY)
        self.assertEqual(self.tasks['y'].depends_on, ())

    def test_transitive_cycle_rejected(self):
        """X -> Y -> Z, so Z -> X would close a loop."""
        self.graph.add_dependency('x', 'y', now=NOW)
        self.graph.add_dependency('y', 'z', now=NOW)
        self.assertTrue(self.graph.would_create_cycle('z', 'x'))
        with self.assertRaises(CircularDependencyError):
            self.graph.add_dependency('z', 'x', now=NOW)
        self.assertEqual(self.tasks['z'].depends_on, ())

    def test_self_dependency_rejected(self):
        with self.assertRaises(CircularDependencyError) as ctx:
            self.graph.add_dependency('x', 'x', now=NOW)
        self.assertEqual(ctx.exception.code, ErrorCode.ERR_SELF_DEPENDENCY)

    def test_diamond_is_not_a_cycle(self):
        """Two paths to the same prerequisite are allowed."""
        self.graph.add_dependency('x', 'y', now=NOW)
        self.graph.add_dependency('x', 'z', now=NOW)
        self.graph.add_dependency('y', 'z', now=NOW)
        self.assertEqual(self.tasks['x'].depends_on, ('y', 'z'))
        self.assertEqual(self.graph.find_cycles(), set())

    def test_adding_existing_edge_is_noop(self):
        first = self.graph.add_dependency('x', 'y', now=NOW)
        second = self.graph.add_dependency('x', 'y', now=NOW)
        self.assertIs(first, second)
        self.assertEqual(self.tasks['x'].depends_on, ('y',))

    def test_edit_does_not_touch_status(self):
        updated = self.graph.add_dependency('x', 'y', now=NOW)
        self.assertEqual(updated.status, TaskStatus.NEXT)

    def test_missing_task_and_missing_prerequisite(self):
        with self.assertRaises(TaskNotFoundError):
            self.graph.add_dependency('missing', 'x', now=NOW)
        with self.assertRaises(DanglingReferenceError) as ctx:
            self.graph.add_dependency('x', 'missing', now=NOW)
        self.assertEqual(ctx.exception.field, 'dependsOn')

    def test_replace_is_all_or_nothing(self):
        """A rejected edge in the new set leaves the old set in place."""
        self.graph.add_dependency('y', 'x', now=NOW)
        self.graph.add_dependency('x', 'z', now=NOW)
        with self.assertRaises(CircularDependencyError):
            self.graph.replace_dependencies('x', ['z', 'y'], now=NOW)
        self.assertEqual(self.tasks['x'].depends_on, ('z',))

    def test_remove_dependency_idempotent(self):
        self.graph.add_dependency('x', 'y', now=NOW)
        self.graph.remove_dependency('x', 'y', now=NOW)
        self.graph.remove_dependency('x', 'y', now=NOW)
        self.assertEqual(self.tasks['x'].depends_on, ())

    def test_records_are_replaced_not_mutated(self):
        original = self.tasks['x']
        self.graph.add_dependency('x', 'y', now=NOW)
        self.assertEqual(original.depends_on, ())
        self.assertIsNot(self.tasks['x'], original)


class StoredCycleTests(TestCase):
    """Collections loaded from storage may already contain cycles."""

    def test_find_cycles_reports_cycle_members_only(self):
        tasks = make_collection(
            make_task('a', depends_on=('b',)),
            make_task('b', depends_on=('a',)),
            make_task('c', depends_on=('a',)),
            make_task('d'),
        )
        self.assertEqual(DependencyGraph(tasks).find_cycles(), {'a', 'b'})

    def test_find_cycles_with_longer_loop(self):
        tasks = make_collection(
            make_task('a', depends_on=('b',)),
            make_task('b', depends_on=('c',)),
            make_task('c', depends_on=('a',)),
        )
        self.assertEqual(DependencyGraph(tasks).find_cycles(), {'a', 'b', 'c'})


class BlockedStateTests(TestCase):
    """Tests for blocked/ready queries."""

    def test_blocked_flips_when_prerequisite_completes(self):
        """A is blocked while B is open and ready right after B completes."""
        tasks = make_collection(
            make_task('a', status='waiting', depends_on=('b',)),
            make_task('b', status='next'),
        )
        self.assertTrue(is_blocked(tasks['a'], tasks))

        tasks['b'] = replace(tasks['b'], status=TaskStatus.COMPLETED, completed=True)
        self.assertFalse(is_blocked(tasks['a'], tasks))

    def test_archived_prerequisite_is_satisfied(self):
        """Archiving a finished prerequisite does not block its dependents again."""
        tasks = make_collection(
            make_task('a', status='waiting', depends_on=('b', 'c')),
            make_task('b', status='archived', completed_at=NOW),
            make_task('c', status='next'),
        )
        self.assertEqual([t.id for t in pending_prerequisites(tasks['a'], tasks)], ['c'])
        self.assertEqual([t.id for t in DependencyGraph(tasks).on_task_completed('c')], ['a'])

        tasks['c'] = replace(tasks['c'], status=TaskStatus.ARCHIVED)
        self.assertFalse(is_blocked(tasks['a'], tasks))

    def test_dangling_prerequisite_never_blocks(self):
        tasks = make_collection(make_task('a', depends_on=('deleted',)))
        self.assertFalse(is_blocked(tasks['a'], tasks))
        self.assertEqual(pending_prerequisites(tasks['a'], tasks), [])

    def test_pending_prerequisites_in_order(self):
        tasks = make_collection(
            make_task('a', depends_on=('c', 'b', 'd')),
            make_task('b'),
            make_task('c'),
            make_task('d', status='completed'),
        )
        pending = DependencyGraph(tasks).pending_prerequisites('a')
        self.assertEqual([t.id for t in pending], ['c', 'b'])

    def test_on_task_completed_needs_all_prerequisites(self):
        tasks = make_collection(
            make_task('a', status='waiting', depends_on=('b', 'c')),
            make_task('b'),
            make_task('c'),
            make_task('d', status='waiting', depends_on=('b',)),
        )
        graph = DependencyGraph(tasks)
        self.assertEqual([t.id for t in graph.on_task_completed('b')], ['d'])

        tasks['c'] = replace(tasks['c'], status=TaskStatus.COMPLETED, completed=True)
        self.assertEqual([t.id for t in graph.on_task_completed('b')], ['a', 'd'])


class GraphOverviewTests(TestCase):
    """Tests for levels, critical path, stats and dangling references."""

    def setUp(self):
        # c -> b -> a, plus a finished prerequisite and a loose task
        self.tasks = make_collection(
            make_task('a', status='next', project_id='p1'),
            make_task('b', status='waiting', depends_on=('a',), project_id='p1'),
            make_task('c', status='waiting', depends_on=('b', 'done')),
            make_task('done', status='completed'),
            make_task('loose', status='next', project_id='gone'),
        )
        self.graph = DependencyGraph(self.tasks)

    def test_dependency_levels(self):
        self.assertEqual(self.graph.dependency_level('a'), 0)
        self.assertEqual(self.graph.dependency_level('b'), 1)
        self.assertEqual(self.graph.dependency_level('c'), 2)

    def test_critical_path_prerequisite_first(self):
        self.assertEqual([t.id for t in self.graph.critical_path()], ['a', 'b', 'c'])

    def test_critical_path_empty_without_chains(self):
        graph = DependencyGraph(make_collection(make_task('a'), make_task('b')))
        self.assertEqual(graph.critical_path(), [])

    def test_stats(self):
        stats = self.graph.stats()
        self.assertEqual(stats.to_dict(), {
            'totalTasks': 4,
            'withDependencies': 2,
            'blocked': 2,
            'ready': 2
        })

    def test_stats_for_project(self):
        stats = self.graph.stats(project_id='p1')
        self.assertEqual(stats.total_tasks, 2)
        self.assertEqual(stats.blocked, 1)

    def test_dependents_of(self):
        self.assertEqual([t.id for t in self.graph.dependents_of('b')], ['c'])

    def test_dangling_references(self):
        self.tasks['c'] = replace(self.tasks['c'], depends_on=('b', 'deleted'))
        found = self.graph.dangling_references({'p1': Project(id='p1')})
        self.assertEqual(
            sorted((ref.task_id, ref.field, ref.reference_id) for ref in found),
            [('c', 'dependsOn', 'deleted'), ('loose', 'projectId', 'gone')]
        )

    def test_project_references_skipped_without_projects(self):
        self.assertEqual(self.graph.dangling_references(), [])

    def test_levels_for_all_open_tasks(self):
        self.assertEqual(self.graph.dependency_levels(), {'a': 0, 'b': 1, 'c': 2, 'loose': 0})

    def test_archived_tasks_leave_the_overview(self):
        self.tasks['a'] = replace(self.tasks['a'], status=TaskStatus.ARCHIVED)
        self.assertEqual([t.id for t in self.graph.critical_path()], ['b', 'c'])
        self.assertEqual(self.graph.dependency_level('c'), 1)
        self.assertEqual(self.graph.stats().to_dict(), {
            'totalTasks': 3,
            'withDependencies': 2,
            'blocked': 1,
            'ready': 2
        })


class LongChainTests(TestCase):
    """Deep stored chains must not hit the interpreter's recursion limit."""

    CHAIN_LENGTH = 1500

    def setUp(self):
        tasks = [make_task('t0', status='next')]
        for index in range(1, self.CHAIN_LENGTH):
            tasks.append(make_task(f't{index}', status='waiting', depends_on=(f't{index - 1}',)))
        self.graph = DependencyGraph(make_collection(*tasks))

    def test_dependency_level_of_last_link(self):
        self.assertEqual(self.graph.dependency_level(f't{self.CHAIN_LENGTH - 1}'), self.CHAIN_LENGTH - 1)

    def test_levels_and_critical_path(self):
        levels = self.graph.dependency_levels()
        self.assertEqual(levels['t0'], 0)
        self.assertEqual(levels[f't{self.CHAIN_LENGTH - 1}'], self.CHAIN_LENGTH - 1)

        path = self.graph.critical_path()
        self.assertEqual(len(path), self.CHAIN_LENGTH)
        self.assertEqual(path[0].id, 't0')
        self.assertEqual(path[-1].id, f't{self.CHAIN_LENGTH - 1}')

    def test_no_cycles_reported(self):
        self.assertEqual(self.graph.find_cycles(), set())
