"""Readiness and completion order."""

import heapq
from dataclasses import dataclass

from blockplan.graph import DependencyGraph, InvariantViolation
from blockplan.models import Issue


@dataclass(frozen=True)
class Ordering:
    ready_items: tuple[Issue, ...]
    completion_order: tuple[Issue, ...]


def find_ready(graph: DependencyGraph) -> list[Issue]:
    """Open issues with no open blocker, in input order."""
    return [
        issue
        for issue in graph.issues
        if issue.is_open() and graph.open_in_degree(issue.id) == 0
    ]


def topological_sort(graph: DependencyGraph) -> list[str]:
    """Kahn's algorithm over every retained edge.

    When several issues are free at once the most urgent priority goes first,
    then input order, so the result is the same for the same graph.
    """
    in_degree = {issue.id: len(graph.blocked_by[issue.id]) for issue in graph.issues}
    heap = [graph.sort_key(issue_id) + (issue_id,) for issue_id, d in in_degree.items() if d == 0]
    heapq.heapify(heap)

    result: list[str] = []
    while heap:
        *_, current = heapq.heappop(heap)
        result.append(current)
        for dependent in graph.blocks[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(heap, graph.sort_key(dependent) + (dependent,))

    if len(result) != len(graph.issues):
        stuck = sorted(set(in_degree) - set(result))
        raise InvariantViolation(f"Graph still has a cycle through: {', '.join(stuck)}")

    return result


def order(graph: DependencyGraph) -> Ordering:
    """Compute the ready set and a full completion order."""
    return Ordering(
        ready_items=tuple(find_ready(graph)),
        completion_order=tuple(graph.by_id[i] for i in topological_sort(graph)),
    )
