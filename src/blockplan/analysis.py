"""Critical path, parallel phases and capacity-limited wave plans.

All three work over the *active* edges of a graph: retained edges whose
blocker is still open. A closed blocker has already done its job, so it
neither pushes its dependents into a later phase nor lengthens a chain.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from blockplan.graph import DependencyGraph, InvariantViolation
from blockplan.models import Issue
from blockplan.ordering import topological_sort


@dataclass(frozen=True)
class Analysis:
    critical_path: tuple[Issue, ...]
    parallel_groups: tuple[tuple[Issue, ...], ...]


@dataclass(frozen=True)
class WavePlan:
    """Open issues grouped into waves of at most `capacity` items."""

    waves: tuple[tuple[Issue, ...], ...]
    capacity: int

    @property
    def total_waves(self) -> int:
        return len(self.waves)

    @property
    def total_items(self) -> int:
        return sum(len(wave) for wave in self.waves)

    @property
    def average_throughput(self) -> float:
        """Mean items per wave, 0 for an empty plan."""
        if not self.waves:
            return 0.0
        return self.total_items / self.total_waves


def compute_phases(graph: DependencyGraph, order_ids: Sequence[str]) -> dict[str, int]:
    """Phase 0 for issues without open blockers, else one past the latest blocker."""
    phases: dict[str, int] = {}
    for issue_id in order_ids:
        blockers = graph.open_blockers(issue_id)
        phases[issue_id] = 1 + max(phases[b] for b in blockers) if blockers else 0
    return phases


def find_parallel_groups(graph: DependencyGraph, order_ids: Sequence[str]) -> list[list[str]]:
    phases = compute_phases(graph, order_ids)
    if not phases:
        return []

    groups: list[list[str]] = [[] for _ in range(max(phases.values()) + 1)]
    for issue_id, phase in phases.items():
        groups[phase].append(issue_id)
    return [sorted(group, key=graph.sort_key) for group in groups]


def find_critical_path(graph: DependencyGraph, order_ids: Sequence[str]) -> list[str]:
    """Longest chain of open blocking edges, counted in issues.

    The chain ends at the earliest issue (in completion order) with the
    greatest length. Walking back, the blocker with the greatest length wins,
    then the more urgent priority, then input order.
    """
    if not order_ids:
        return []

    longest: dict[str, int] = {}
    for issue_id in order_ids:
        blockers = graph.open_blockers(issue_id)
        longest[issue_id] = 1 + max((longest[b] for b in blockers), default=0)

    best = max(longest.values())
    path = [next(i for i in order_ids if longest[i] == best)]
    while blockers := graph.open_blockers(path[-1]):
        path.append(min(blockers, key=lambda b: (-longest[b], *graph.sort_key(b))))

    path.reverse()
    return path


def analyze(graph: DependencyGraph, completion_order: Sequence[Issue] | None = None) -> Analysis:
    """Compute the critical path and parallel phases of a graph."""
    if completion_order is None:
        order_ids = topological_sort(graph)
    else:
        order_ids = [issue.id for issue in completion_order]

    return Analysis(
        critical_path=tuple(graph.by_id[i] for i in find_critical_path(graph, order_ids)),
        parallel_groups=tuple(
            tuple(graph.by_id[i] for i in group)
            for group in find_parallel_groups(graph, order_ids)
        ),
    )


def plan_waves(
    graph: DependencyGraph, completion_order: Sequence[Issue], capacity: int
) -> WavePlan:
    """Schedule open issues into waves, each limited to `capacity` items.

    An issue joins a wave once all its open blockers sit in earlier waves.
    Candidates are taken in completion order. Closed issues count as done.
    """
    if capacity < 1:
        raise ValueError(f"Wave capacity must be at least 1, got {capacity}")

    pending = [issue for issue in completion_order if issue.is_open()]
    done: set[str] = set()
    waves: list[tuple[Issue, ...]] = []

    while pending:
        wave: list[Issue] = []
        for issue in pending:
            if len(wave) == capacity:
                break
            if all(b in done for b in graph.open_blockers(issue.id)):
                wave.append(issue)
        if not wave:
            raise InvariantViolation("Completion order does not respect the blocking edges")
        done.update(issue.id for issue in wave)
        pending = [issue for issue in pending if issue.id not in done]
        waves.append(tuple(wave))

    return WavePlan(waves=tuple(waves), capacity=capacity)
