"""Dependency graph builder for the blocking analysis engine."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from blockplan.models import Diagnostic, DiagnosticReason, Edge, Issue
from blockplan.payload import PayloadError

logger = logging.getLogger(__name__)

_ON_STACK = 1
_DONE = 2


class InvariantViolation(AssertionError):
    """Raised when computed results break a graph invariant (an engine bug)."""

    pass


@dataclass(frozen=True)
class DependencyGraph:
    """Validated, acyclic view of issues and their blocking edges.

    Built fresh for every payload and never modified afterwards.
    """

    issues: tuple[Issue, ...]
    edges: tuple[Edge, ...]  # retained edges, input order
    excluded_edges: tuple[Edge, ...] = ()  # dropped because they sat on a cycle
    diagnostics: tuple[Diagnostic, ...] = ()
    blocks: dict[str, tuple[str, ...]] = field(default_factory=dict)  # issue_id -> IDs it blocks
    blocked_by: dict[str, tuple[str, ...]] = field(default_factory=dict)  # issue_id -> IDs blocking it
    by_id: dict[str, Issue] = field(default_factory=dict, repr=False)
    positions: dict[str, int] = field(default_factory=dict, repr=False)

    @classmethod
    def build(cls, issues: Iterable[Issue], raw_edges: Iterable[Edge]) -> "DependencyGraph":
        """Build the graph, dropping invalid and cyclic edges as diagnostics."""
        issues = tuple(issues)
        by_id: dict[str, Issue] = {}
        for issue in issues:
            if not isinstance(issue, Issue):
                raise PayloadError(f"Expected an Issue, got {issue!r}")
            if issue.id in by_id:
                raise PayloadError(f"Duplicate issue id: {issue.id}")
            by_id[issue.id] = issue

        diagnostics: list[Diagnostic] = []
        candidates: list[Edge] = []
        seen: set[Edge] = set()
        for edge in raw_edges:
            if edge in seen:
                continue
            seen.add(edge)
            if edge.source == edge.target:
                diagnostics.append(Diagnostic(DiagnosticReason.SELF_LOOP, edge))
            elif edge.source not in by_id or edge.target not in by_id:
                diagnostics.append(Diagnostic(DiagnosticReason.UNKNOWN_ENDPOINT, edge))
            else:
                candidates.append(edge)

        excluded, cycle_diagnostics = _break_cycles(issues, candidates)
        diagnostics.extend(cycle_diagnostics)
        for diagnostic in diagnostics:
            logger.warning(diagnostic.message)

        retained = tuple(e for e in candidates if e not in excluded)
        blocks: dict[str, list[str]] = {issue.id: [] for issue in issues}
        blocked_by: dict[str, list[str]] = {issue.id: [] for issue in issues}
        for edge in retained:
            blocks[edge.source].append(edge.target)
            blocked_by[edge.target].append(edge.source)

        logger.debug(
            "Built graph: %d issues, %d edges retained, %d diagnostics",
            len(issues),
            len(retained),
            len(diagnostics),
        )
        return cls(
            issues=issues,
            edges=retained,
            excluded_edges=tuple(e for e in candidates if e in excluded),
            diagnostics=tuple(diagnostics),
            blocks={k: tuple(v) for k, v in blocks.items()},
            blocked_by={k: tuple(v) for k, v in blocked_by.items()},
            by_id=by_id,
            positions={issue.id: index for index, issue in enumerate(issues)},
        )

    def get(self, issue_id: str) -> Issue | None:
        return self.by_id.get(issue_id)

    def position(self, issue_id: str) -> int:
        """Index of the issue in the input order."""
        return self.positions[issue_id]

    def sort_key(self, issue_id: str) -> tuple[int, int]:
        """Tie-break key: more urgent priority first, then input order."""
        return (self.by_id[issue_id].priority, self.positions[issue_id])

    def open_blockers(self, issue_id: str) -> tuple[str, ...]:
        """Blockers of issue_id that are not closed yet."""
        return tuple(b for b in self.blocked_by.get(issue_id, ()) if self.by_id[b].is_open())

    def open_in_degree(self, issue_id: str) -> int:
        return len(self.open_blockers(issue_id))

    def is_blocked(self, issue_id: str) -> bool:
        """Check if issue is blocked by any open issues."""
        return self.open_in_degree(issue_id) > 0

    def get_blockers(self, issue_id: str) -> set[str]:
        """Get IDs of issues blocking the given issue."""
        return set(self.blocked_by.get(issue_id, ()))

    def get_blocked_by_this(self, issue_id: str) -> set[str]:
        """Get IDs of issues blocked by the given issue."""
        return set(self.blocks.get(issue_id, ()))

    def get_transitive_blockers(self, issue_id: str) -> list[str]:
        """Get all transitive blockers in topological order (deepest first).

        Returns a list of issue IDs where dependencies appear before dependents.
        """
        visited: set[str] = set()
        result: list[str] = []

        def dfs(current_id: str) -> None:
            if current_id in visited:
                return
            visited.add(current_id)

            for blocker_id in self.blocked_by.get(current_id, ()):
                dfs(blocker_id)

            if current_id != issue_id:
                result.append(current_id)

        dfs(issue_id)
        return result

    def detect_cycle(self, source: str, target: str, include_excluded: bool = False) -> bool:
        """
        Check if adding a `source` blocks `target` edge would create a cycle.

        A cycle would occur if target already (transitively) blocks source.
        With include_excluded, links dropped for sitting on a cycle count too,
        so the check reflects the raw payload rather than the scheduling graph.
        """
        blocked_by: dict[str, list[str]] = {k: list(v) for k, v in self.blocked_by.items()}
        if include_excluded:
            for edge in self.excluded_edges:
                blocked_by[edge.target].append(edge.source)

        visited: set[str] = set()
        stack = [source]

        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(blocked_by.get(current, ()))

        return False

    def fan_out_counts(self) -> dict[str, int]:
        """Number of issues each issue transitively unblocks."""
        counts: dict[str, int] = {}
        for issue in self.issues:
            reached: set[str] = set()
            stack = list(self.blocks[issue.id])
            while stack:
                current = stack.pop()
                if current in reached:
                    continue
                reached.add(current)
                stack.extend(self.blocks[current])
            counts[issue.id] = len(reached)
        return counts


def _break_cycles(
    issues: tuple[Issue, ...], edges: list[Edge]
) -> tuple[set[Edge], list[Diagnostic]]:
    """Find edges closing a cycle with an iterative on-stack DFS.

    Roots are taken in issue input order and successors in edge input order.
    Each edge reaching a node still on the stack yields one diagnostic, and
    every edge of the cycle it closes is excluded.
    """
    successors: dict[str, list[Edge]] = {issue.id: [] for issue in issues}
    for edge in edges:
        successors[edge.source].append(edge)

    excluded: set[Edge] = set()
    diagnostics: list[Diagnostic] = []
    state: dict[str, int] = {}

    for issue in issues:
        if issue.id in state:
            continue
        state[issue.id] = _ON_STACK
        stack = [(issue.id, iter(successors[issue.id]))]
        stack_index = {issue.id: 0}
        path: list[Edge] = []  # path[i] links stack[i] to stack[i + 1]

        while stack:
            node, pending = stack[-1]
            edge = next(pending, None)
            if edge is None:
                state[node] = _DONE
                del stack_index[node]
                stack.pop()
                if path:
                    path.pop()
                continue

            child = edge.target
            child_state = state.get(child)
            if child_state is None:
                state[child] = _ON_STACK
                stack_index[child] = len(stack)
                stack.append((child, iter(successors[child])))
                path.append(edge)
            elif child_state == _ON_STACK:
                start = stack_index[child]
                members = tuple(n for n, _ in stack[start:])
                excluded.update(path[start:])
                excluded.add(edge)
                diagnostics.append(Diagnostic(DiagnosticReason.CYCLE, edge, members))

    return excluded, diagnostics
