"""Blocking model assembly: the engine's output value."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from blockplan.analysis import Analysis, analyze
from blockplan.config import EngineConfig
from blockplan.filters import IssueFilter
from blockplan.graph import DependencyGraph, InvariantViolation
from blockplan.models import Diagnostic, DiagnosticReason, Edge, Issue
from blockplan.ordering import Ordering, order
from blockplan.payload import GraphPayload, parse_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockingModel:
    """Immutable snapshot handed to renderers. Recomputed, never patched."""

    issues: tuple[Issue, ...] = ()
    edges: tuple[Edge, ...] = ()
    ready_items: tuple[Issue, ...] = ()
    completion_order: tuple[Issue, ...] = ()
    critical_path: tuple[Issue, ...] = ()
    parallel_groups: tuple[tuple[Issue, ...], ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
    excluded_edges: tuple[Edge, ...] = ()  # links dropped because they sat on a cycle
    fan_out: dict[str, int] = field(default_factory=dict, compare=False)

    def phase_of(self, issue_id: str) -> int | None:
        for index, group in enumerate(self.parallel_groups):
            if any(issue.id == issue_id for issue in group):
                return index
        return None

    def count_diagnostics(self, reason: DiagnosticReason) -> int:
        return sum(1 for d in self.diagnostics if d.reason == reason)

    def to_dict(self) -> dict[str, Any]:
        """Output boundary shape, keyed the way the renderers expect."""

        def ids(issues: tuple[Issue, ...]) -> list[str]:
            return [issue.id for issue in issues]

        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "edges": [edge.as_dict() for edge in self.edges],
            "readyItems": ids(self.ready_items),
            "completionOrder": ids(self.completion_order),
            "criticalPath": ids(self.critical_path),
            "parallelGroups": [ids(group) for group in self.parallel_groups],
            "fanOutCounts": dict(self.fan_out),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "excludedEdges": [edge.as_dict() for edge in self.excluded_edges],
        }


def assemble(graph: DependencyGraph, ordering: Ordering, analysis: Analysis) -> BlockingModel:
    """Combine the phase results into a model, checking they agree with each other."""
    model = BlockingModel(
        issues=graph.issues,
        edges=graph.edges,
        ready_items=ordering.ready_items,
        completion_order=ordering.completion_order,
        critical_path=analysis.critical_path,
        parallel_groups=analysis.parallel_groups,
        diagnostics=graph.diagnostics,
        excluded_edges=graph.excluded_edges,
        fan_out=graph.fan_out_counts(),
    )
    validate(graph, model)
    return model


def validate(graph: DependencyGraph, model: BlockingModel) -> None:
    """Raise InvariantViolation if the model is inconsistent with its graph."""
    issue_ids = [issue.id for issue in model.issues]
    order_ids = [issue.id for issue in model.completion_order]

    counts = Counter(order_ids)
    if sorted(counts) != sorted(issue_ids) or any(c != 1 for c in counts.values()):
        raise InvariantViolation("Completion order must list every issue exactly once")

    rank = {issue_id: index for index, issue_id in enumerate(order_ids)}
    for edge in model.edges:
        if rank[edge.source] >= rank[edge.target]:
            raise InvariantViolation(
                f"Completion order puts {edge.target} before its blocker {edge.source}"
            )

    for issue in model.critical_path:
        if issue.id not in rank:
            raise InvariantViolation(f"Critical path issue {issue.id} is not in the order")

    phase: dict[str, int] = {}
    for index, group in enumerate(model.parallel_groups):
        if not group:
            raise InvariantViolation(f"Phase {index} is empty")
        for issue in group:
            if issue.id in phase or issue.id not in rank:
                raise InvariantViolation(f"Issue {issue.id} is not in exactly one phase")
            phase[issue.id] = index
    if len(phase) != len(issue_ids):
        raise InvariantViolation("Phases must cover every issue")

    for edge in model.edges:
        if graph.by_id[edge.source].is_open() and phase[edge.source] >= phase[edge.target]:
            raise InvariantViolation(
                f"Phase of {edge.target} does not follow its open blocker {edge.source}"
            )

    expected_length = len(model.parallel_groups)
    if len(model.critical_path) != expected_length:
        raise InvariantViolation(
            f"Critical path has {len(model.critical_path)} issues, expected {expected_length}"
        )
    for blocker, blocked in zip(model.critical_path, model.critical_path[1:]):
        if blocker.id not in graph.open_blockers(blocked.id):
            raise InvariantViolation(f"Critical path step {blocker.id} -> {blocked.id} is not a link")

    known = set(issue_ids)
    for issue in model.ready_items:
        if issue.id not in known or not issue.is_open() or graph.is_blocked(issue.id):
            raise InvariantViolation(f"Issue {issue.id} is listed as ready but is not")


def build_blocking_model(
    payload: GraphPayload, filters: IssueFilter | None = None
) -> BlockingModel:
    """Run the whole engine over a parsed payload."""
    if filters is not None:
        payload = filters.apply(payload)

    graph = DependencyGraph.build(payload.issues, payload.edges)
    ordering = order(graph)
    analysis = analyze(graph, ordering.completion_order)
    model = assemble(graph, ordering, analysis)

    logger.debug(
        "Blocking model: %d ready, %d phases, critical path of %d",
        len(model.ready_items),
        len(model.parallel_groups),
        len(model.critical_path),
    )
    return model


def analyze_payload(
    data: Any,
    config: EngineConfig | None = None,
    filters: IssueFilter | None = None,
) -> BlockingModel:
    """Parse a raw payload and analyze it."""
    return build_blocking_model(parse_payload(data, config), filters)
