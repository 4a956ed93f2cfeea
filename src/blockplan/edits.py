"""Edit actions on the raw edge list of a payload.

The engine has no mutation API. Each action returns a new payload, and the
caller analyzes that payload from scratch.
"""

from dataclasses import replace

from blockplan.graph import DependencyGraph
from blockplan.models import Edge
from blockplan.payload import GraphPayload


class LinkError(Exception):
    """Raised when a link edit cannot be applied."""

    pass


def _require_issues(payload: GraphPayload, *issue_ids: str) -> None:
    known = payload.issue_ids()
    for issue_id in issue_ids:
        if issue_id not in known:
            raise LinkError(f"Issue not found: {issue_id}")


def add_link(payload: GraphPayload, source: str, target: str) -> GraphPayload:
    """
    Add link: `source` blocks `target`.

    Raises:
        LinkError: If either issue is unknown, the link points at itself,
            or it would close a cycle.
    """
    _require_issues(payload, source, target)
    if source == target:
        raise LinkError(f"An issue cannot block itself: {source}")

    edge = Edge(source, target)
    if edge in payload.edges:
        return payload

    graph = DependencyGraph.build(payload.issues, payload.edges)
    if graph.detect_cycle(source, target, include_excluded=True):
        raise LinkError(f"Cannot add link: {source} -> {target} would create a cycle")

    return replace(payload, edges=(*payload.edges, edge))


def remove_link(payload: GraphPayload, source: str, target: str) -> GraphPayload:
    """Remove every copy of the `source` blocks `target` link."""
    edge = Edge(source, target)
    if edge not in payload.edges:
        raise LinkError(f"No link {source} -> {target}")
    return replace(payload, edges=tuple(e for e in payload.edges if e != edge))


def retarget_link(
    payload: GraphPayload, source: str, old_target: str, new_target: str
) -> GraphPayload:
    """Point the `source` -> `old_target` link at `new_target` instead."""
    if old_target == new_target:
        _require_issues(payload, new_target)
        if Edge(source, old_target) not in payload.edges:
            raise LinkError(f"No link {source} -> {old_target}")
        return payload
    return add_link(remove_link(payload, source, old_target), source, new_target)
