"""Graph payload parsing: the engine's input boundary.

Two shapes are accepted. The canonical one is a mapping::

    {"issues": [{"id": "bp-1", "title": "...", "status": "open"}, ...],
     "edges": [{"from": "bp-1", "to": "bp-2"}, ...]}

The other is the component list printed by ``bd graph --all --json``, where
each component carries ``Issues`` (and sometimes an ``IssueMap``) plus
``Dependencies`` records of several relationship types. Only blocking
relationships become edges.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from blockplan.config import EngineConfig
from blockplan.models import Edge, Issue, Status

BLOCKING_TYPES = ("blocks", "blocked-by")

FROM_KEYS = ("from_id", "FromID", "fromId", "from")
TO_KEYS = ("to_id", "ToID", "toId", "to")
ISSUE_KEYS = ("issue_id", "IssueID", "issueId")
DEPENDS_ON_KEYS = ("depends_on_id", "DependsOnID", "dependsOnId")
TYPE_KEYS = ("type", "dependency_type", "relationship")


class PayloadError(ValueError):
    """Raised when a graph payload is structurally malformed."""

    pass


@dataclass(frozen=True)
class GraphPayload:
    """Issues plus raw (unvalidated) blocking edges, in input order."""

    issues: tuple[Issue, ...] = ()
    edges: tuple[Edge, ...] = ()

    def issue_ids(self) -> set[str]:
        return {issue.id for issue in self.issues}

    def to_dict(self) -> dict:
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "edges": [edge.as_dict() for edge in self.edges],
        }


def parse_payload(data: Any, config: EngineConfig | None = None) -> GraphPayload:
    """Parse a canonical mapping or a bd component list into a GraphPayload."""
    config = config or EngineConfig()
    if isinstance(data, dict):
        return _parse_canonical(data, config)
    if isinstance(data, list):
        return _parse_components(data, config)
    raise PayloadError(f"Payload must be a mapping or a list, got {type(data).__name__}")


def load_payload(path: Path, config: EngineConfig | None = None) -> GraphPayload:
    """Read a YAML or JSON payload file."""
    try:
        data = yaml.safe_load(Path(path).read_text())
    except yaml.YAMLError as e:
        raise PayloadError(f"Cannot parse {path}: {e}") from e
    return parse_payload(data, config)


def dump_payload(payload: GraphPayload, path: Path) -> None:
    """Write payload in the canonical shape. JSON for .json files, YAML otherwise."""
    path = Path(path)
    data = payload.to_dict()
    if path.suffix == ".json":
        path.write_text(json.dumps(data, indent=2) + "\n")
    else:
        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def _parse_canonical(data: dict, config: EngineConfig) -> GraphPayload:
    raw_issues = data.get("issues")
    raw_edges = data.get("edges", [])
    if not isinstance(raw_issues, list):
        raise PayloadError("Payload 'issues' must be a list")
    if not isinstance(raw_edges, list):
        raise PayloadError("Payload 'edges' must be a list")

    issues: list[Issue] = []
    seen: set[str] = set()
    for record in raw_issues:
        issue = _parse_issue(record, config)
        if issue.id in seen:
            raise PayloadError(f"Duplicate issue id: {issue.id}")
        seen.add(issue.id)
        issues.append(issue)

    edges = []
    for record in raw_edges:
        if not isinstance(record, dict):
            raise PayloadError(f"Edge record must be a mapping, got {record!r}")
        edges.append(Edge(_endpoint(record, "from"), _endpoint(record, "to")))

    return GraphPayload(issues=tuple(issues), edges=tuple(edges))


def _parse_components(components: list, config: EngineConfig) -> GraphPayload:
    # Later records for the same id replace earlier ones but keep the first position.
    by_id: dict[str, Issue] = {}
    edges: list[Edge] = []

    for component in components:
        if not isinstance(component, dict):
            raise PayloadError(f"Graph component must be a mapping, got {component!r}")

        issue_map = component.get("IssueMap") or {}
        if not isinstance(issue_map, dict):
            raise PayloadError("Component 'IssueMap' must be a mapping")
        for issue_id, record in issue_map.items():
            if isinstance(record, dict) and "id" not in record:
                record = {**record, "id": issue_id}
            issue = _parse_issue(record, config)
            by_id[issue.id] = issue

        for record in _list_field(component, "Issues"):
            issue = _parse_issue(record, config)
            by_id[issue.id] = issue

        for record in _list_field(component, "Dependencies"):
            edge = _parse_dependency(record)
            if edge is not None:
                edges.append(edge)

    return GraphPayload(issues=tuple(by_id.values()), edges=tuple(edges))


def _parse_dependency(record: Any) -> Edge | None:
    """Normalize a bd dependency record to a blocker -> blocked edge."""
    if not isinstance(record, dict):
        raise PayloadError(f"Dependency record must be a mapping, got {record!r}")

    dep_type = _field(record, TYPE_KEYS) or "related"
    if dep_type not in BLOCKING_TYPES:
        return None

    # bd orientation: issue_id depends on depends_on_id, whatever the type label says
    issue_id = _field(record, ISSUE_KEYS)
    depends_on = _field(record, DEPENDS_ON_KEYS)
    if issue_id and depends_on:
        return Edge(str(depends_on), str(issue_id))

    from_id = _field(record, FROM_KEYS)
    to_id = _field(record, TO_KEYS)
    if not from_id or not to_id:
        raise PayloadError(f"Blocking dependency is missing an endpoint: {record!r}")
    if dep_type == "blocked-by":
        return Edge(str(to_id), str(from_id))
    return Edge(str(from_id), str(to_id))


def _parse_issue(record: Any, config: EngineConfig) -> Issue:
    if not isinstance(record, dict):
        raise PayloadError(f"Issue record must be a mapping, got {record!r}")

    issue_id = record.get("id")
    if not isinstance(issue_id, str) or not issue_id.strip():
        raise PayloadError(f"Issue record is missing an id: {record!r}")

    raw_status = record.get("status") or Status.OPEN.value
    if not isinstance(raw_status, str):
        raise PayloadError(f"Status on issue {issue_id} must be a string")
    raw_status = config.status_aliases.get(raw_status, raw_status)
    try:
        status = Status(raw_status)
    except ValueError:
        raise PayloadError(f"Unknown status {raw_status!r} on issue {issue_id}") from None

    labels = record.get("labels") or []
    if isinstance(labels, str):
        labels = [labels]
    if not isinstance(labels, (list, tuple, set, frozenset)):
        raise PayloadError(f"Labels on issue {issue_id} must be a list")

    assignee = record.get("assignee") or None
    return Issue(
        id=issue_id,
        title=str(record.get("title") or ""),
        status=status,
        priority=_parse_priority(record.get("priority"), config),
        assignee=str(assignee) if assignee is not None else None,
        labels=frozenset(str(label) for label in labels),
    )


def _parse_priority(value: Any, config: EngineConfig) -> int:
    if value is None or isinstance(value, bool):
        return config.default_priority
    try:
        priority = int(value)
    except (TypeError, ValueError):
        return config.default_priority
    return config.clamp_priority(priority)


def _endpoint(record: dict, key: str) -> str:
    value = record.get(key)
    if not isinstance(value, str) or not value:
        raise PayloadError(f"Edge record is missing '{key}': {record!r}")
    return value


def _list_field(component: dict, key: str) -> list:
    value = component.get(key) or []
    if not isinstance(value, list):
        raise PayloadError(f"Component '{key}' must be a list")
    return value


def _field(record: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None
