"""Data models for the blocking dependency engine."""

from dataclasses import dataclass, field
from enum import Enum


class Status(Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    CLOSED = "closed"


@dataclass(frozen=True)
class Issue:
    id: str
    title: str = ""
    status: Status = Status.OPEN
    priority: int = 2  # 0-4, lower = higher priority
    assignee: str | None = None
    labels: frozenset[str] = field(default_factory=frozenset)

    def is_open(self) -> bool:
        """Check if issue is in an open state (not closed)."""
        return self.status != Status.CLOSED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority,
            "assignee": self.assignee,
            "labels": sorted(self.labels),
        }


@dataclass(frozen=True)
class Edge:
    """`source` blocks `target`: target is not actionable until source closes."""

    source: str
    target: str

    def as_dict(self) -> dict[str, str]:
        return {"from": self.source, "to": self.target}


class DiagnosticReason(Enum):
    UNKNOWN_ENDPOINT = "unknown-endpoint"
    SELF_LOOP = "self-loop"
    CYCLE = "cycle"


@dataclass(frozen=True)
class Diagnostic:
    reason: DiagnosticReason
    edge: Edge
    cycle: tuple[str, ...] = ()  # members in blocking order, cycle edges only

    @property
    def message(self) -> str:
        link = f"{self.edge.source} -> {self.edge.target}"
        if self.reason == DiagnosticReason.SELF_LOOP:
            return f"Ignored self-blocking link {link}"
        if self.reason == DiagnosticReason.UNKNOWN_ENDPOINT:
            return f"Ignored link {link}: unknown issue"
        members = " -> ".join((*self.cycle, self.cycle[0])) if self.cycle else link
        return f"Ignored cyclic link {link} (cycle: {members})"

    def to_dict(self) -> dict:
        data: dict = {"reason": self.reason.value, "edge": self.edge.as_dict()}
        if self.cycle:
            data["cycle"] = list(self.cycle)
        return data
