"""Issue filters applied to a payload before analysis."""

from dataclasses import dataclass, replace

from blockplan.models import Issue
from blockplan.payload import GraphPayload


@dataclass(frozen=True)
class IssueFilter:
    priority: int | None = None
    assignee: str | None = None  # substring match
    label: str | None = None

    def is_empty(self) -> bool:
        return self.priority is None and not self.assignee and not self.label

    def matches(self, issue: Issue) -> bool:
        if self.priority is not None and issue.priority != self.priority:
            return False
        if self.assignee and (not issue.assignee or self.assignee not in issue.assignee):
            return False
        if self.label and self.label not in issue.labels:
            return False
        return True

    def apply(self, payload: GraphPayload) -> GraphPayload:
        """Keep matching issues and the edges between them.

        Edges touching a filtered-out issue are dropped quietly: the issue
        exists, it is just out of view.
        """
        if self.is_empty():
            return payload
        kept = tuple(issue for issue in payload.issues if self.matches(issue))
        kept_ids = {issue.id for issue in kept}
        all_ids = payload.issue_ids()
        edges = tuple(
            edge
            for edge in payload.edges
            if (edge.source in kept_ids or edge.source not in all_ids)
            and (edge.target in kept_ids or edge.target not in all_ids)
        )
        return replace(payload, issues=kept, edges=edges)
