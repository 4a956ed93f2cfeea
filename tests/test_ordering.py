"""Tests for blockplan.ordering."""

from blockplan.graph import DependencyGraph
from blockplan.models import Edge, Issue, Status
from blockplan.ordering import find_ready, order, topological_sort


def make_issue(id: str, status: Status = Status.OPEN, priority: int = 2) -> Issue:
    return Issue(id=id, title=f"Issue {id}", status=status, priority=priority)


def build(issues: list[Issue], *pairs: str) -> DependencyGraph:
    return DependencyGraph.build(issues, [Edge(*p.split(">")) for p in pairs])


class TestFindReady:
    def test_all_ready_when_no_edges(self):
        graph = build([make_issue("a"), make_issue("b")])
        assert [i.id for i in find_ready(graph)] == ["a", "b"]

    def test_only_roots_ready_in_chain(self):
        graph = build([make_issue(i) for i in "abc"], "a>b", "b>c")
        assert [i.id for i in find_ready(graph)] == ["a"]

    def test_closed_blocker_satisfies_dependency(self):
        graph = build([make_issue("a", status=Status.CLOSED), make_issue("b")], "a>b")
        assert [i.id for i in find_ready(graph)] == ["b"]

    def test_closed_issues_never_ready(self):
        graph = build([make_issue("a", status=Status.CLOSED), make_issue("b")])
        assert [i.id for i in find_ready(graph)] == ["b"]

    def test_in_progress_and_blocked_status_can_be_ready(self):
        issues = [make_issue("a", status=Status.IN_PROGRESS), make_issue("b", status=Status.BLOCKED)]
        assert [i.id for i in find_ready(build(issues))] == ["a", "b"]

    def test_partially_closed_blockers_still_block(self):
        issues = [make_issue("a", status=Status.CLOSED), make_issue("b"), make_issue("c")]
        graph = build(issues, "a>c", "b>c")
        assert [i.id for i in find_ready(graph)] == ["b"]


class TestTopologicalSort:
    def test_empty(self):
        assert topological_sort(build([])) == []

    def test_linear_chain(self):
        graph = build([make_issue(i) for i in "cba"], "a>b", "b>c")
        assert topological_sort(graph) == ["a", "b", "c"]

    def test_independent_issues_keep_input_order(self):
        graph = build([make_issue(i) for i in "xyz"])
        assert topological_sort(graph) == ["x", "y", "z"]

    def test_priority_breaks_ties(self):
        issues = [make_issue("low", priority=4), make_issue("urgent", priority=0), make_issue("mid")]
        assert topological_sort(build(issues)) == ["urgent", "mid", "low"]

    def test_newly_freed_urgent_issue_jumps_ahead(self):
        # b (P0) is freed by a and must come before c (P3), which was free earlier
        issues = [make_issue("a", priority=1), make_issue("c", priority=3), make_issue("b", priority=0)]
        graph = build(issues, "a>b")
        assert topological_sort(graph) == ["a", "b", "c"]

    def test_diamond(self):
        graph = build([make_issue(i) for i in "abcd"], "a>b", "a>c", "b>d", "c>d")
        assert topological_sort(graph) == ["a", "b", "c", "d"]

    def test_closed_blockers_still_order_first(self):
        issues = [make_issue("b"), make_issue("a", status=Status.CLOSED)]
        graph = build(issues, "a>b")
        assert topological_sort(graph) == ["a", "b"]

    def test_cycle_members_are_still_ordered(self):
        issues = [make_issue(i) for i in "abc"]
        graph = build(issues, "a>b", "b>a", "b>c")
        result = topological_sort(graph)
        assert sorted(result) == ["a", "b", "c"]
        assert result.index("b") < result.index("c")


class TestOrder:
    def test_returns_issue_objects(self):
        issues = [make_issue("a"), make_issue("b")]
        ordering = order(build(issues, "a>b"))

        assert ordering.completion_order == tuple(issues)
        assert ordering.ready_items == (issues[0],)

    def test_is_deterministic(self):
        issues = [make_issue(str(n), priority=n % 3) for n in range(20)]
        pairs = [f"{n}>{n + 5}" for n in range(15)]
        first = order(build(issues, *pairs))
        second = order(build(list(issues), *pairs))
        assert first == second
