"""Tests for blockplan.payload."""

import json
from pathlib import Path

import pytest
import yaml

from blockplan.config import EngineConfig
from blockplan.models import Edge, Status
from blockplan.payload import GraphPayload, PayloadError, dump_payload, load_payload, parse_payload


class TestCanonicalPayload:
    def test_parses_issues_and_edges(self):
        payload = parse_payload(
            {
                "issues": [
                    {
                        "id": "bp-1",
                        "title": "Schema",
                        "status": "in_progress",
                        "priority": 0,
                        "assignee": "alice",
                        "labels": ["db", "api"],
                    },
                    {"id": "bp-2", "title": "Endpoint"},
                ],
                "edges": [{"from": "bp-1", "to": "bp-2"}],
            }
        )

        first, second = payload.issues
        assert first.status == Status.IN_PROGRESS
        assert first.priority == 0
        assert first.assignee == "alice"
        assert first.labels == frozenset({"db", "api"})
        assert payload.edges == (Edge("bp-1", "bp-2"),)
        assert second.status == Status.OPEN

    def test_missing_optional_fields_get_defaults(self):
        payload = parse_payload({"issues": [{"id": "bp-1"}], "edges": []})

        issue = payload.issues[0]
        assert issue.title == ""
        assert issue.status == Status.OPEN
        assert issue.priority == 2
        assert issue.assignee is None
        assert issue.labels == frozenset()

    def test_missing_edges_key_means_no_edges(self):
        assert parse_payload({"issues": [{"id": "a"}]}).edges == ()

    def test_configured_default_priority(self):
        payload = parse_payload({"issues": [{"id": "a"}]}, EngineConfig(default_priority=3))
        assert payload.issues[0].priority == 3

    def test_non_numeric_priority_uses_default(self):
        payload = parse_payload({"issues": [{"id": "a", "priority": "urgent"}]})
        assert payload.issues[0].priority == 2

    def test_numeric_string_priority(self):
        payload = parse_payload({"issues": [{"id": "a", "priority": "1"}]})
        assert payload.issues[0].priority == 1

    def test_priority_is_clamped(self):
        payload = parse_payload({"issues": [{"id": "a", "priority": 9}, {"id": "b", "priority": -2}]})
        assert [i.priority for i in payload.issues] == [4, 0]

    def test_done_status_alias(self):
        payload = parse_payload({"issues": [{"id": "a", "status": "done"}]})
        assert payload.issues[0].status == Status.CLOSED

    def test_custom_status_alias(self):
        config = EngineConfig(status_aliases={"wip": "in_progress"})
        payload = parse_payload({"issues": [{"id": "a", "status": "wip"}]}, config)
        assert payload.issues[0].status == Status.IN_PROGRESS

    def test_single_label_string(self):
        payload = parse_payload({"issues": [{"id": "a", "labels": "ui"}]})
        assert payload.issues[0].labels == frozenset({"ui"})


class TestMalformedPayload:
    @pytest.mark.parametrize(
        "data",
        [
            None,
            "issues",
            {"edges": []},
            {"issues": {"a": {}}, "edges": []},
            {"issues": [], "edges": {"from": "a"}},
            {"issues": ["a"], "edges": []},
            {"issues": [{"title": "no id"}], "edges": []},
            {"issues": [{"id": ""}], "edges": []},
            {"issues": [{"id": "a"}], "edges": [{"from": "a"}]},
            {"issues": [{"id": "a"}], "edges": ["a>b"]},
            {"issues": [{"id": "a", "status": "wontfix"}], "edges": []},
            {"issues": [{"id": "a", "labels": 3}], "edges": []},
        ],
    )
    def test_rejects(self, data):
        with pytest.raises(PayloadError):
            parse_payload(data)

    def test_rejects_duplicate_ids(self):
        with pytest.raises(PayloadError, match="Duplicate issue id: a"):
            parse_payload({"issues": [{"id": "a"}, {"id": "a"}], "edges": []})

    def test_unknown_endpoints_are_not_payload_errors(self):
        payload = parse_payload({"issues": [{"id": "a"}], "edges": [{"from": "a", "to": "zzz"}]})
        assert payload.edges == (Edge("a", "zzz"),)


class TestComponentPayload:
    def test_beads_orientation(self):
        components = [
            {
                "Issues": [
                    {"id": "v", "title": "Versioning", "status": "open", "priority": 1},
                    {"id": "p", "title": "Packaging", "status": "open", "priority": 1},
                ],
                "Dependencies": [{"issue_id": "p", "depends_on_id": "v", "type": "blocks"}],
            }
        ]
        payload = parse_payload(components)

        assert [i.id for i in payload.issues] == ["v", "p"]
        assert payload.edges == (Edge("v", "p"),)

    def test_from_to_records_and_blocked_by(self):
        components = [
            {
                "Issues": [{"id": "a"}, {"id": "b"}, {"id": "c"}],
                "Dependencies": [
                    {"from_id": "a", "to_id": "b", "type": "blocks"},
                    {"FromID": "c", "ToID": "b", "dependency_type": "blocked-by"},
                ],
            }
        ]
        payload = parse_payload(components)
        assert payload.edges == (Edge("a", "b"), Edge("b", "c"))

    def test_ignores_non_blocking_types(self):
        components = [
            {
                "Issues": [{"id": "epic"}, {"id": "a"}],
                "Dependencies": [
                    {"issue_id": "a", "depends_on_id": "epic", "type": "parent-child"},
                    {"from_id": "a", "to_id": "epic", "type": "related"},
                    {"from_id": "a", "to_id": "epic"},
                ],
            }
        ]
        assert parse_payload(components).edges == ()

    def test_issue_map_and_merging_across_components(self):
        components = [
            {"IssueMap": {"a": {"title": "First"}}, "Issues": [{"id": "b"}]},
            {"Issues": [{"id": "a", "title": "Second", "status": "closed"}]},
        ]
        payload = parse_payload(components)

        assert [i.id for i in payload.issues] == ["a", "b"]
        assert payload.issues[0].title == "Second"
        assert payload.issues[0].status == Status.CLOSED

    def test_empty_component_list(self):
        assert parse_payload([]) == GraphPayload()

    def test_blocking_dependency_without_endpoint(self):
        with pytest.raises(PayloadError, match="missing an endpoint"):
            parse_payload([{"Issues": [{"id": "a"}], "Dependencies": [{"from_id": "a", "type": "blocks"}]}])

    def test_rejects_non_mapping_component(self):
        with pytest.raises(PayloadError):
            parse_payload([["a"]])


class TestFiles:
    def test_load_yaml(self, tmp_path: Path):
        path = tmp_path / "graph.yml"
        path.write_text(
            yaml.safe_dump({"issues": [{"id": "a"}, {"id": "b"}], "edges": [{"from": "a", "to": "b"}]})
        )
        payload = load_payload(path)
        assert payload.edges == (Edge("a", "b"),)

    def test_load_json(self, tmp_path: Path):
        path = tmp_path / "graph.json"
        path.write_text(json.dumps([{"Issues": [{"id": "a"}], "Dependencies": []}]))
        assert [i.id for i in load_payload(path).issues] == ["a"]

    def test_load_unparseable(self, tmp_path: Path):
        path = tmp_path / "graph.yml"
        path.write_text("issues: [unclosed")
        with pytest.raises(PayloadError, match="Cannot parse"):
            load_payload(path)

    @pytest.mark.parametrize("name", ["graph.yml", "graph.json"])
    def test_dump_writes_canonical_shape(self, tmp_path: Path, name: str):
        original = parse_payload(
            {
                "issues": [{"id": "a", "labels": ["x"], "status": "closed", "priority": 1}, {"id": "b"}],
                "edges": [{"from": "a", "to": "b"}],
            }
        )
        path = tmp_path / name
        dump_payload(original, path)

        assert load_payload(path) == original
        if name.endswith(".json"):
            assert json.loads(path.read_text())["edges"] == [{"from": "a", "to": "b"}]
