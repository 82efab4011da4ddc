"""Unit tests for turning raw flow JSON into a Flow."""

import json

import pytest

from core.errors import ValidationError
from graph.preprocess import load_json, normalize_raw_to_flow
from graph.schema import NodeType


class TestNormalizeRawToFlow:
    """Tests for normalize_raw_to_flow."""

    def test_camel_case_keys_are_accepted(self):
        """
        GIVEN a flow exported with camelCase keys
        WHEN it is normalised
        THEN fields land on their snake_case counterparts
        """
        raw = {
            "name": "Survey",
            "isActive": False,
            "nodes": [
                {"id": "r", "aiMessage": "Hi (name)", "nodeType": "start", "isRoot": True},
                {"id": "x", "aiMessage": "Thanks", "nodeType": "end", "outcome": "done"},
            ],
            "edges": [{"id": "e", "fromNodeId": "r", "toNodeId": "x", "conditionValue": "ok"}],
        }

        flow = normalize_raw_to_flow(raw)

        assert flow.is_active is False
        assert flow.root.id == "r"
        assert flow.nodes["x"].node_type is NodeType.END
        assert flow.edges["e"].to_node_id == "x"

    def test_id_keyed_objects_are_accepted(self):
        raw = {
            "name": "Survey",
            "nodes": {"r": {"ai_message": "Hi", "is_root": True}, "x": {"ai_message": "Bye"}},
            "edges": {"e": {"from_node_id": "r", "to_node_id": "x", "condition_value": "bye"}},
        }

        flow = normalize_raw_to_flow(raw)

        assert list(flow.nodes) == ["r", "x"]
        assert list(flow.edges) == ["e"]

    @pytest.mark.parametrize("raw", [{}, [], None, "flow"])
    def test_empty_or_non_object_input(self, raw):
        with pytest.raises(ValidationError):
            normalize_raw_to_flow(raw)

    def test_wrong_collection_type(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_raw_to_flow({"name": "x", "nodes": "r"})

        assert exc_info.value.field == "nodes"

    def test_model_errors_are_reported_with_location(self):
        raw = {"name": "x", "edges": [{"id": "e", "from_node_id": "r", "condition_value": "ok"}]}

        with pytest.raises(ValidationError) as exc_info:
            normalize_raw_to_flow(raw)

        assert exc_info.value.field.startswith("edges")

    def test_unknown_node_type(self):
        with pytest.raises(ValidationError):
            normalize_raw_to_flow({"name": "x", "nodes": [{"id": "r", "node_type": "voicemail"}]})


class TestLoadJson:
    def test_reads_utf8_file(self, tmp_path):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps({"name": "Café"}), encoding="utf-8")

        assert load_json(str(path)) == {"name": "Café"}
