"""Tests for flow graph loading and merging."""

import json
import logging

import pytest

from app.core.config import settings
from triage.conversation.flow_graph import (
    EndNode,
    FlowGraph,
    FlowLoadError,
    FunctionNode,
    MultipleChoiceNode,
    OpenEndedNode,
    UnsupportedNode,
    YesNoNode,
    load_flow_directory,
    load_flow_file,
    parse_node,
)
from triage.decision_engine.symptom_classifier import CATEGORY_START_NODES


class TestParseNode:
    """Test node parsing from raw dictionaries."""

    def test_open_ended_node(self):
        node = parse_node("greeting", {"type": "open-ended", "question": "您好", "next": "classify"})

        assert isinstance(node, OpenEndedNode)
        assert node.id == "greeting"
        assert node.question == "您好"
        assert node.next == "classify"
        assert node.specialty is None

    def test_yes_no_node(self):
        node = parse_node("fever", {
            "type": "yes_no",
            "question": "發燒？",
            "nextIfYes": "a",
            "nextIfNo": "b"
        })

        assert isinstance(node, YesNoNode)
        assert node.next_if_yes == "a"
        assert node.next_if_no == "b"

    def test_multiple_choice_node(self):
        node = parse_node("region", {
            "type": "multiple_choice",
            "question": "地區？",
            "options": ["1", 2],
            "optionLabels": {"1": "北部"},
            "next": {"1": "north", "2": "south"}
        })

        assert isinstance(node, MultipleChoiceNode)
        assert node.options == ("1", "2")
        assert node.option_labels["1"] == "北部"
        assert node.next["2"] == "south"

    def test_multiple_choice_node_is_read_only(self):
        node = parse_node("region", {
            "type": "multiple_choice",
            "options": ["1"],
            "next": {"1": "north"}
        })

        with pytest.raises(TypeError):
            node.next["1"] = "elsewhere"

    def test_function_node(self):
        node = parse_node("classify", {"type": "function", "handler": "classifySymptomHandler"})

        assert isinstance(node, FunctionNode)
        assert node.handler == "classifySymptomHandler"
        assert node.question == ""

    def test_end_node(self):
        node = parse_node("end", {"type": "end", "question": "謝謝"})

        assert isinstance(node, EndNode)
        assert node.question == "謝謝"

    def test_specialty_from_meta(self):
        node = parse_node("gi", {"type": "open-ended", "question": "x", "meta": {"specialty": "腸胃科"}})

        assert node.specialty == "腸胃科"

    def test_unknown_type(self):
        node = parse_node("odd", {"type": "slider", "question": "?"})

        assert isinstance(node, UnsupportedNode)
        assert node.raw_type == "slider"


class TestFlowGraph:
    """Test merging node collections."""

    def test_load_single_source(self, sample_flow):
        graph = FlowGraph.load([sample_flow])

        assert len(graph) == len(sample_flow["nodes"])
        assert "greeting" in graph
        assert "missing" not in graph
        assert graph.get("missing") is None
        assert graph.get(None) is None

    def test_later_source_wins(self, caplog):
        first = {"nodes": {"a": {"type": "end", "question": "first"}}}
        second = {"nodes": {"a": {"type": "end", "question": "second"}, "b": {"type": "end"}}}

        with caplog.at_level(logging.WARNING):
            graph = FlowGraph.load([first, second])

        assert graph.get("a").question == "second"
        assert set(graph.node_ids) == {"a", "b"}
        assert "overridden" in caplog.text

    def test_sources_without_nodes_are_skipped(self):
        graph = FlowGraph.load([{}, {"nodes": {}}, {"nodes": {"a": {"type": "end"}}}])

        assert graph.node_ids == ["a"]

    def test_dangling_references(self):
        graph = FlowGraph.load([{
            "nodes": {
                "a": {"type": "open-ended", "next": "ghost"},
                "b": {"type": "yes_no", "nextIfYes": "a", "nextIfNo": "end"},
                "c": {"type": "multiple_choice", "options": ["1"], "next": {"1": "nowhere"}}
            }
        }])

        assert sorted(graph.dangling_references("end")) == [("a", "ghost"), ("c", "nowhere")]

    def test_sample_flow_has_no_dangling_references(self, flow_graph):
        assert flow_graph.dangling_references("end") == []


class TestFlowFiles:
    """Test loading flow files from disk."""

    def test_load_json_file(self, tmp_path, sample_flow):
        path = tmp_path / "flow.json"
        path.write_text(json.dumps(sample_flow, ensure_ascii=False), encoding="utf-8")

        data = load_flow_file(path)

        assert data["nodes"]["greeting"]["next"] == "classify_symptom"

    def test_load_yaml_file(self, tmp_path):
        path = tmp_path / "flow.yaml"
        path.write_text(
            "nodes:\n"
            "  neck_mass_start:\n"
            "    type: open-ended\n"
            "    question: 腫塊多久了？\n"
            "    next: end\n",
            encoding="utf-8"
        )

        data = load_flow_file(path)

        assert data["nodes"]["neck_mass_start"]["question"] == "腫塊多久了？"

    def test_malformed_json_raises(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(FlowLoadError):
            load_flow_file(path)

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(FlowLoadError):
            load_flow_file(path)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FlowLoadError):
            load_flow_file(tmp_path / "absent.json")

    def test_directory_merges_in_sorted_order(self, tmp_path):
        (tmp_path / "b_override.json").write_text(
            json.dumps({"nodes": {"end": {"type": "end", "question": "override"}}}),
            encoding="utf-8"
        )
        (tmp_path / "a_base.json").write_text(
            json.dumps({"nodes": {"end": {"type": "end", "question": "base"}, "x": {"type": "end"}}}),
            encoding="utf-8"
        )
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

        graph = load_flow_directory(tmp_path)

        assert len(graph) == 2
        assert graph.get("end").question == "override"

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(FlowLoadError):
            load_flow_directory(tmp_path / "nope")


class TestBundledFlows:
    """Test the flow set shipped with the package."""

    @pytest.fixture
    def bundled_graph(self):
        return load_flow_directory(settings.CONVERSATION_FLOWS_PATH)

    def test_entry_and_terminal_nodes(self, bundled_graph):
        assert isinstance(bundled_graph.get("greeting"), OpenEndedNode)
        assert isinstance(bundled_graph.get("classify_symptom"), FunctionNode)
        assert isinstance(bundled_graph.get("end"), EndNode)

    def test_every_category_has_a_start_node(self, bundled_graph):
        for start_node in CATEGORY_START_NODES.values():
            assert start_node in bundled_graph

    def test_clinic_nodes_present(self, bundled_graph):
        for node_id in settings.clinic_node_ids:
            assert isinstance(bundled_graph.get(node_id), MultipleChoiceNode)

    def test_no_dangling_references(self, bundled_graph):
        assert bundled_graph.dangling_references("end") == []
