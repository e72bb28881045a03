"""Unit tests for construct handler helpers and build configuration."""

import pytest

from flow_composite.composite.handlers import loop_slots, merge_input_count, switch_case_slots
from flow_composite.config import BuildConfig, DEFAULT_BUILD_CONFIG, get_build_config

from conftest import LOOP, MERGE, SWITCH, TRIGGER, make_graph, make_node


class TestSwitchCaseSlots:
    """Test switch case enumeration."""

    def test_rule_count_includes_unwired_cases(self):
        node = make_node("S", SWITCH, {"case0": ["A"]}, parameters={"rules": {"values": [{}, {}, {}]}})
        assert switch_case_slots(node) == [("case0", "case0"), ("case1", "case1"), ("case2", "case2")]

    def test_wired_index_beyond_rules(self):
        node = make_node("S", SWITCH, {"case3": ["A"]})
        assert [label for label, _ in switch_case_slots(node)] == ["case0", "case1", "case2", "case3"]

    def test_number_outputs_parameter(self):
        node = make_node("S", SWITCH, parameters={"numberOutputs": 2})
        assert len(switch_case_slots(node)) == 2

    def test_generic_output_slots_accepted(self):
        node = make_node("S", SWITCH, {"output0": ["A"], "output1": ["B"]})
        assert switch_case_slots(node) == [("case0", "output0"), ("case1", "output1")]

    def test_fallback_last(self):
        node = make_node("S", SWITCH, {"fallback": ["F"], "case0": ["A"]})
        assert switch_case_slots(node)[-1] == ("fallback", "fallback")


class TestMergeInputCount:
    """Test merge input sizing."""

    def test_at_least_two(self):
        graph = make_graph(make_node("M", MERGE))
        assert merge_input_count(graph.nodes["M"], graph) == 2

    def test_configured_inputs(self):
        graph = make_graph(make_node("M", MERGE, parameters={"numberInputs": 4}))
        assert merge_input_count(graph.nodes["M"], graph) == 4

    def test_wired_index_wins(self):
        graph = make_graph(
            make_node("T", TRIGGER, {"output0": [("M", 4)]}),
            make_node("M", MERGE),
        )
        assert merge_input_count(graph.nodes["M"], graph) == 5


class TestLoopSlots:
    """Test loop slot lookup."""

    def test_named_slots(self):
        node = make_node("L", LOOP, {"done": ["D"], "loop": ["B"]})
        assert loop_slots(node) == ("done", "loop")

    def test_generic_slots(self):
        node = make_node("L", LOOP, {"output0": ["D"], "output1": ["B"]})
        assert loop_slots(node) == ("output0", "output1")


class TestBuildConfig:
    """Test configuration loading."""

    def test_defaults(self):
        config = BuildConfig()
        assert config.merge_types == ["n8n-nodes-base.merge"]
        assert config.max_depth == 100
        assert config.reserved_suffix == "_node"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("FLOW_COMPOSITE_MERGE_TYPES", "acme.join, acme.merge")
        monkeypatch.setenv("FLOW_COMPOSITE_MAX_DEPTH", "12")

        config = get_build_config()
        assert config.merge_types == ["acme.join", "acme.merge"]
        assert config.max_depth == 12
        assert config.if_types == ["n8n-nodes-base.if"]

    def test_default_without_env(self, monkeypatch):
        import os

        for name in list(os.environ):
            if name.startswith("FLOW_COMPOSITE_"):
                monkeypatch.delenv(name)
        assert get_build_config() is DEFAULT_BUILD_CONFIG

    def test_invalid_max_depth(self, monkeypatch):
        monkeypatch.setenv("FLOW_COMPOSITE_MAX_DEPTH", "deep")
        with pytest.raises(ValueError):
            BuildConfig.from_env()
