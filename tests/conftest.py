"""Pytest configuration and shared fixtures."""

import pytest
import json
from pathlib import Path
from typing import Dict, Any

from flow_composite.composite import (
    CompositeBuilder,
    Connection,
    SemanticGraph,
    SemanticNode,
    SubnodeAttachment,
)
from flow_composite.config import BuildConfig


PLAIN = "n8n-nodes-base.set"
TRIGGER = "n8n-nodes-base.manualTrigger"
IF = "n8n-nodes-base.if"
SWITCH = "n8n-nodes-base.switch"
MERGE = "n8n-nodes-base.merge"
LOOP = "n8n-nodes-base.splitInBatches"
STICKY = "n8n-nodes-base.stickyNote"


def make_node(
    name: str,
    node_type: str = PLAIN,
    outputs: Dict[str, list] | None = None,
    subnodes: list[tuple[str, str]] | None = None,
    **json_fields: Any,
) -> SemanticNode:
    """Build a SemanticNode; targets are names or (name, input_index) pairs."""
    slots = {}
    for slot, targets in (outputs or {}).items():
        slots[slot] = [
            Connection(target=t, target_input_index=0) if isinstance(t, str)
            else Connection(target=t[0], target_input_index=t[1])
            for t in targets
        ]
    return SemanticNode(
        name=name,
        type=node_type,
        json={"name": name, "type": node_type, **json_fields},
        outputs=slots,
        subnodes=[
            SubnodeAttachment(subnode_name=sub, connection_type=conn_type)
            for sub, conn_type in (subnodes or [])
        ],
    )


def make_graph(*nodes: SemanticNode) -> SemanticGraph:
    return SemanticGraph.from_nodes(list(nodes))


@pytest.fixture
def config() -> BuildConfig:
    """Fresh default build configuration."""
    return BuildConfig()


@pytest.fixture
def builder(config: BuildConfig) -> CompositeBuilder:
    """Composite builder instance."""
    return CompositeBuilder(config)


@pytest.fixture
def merge_graph() -> SemanticGraph:
    """T fans out to X and Y, both feed Merge, Merge continues to Z."""
    return make_graph(
        make_node("T", TRIGGER, {"output0": ["X", "Y"]}),
        make_node("X", outputs={"output0": [("Merge", 0)]}),
        make_node("Y", outputs={"output0": [("Merge", 1)]}),
        make_node("Merge", MERGE, {"output0": ["Z"]}),
        make_node("Z"),
    )


@pytest.fixture
def if_else_graph() -> SemanticGraph:
    """If/else whose branches converge at J."""
    return make_graph(
        make_node("T", TRIGGER, {"output0": ["C"]}),
        make_node("C", IF, {"output0": ["T1"], "output1": ["T2"]}),
        make_node("T1", outputs={"output0": ["J"]}),
        make_node("T2", outputs={"output0": ["J"]}),
        make_node("J"),
    )


@pytest.fixture
def loop_graph() -> SemanticGraph:
    """Batch loop with body B1 cycling back to L and done target D."""
    return make_graph(
        make_node("T", TRIGGER, {"output0": ["L"]}),
        make_node("L", LOOP, {"done": ["D"], "loop": ["B1"]}),
        make_node("B1", outputs={"output0": ["L"]}),
        make_node("D"),
    )


@pytest.fixture
def switch_graph() -> SemanticGraph:
    """Switch with three rules, the second case left unconnected."""
    return make_graph(
        make_node("T", TRIGGER, {"output0": ["S"]}),
        make_node(
            "S",
            SWITCH,
            {"case0": ["A"], "case2": ["B"]},
            parameters={"rules": {"values": [{}, {}, {}]}},
        ),
        make_node("A"),
        make_node("B"),
    )


@pytest.fixture
def sample_workflow() -> Dict[str, Any]:
    """Sample n8n workflow JSON for testing."""
    return {
        "name": "Nightly sync",
        "nodes": [
            {
                "name": "Schedule Trigger",
                "type": "n8n-nodes-base.scheduleTrigger",
                "typeVersion": 1.2,
                "position": [0, 0],
                "parameters": {},
            },
            {
                "name": "Fetch Items",
                "type": "n8n-nodes-base.httpRequest",
                "typeVersion": 4.2,
                "position": [200, 0],
                "parameters": {"url": "https://example.com/items"},
                "onError": "continueErrorOutput",
            },
            {
                "name": "Log Failure",
                "type": "n8n-nodes-base.noOp",
                "typeVersion": 1,
                "position": [400, 200],
                "parameters": {},
            },
            {
                "name": "Has Items?",
                "type": "n8n-nodes-base.if",
                "typeVersion": 2,
                "position": [400, 0],
                "parameters": {},
            },
            {
                "name": "Loop Over Items",
                "type": "n8n-nodes-base.splitInBatches",
                "typeVersion": 3,
                "position": [600, 0],
                "parameters": {},
            },
            {
                "name": "Process Item",
                "type": "n8n-nodes-base.set",
                "typeVersion": 3.4,
                "position": [800, 100],
                "parameters": {},
            },
            {
                "name": "No Items",
                "type": "n8n-nodes-base.noOp",
                "typeVersion": 1,
                "position": [600, 200],
                "parameters": {},
            },
            {
                "name": "Combine",
                "type": "n8n-nodes-base.merge",
                "typeVersion": 3,
                "position": [1000, 0],
                "parameters": {},
            },
            {
                "name": "Notify",
                "type": "n8n-nodes-base.slack",
                "typeVersion": 2.2,
                "position": [1200, 0],
                "parameters": {"text": "done"},
            },
            {
                "name": "Note",
                "type": "n8n-nodes-base.stickyNote",
                "typeVersion": 1,
                "position": [0, -200],
                "parameters": {"content": "Runs every night"},
            },
        ],
        "connections": {
            "Schedule Trigger": {"main": [[{"node": "Fetch Items", "type": "main", "index": 0}]]},
            "Fetch Items": {
                "main": [
                    [{"node": "Has Items?", "type": "main", "index": 0}],
                    [{"node": "Log Failure", "type": "main", "index": 0}],
                ]
            },
            "Has Items?": {
                "main": [
                    [{"node": "Loop Over Items", "type": "main", "index": 0}],
                    [{"node": "No Items", "type": "main", "index": 0}],
                ]
            },
            "Loop Over Items": {
                "main": [
                    [{"node": "Combine", "type": "main", "index": 0}],
                    [{"node": "Process Item", "type": "main", "index": 0}],
                ]
            },
            "Process Item": {"main": [[{"node": "Loop Over Items", "type": "main", "index": 0}]]},
            "No Items": {"main": [[{"node": "Combine", "type": "main", "index": 1}]]},
            "Combine": {"main": [[{"node": "Notify", "type": "main", "index": 0}]]},
        },
    }


@pytest.fixture
def agent_workflow() -> Dict[str, Any]:
    """Workflow with an AI agent and attached subnodes."""
    return {
        "nodes": [
            {"name": "Chat Trigger", "type": "@n8n/n8n-nodes-langchain.chatTrigger", "parameters": {}},
            {"name": "AI Agent", "type": "@n8n/n8n-nodes-langchain.agent", "parameters": {}},
            {"name": "OpenAI Model", "type": "@n8n/n8n-nodes-langchain.lmChatOpenAi", "parameters": {}},
            {"name": "Calculator", "type": "@n8n/n8n-nodes-langchain.toolCalculator", "parameters": {}},
        ],
        "connections": {
            "Chat Trigger": {"main": [[{"node": "AI Agent", "type": "main", "index": 0}]]},
            "OpenAI Model": {
                "ai_languageModel": [[{"node": "AI Agent", "type": "ai_languageModel", "index": 0}]]
            },
            "Calculator": {"ai_tool": [[{"node": "AI Agent", "type": "ai_tool", "index": 0}]]},
        },
    }


@pytest.fixture
def temp_workflow_file(tmp_path: Path, sample_workflow: Dict[str, Any]) -> Path:
    """Create a temporary workflow JSON file."""
    workflow_file = tmp_path / "nightly_sync.json"
    workflow_file.write_text(json.dumps(sample_workflow, indent=2))
    return workflow_file


class MockContext:
    """Mock MCP context for testing."""

    def __init__(self):
        self.messages = []

    async def info(self, message: str):
        """Mock info method."""
        self.messages.append(("info", message))

    async def error(self, message: str):
        """Mock error method."""
        self.messages.append(("error", message))


@pytest.fixture
def mock_context() -> MockContext:
    """Mock MCP context for testing tools."""
    return MockContext()
