"""Semantic graph model and n8n workflow JSON loader.

The semantic graph is the input of the composite builder: every workflow
node keyed by its unique name, with its output slots mapped to the
connections leaving them. The graph is read-only once built.
"""

from enum import Enum
from typing import Any, Iterator, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..config import BuildConfig, get_build_config
from .errors import StructuralError, WorkflowFormatError


ERROR_SLOT = "error"
FALLBACK_SLOT = "fallback"
LOOP_DONE_SLOT = "done"
LOOP_BODY_SLOT = "loop"


class AiConnectionType(str, Enum):
    """Non-main connection types used to attach subnodes."""
    LANGUAGE_MODEL = "ai_languageModel"
    TOOL = "ai_tool"
    MEMORY = "ai_memory"
    OUTPUT_PARSER = "ai_outputParser"
    TEXT_SPLITTER = "ai_textSplitter"
    EMBEDDING = "ai_embedding"
    VECTOR_STORE = "ai_vectorStore"
    RETRIEVER = "ai_retriever"
    DOCUMENT = "ai_document"
    RERANKER = "ai_reranker"


class Connection(BaseModel):
    """Edge from an output slot to another node's numbered input."""
    target: str
    target_input_index: int = 0


class SubnodeAttachment(BaseModel):
    """Auxiliary node wired into its parent through a non-main connection."""
    subnode_name: str
    connection_type: AiConnectionType


class SemanticNode(BaseModel):
    """One workflow node."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict, alias="json")
    outputs: dict[str, list[Connection]] = Field(default_factory=dict)
    subnodes: list[SubnodeAttachment] = Field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.name}: {self.type}"


class IncomingEdge(NamedTuple):
    """A producer slot feeding some node."""
    producer: str
    output_slot: str
    input_index: int


class SemanticGraph(BaseModel):
    """Ordered mapping of node name to node.

    Insertion order is significant: it is the tie-breaker for every
    traversal decision, so equal graphs always build equal trees.
    """
    nodes: dict[str, SemanticNode] = Field(default_factory=dict)

    _incoming: dict[str, list[IncomingEdge]] | None = PrivateAttr(default=None)

    @classmethod
    def from_nodes(cls, nodes: list[SemanticNode]) -> "SemanticGraph":
        return cls(nodes={node.name: node for node in nodes})

    def __contains__(self, name: str) -> bool:
        return name in self.nodes

    def iter_nodes(self) -> Iterator[SemanticNode]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)

    def require(self, name: str) -> SemanticNode:
        """Get a node by name, failing the build if it does not exist."""
        node = self.nodes.get(name)
        if node is None:
            raise StructuralError("connection references a node missing from the graph", name)
        return node

    def incoming(self, name: str) -> list[IncomingEdge]:
        """All main and error edges ending at `name`, in graph order."""
        if self._incoming is None:
            index: dict[str, list[IncomingEdge]] = {}
            for node in self.nodes.values():
                for slot, connections in node.outputs.items():
                    for conn in connections:
                        index.setdefault(conn.target, []).append(
                            IncomingEdge(node.name, slot, conn.target_input_index)
                        )
            self._incoming = index
        return self._incoming.get(name, [])

    def subnode_names(self) -> set[str]:
        return {
            attachment.subnode_name
            for node in self.nodes.values()
            for attachment in node.subnodes
        }

    def roots(self) -> list[SemanticNode]:
        """Nodes without incoming connections that are not subnodes."""
        subnodes = self.subnode_names()
        return [
            node for node in self.nodes.values()
            if node.name not in subnodes and not self.incoming(node.name)
        ]


# ===== WORKFLOW JSON LOADING =====

def main_output_count(node_json: dict[str, Any], config: BuildConfig) -> int:
    """Number of main outputs a node declares (error output excluded)."""
    node_type = node_json.get("type", "")
    if node_type in config.if_types or node_type in config.loop_types:
        return 2
    if node_type in config.switch_types:
        return switch_rule_count(node_json) + (1 if _has_extra_fallback(node_json) else 0)
    return 1


def switch_rule_count(node_json: dict[str, Any]) -> int:
    """Number of routing rules configured on a switch node."""
    parameters = node_json.get("parameters") or {}
    if "numberOutputs" in parameters:
        return int(parameters["numberOutputs"])
    rules = parameters.get("rules") or {}
    values = rules.get("values") if isinstance(rules, dict) else None
    return len(values) if isinstance(values, list) else 0


def _has_extra_fallback(node_json: dict[str, Any]) -> bool:
    options = (node_json.get("parameters") or {}).get("options") or {}
    return options.get("fallbackOutput") == "extra"


def _slot_name(node_json: dict[str, Any], index: int, config: BuildConfig) -> str:
    """Semantic slot name for a main output index."""
    node_type = node_json.get("type", "")
    if node_json.get("onError") == "continueErrorOutput":
        if index == main_output_count(node_json, config):
            return ERROR_SLOT
    if node_type in config.loop_types:
        return LOOP_DONE_SLOT if index == 0 else LOOP_BODY_SLOT
    if node_type in config.switch_types:
        if _has_extra_fallback(node_json) and index == switch_rule_count(node_json):
            return FALLBACK_SLOT
        return f"case{index}"
    return f"output{index}"


def _connection_target(source_name: str, target: Any) -> tuple[str, int]:
    """(target node, input index) of one connection entry."""
    if not isinstance(target, dict) or not isinstance(target.get("node"), str):
        raise WorkflowFormatError(f"Connection from {source_name} needs a target 'node': {target!r}")
    try:
        input_index = int(target.get("index", 0))
    except (TypeError, ValueError):
        raise WorkflowFormatError(
            f"Connection from {source_name} has an invalid input index: {target.get('index')!r}"
        )
    if input_index < 0:
        raise WorkflowFormatError(f"Connection from {source_name} has a negative input index")
    return target["node"], input_index


def is_full_workflow_format(data: dict[str, Any]) -> bool:
    """Check if data is an n8n workflow (with nodes and connections)."""
    if not isinstance(data, dict):
        return False
    if "workflow" in data and isinstance(data["workflow"], dict):
        return True
    return "nodes" in data and isinstance(data.get("nodes"), list)


def graph_from_workflow(
    workflow: dict[str, Any],
    config: BuildConfig | None = None,
) -> SemanticGraph:
    """Convert n8n workflow JSON into a semantic graph.

    Args:
        workflow: Workflow with a ``nodes`` list and a ``connections`` map,
            optionally wrapped in ``{"workflow": {...}}``.
        config: Construct type tables; defaults to :func:`get_build_config`.

    Returns:
        SemanticGraph with nodes in workflow order.
    """
    config = config or get_build_config()

    if not is_full_workflow_format(workflow):
        raise WorkflowFormatError("Workflow must contain a 'nodes' list")
    if "workflow" in workflow and isinstance(workflow["workflow"], dict):
        workflow = workflow["workflow"]
        if not is_full_workflow_format(workflow):
            raise WorkflowFormatError("Wrapped workflow must contain a 'nodes' list")

    raw_nodes: dict[str, dict[str, Any]] = {}
    for raw in workflow["nodes"]:
        if not isinstance(raw, dict) or "name" not in raw or "type" not in raw:
            raise WorkflowFormatError(f"Node entry needs 'name' and 'type': {raw!r}")
        if raw["name"] in raw_nodes:
            raise WorkflowFormatError(f"Duplicate node name: {raw['name']}")
        raw_nodes[raw["name"]] = raw

    outputs: dict[str, dict[str, list[Connection]]] = {name: {} for name in raw_nodes}
    subnodes: dict[str, list[SubnodeAttachment]] = {name: [] for name in raw_nodes}

    connections = workflow.get("connections") or {}
    if not isinstance(connections, dict):
        raise WorkflowFormatError("Workflow 'connections' must be a mapping of node names")
    for source_name, by_type in connections.items():
        if source_name not in raw_nodes:
            raise WorkflowFormatError(f"Connections reference unknown node: {source_name}")
        if not isinstance(by_type, dict):
            raise WorkflowFormatError(f"Connections of {source_name} must be keyed by connection type")
        source_json = raw_nodes[source_name]

        for connection_type, slots in by_type.items():
            if not isinstance(slots or [], list):
                raise WorkflowFormatError(f"{connection_type} outputs of {source_name} must be a list")
            for output_index, targets in enumerate(slots or []):
                if not isinstance(targets or [], list):
                    raise WorkflowFormatError(
                        f"Output {output_index} of {source_name} must be a list of connections"
                    )
                for target in targets or []:
                    target_name, input_index = _connection_target(source_name, target)
                    if connection_type == "main":
                        slot = _slot_name(source_json, output_index, config)
                        outputs[source_name].setdefault(slot, []).append(
                            Connection(target=target_name, target_input_index=input_index)
                        )
                    else:
                        try:
                            ai_type = AiConnectionType(connection_type)
                        except ValueError:
                            raise WorkflowFormatError(
                                f"Unsupported connection type '{connection_type}' on {source_name}"
                            )
                        if target_name not in subnodes:
                            raise WorkflowFormatError(
                                f"Subnode {source_name} attached to unknown node: {target_name}"
                            )
                        subnodes[target_name].append(
                            SubnodeAttachment(subnode_name=source_name, connection_type=ai_type)
                        )

    nodes = [
        SemanticNode(
            name=name,
            type=raw["type"],
            data=raw,
            outputs=outputs[name],
            subnodes=subnodes[name],
        )
        for name, raw in raw_nodes.items()
    ]
    return SemanticGraph.from_nodes(nodes)
