"""Composite package: semantic graph to composite tree transformation.

This package reconstructs structured control flow (sequence, if/else,
switch/case, merge, loop, error handler) from a workflow's node graph.

Classes:
    CompositeBuilder: Build a composite forest from a semantic graph
    BuildConfig: Construct type tables and limits (see flow_composite.config)

    SemanticGraph: Input graph of workflow nodes keyed by name
    SemanticNode: One workflow node with its output slots
    Connection: Edge into a numbered input of another node

    Leaf, VariableReference, Sequence, FanOut, Branch, Merge, Loop,
    InputConnection: Composite tree node variants
    BuildResult: Built forest with variable names and warnings

Functions:
    build_composite: Build a forest with a fresh builder
    graph_from_workflow: Convert n8n workflow JSON to a semantic graph
    to_variable_name: Convert a node name to a safe identifier
"""

from .builder import CompositeBuilder, build_composite, check_structure
from .errors import (
    BuildWarning,
    CompositeBuildError,
    CycleError,
    NamingCollisionError,
    StructuralError,
    WorkflowFormatError,
)
from .naming import (
    ConstructKind,
    VariableNamer,
    construct_kind,
    error_output_targets,
    extract_slot_index,
    has_error_output,
    is_variable_candidate,
    primary_output_targets,
    to_variable_name,
)
from .semantic import (
    AiConnectionType,
    Connection,
    SemanticGraph,
    SemanticNode,
    SubnodeAttachment,
    graph_from_workflow,
    is_full_workflow_format,
)
from .tree import (
    Branch,
    BuildResult,
    FanOut,
    InputConnection,
    Leaf,
    Loop,
    Merge,
    Sequence,
    VariableReference,
)

__all__ = [
    "CompositeBuilder",
    "build_composite",
    "check_structure",
    "BuildWarning",
    "CompositeBuildError",
    "CycleError",
    "NamingCollisionError",
    "StructuralError",
    "WorkflowFormatError",
    "ConstructKind",
    "VariableNamer",
    "construct_kind",
    "error_output_targets",
    "extract_slot_index",
    "has_error_output",
    "is_variable_candidate",
    "primary_output_targets",
    "to_variable_name",
    "AiConnectionType",
    "Connection",
    "SemanticGraph",
    "SemanticNode",
    "SubnodeAttachment",
    "graph_from_workflow",
    "is_full_workflow_format",
    "Branch",
    "BuildResult",
    "FanOut",
    "InputConnection",
    "Leaf",
    "Loop",
    "Merge",
    "Sequence",
    "VariableReference",
]
