"""Mutable traversal state for one composite build."""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from ..config import BuildConfig
from .errors import BuildWarning, StructuralError
from .naming import VariableNamer
from .semantic import SemanticGraph
from .tree import CompositeNode, Leaf, VariableReference


@dataclass
class PendingConnection:
    """Producer output to wire into a consumer input at root level."""
    consumer: str
    input_index: int
    producer: str
    output_slot: str


@dataclass
class PendingMergeDownstream:
    """Merge node declared at root level together with its continuation."""
    merge: Leaf
    downstream: CompositeNode | None


@dataclass
class BuildContext:
    """State threaded through every recursive call of one build.

    Never shared between builds; the builder creates a fresh one per call.
    """
    graph: SemanticGraph
    config: BuildConfig
    names: VariableNamer
    visited: set[str] = field(default_factory=set)
    declared: dict[str, Leaf] = field(default_factory=dict)
    in_branch: bool = False
    pending_connections: list[PendingConnection] = field(default_factory=list)
    pending_merge_downstreams: dict[str, PendingMergeDownstream] = field(default_factory=dict)
    deferred_merges: set[str] = field(default_factory=set)
    open_loops: set[str] = field(default_factory=set)
    depth: int = 0
    warnings: list[BuildWarning] = field(default_factory=list)

    def mark_visited(self, node_name: str) -> None:
        if node_name in self.visited:
            raise StructuralError("node visited twice in one build", node_name)
        self.visited.add(node_name)

    def declare(self, leaf: Leaf) -> None:
        self.declared[leaf.node.name] = leaf

    def reference(self, node_name: str) -> VariableReference:
        if node_name not in self.declared:
            raise StructuralError("reference to a node that was never declared", node_name)
        return VariableReference(var_name=self.names.assign(node_name), node_name=node_name)

    def defer_merge(self, merge: Leaf, downstream: CompositeNode | None) -> None:
        """Register a merge for root-level emission together with its continuation."""
        name = merge.node.name
        if name in self.deferred_merges:
            raise StructuralError("merge deferred twice in one build", name)
        self.deferred_merges.add(name)
        self.pending_merge_downstreams[name] = PendingMergeDownstream(merge=merge, downstream=downstream)

    def defer_connection(self, consumer: str, input_index: int, producer: str, output_slot: str) -> None:
        self.pending_connections.append(
            PendingConnection(
                consumer=consumer,
                input_index=input_index,
                producer=producer,
                output_slot=output_slot,
            )
        )

    @contextmanager
    def branch(self) -> Iterator[None]:
        previous = self.in_branch
        self.in_branch = True
        try:
            yield
        finally:
            self.in_branch = previous

    @contextmanager
    def root_scope(self) -> Iterator[None]:
        previous = self.in_branch
        self.in_branch = False
        try:
            yield
        finally:
            self.in_branch = previous

    @contextmanager
    def loop_body(self, loop_name: str) -> Iterator[None]:
        self.open_loops.add(loop_name)
        try:
            yield
        finally:
            self.open_loops.discard(loop_name)

    @contextmanager
    def descend(self, node_name: str) -> Iterator[None]:
        if self.depth >= self.config.max_depth:
            raise StructuralError(
                f"construct nesting exceeds max_depth={self.config.max_depth}", node_name
            )
        self.depth += 1
        try:
            yield
        finally:
            self.depth -= 1
