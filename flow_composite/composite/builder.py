"""Composite builder: turns a semantic graph into a composite forest.

The build runs in three phases:

1. Structural checks (unknown targets, illegal cycles, merge inputs).
   Fatal problems raise before any tree is built.
2. A depth-first walk from every root node, dispatching on the
   construct kind of each node. Work that cannot be expressed in place
   (merge inputs from later producers, merges first reached inside a
   branch, secondary outputs) is recorded in the build context.
3. Resolution of the recorded work at root level, followed by an
   integrity check of the finished forest.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from functools import partial
from typing import Callable

from ..config import BuildConfig, get_build_config
from .context import BuildContext
from .errors import BuildWarning, CycleError, StructuralError
from .handlers import (
    build_error_handler,
    build_if_else,
    build_loop,
    build_merge,
    build_switch_case,
    build_targets,
    merge_input_count,
)
from .naming import (
    ConstructKind,
    VariableNamer,
    construct_kind,
    is_variable_candidate,
    output_index,
    primary_output,
)
from .semantic import ERROR_SLOT, Connection, IncomingEdge, SemanticGraph, SemanticNode
from .tree import BuildResult, CompositeNode, FanOut, InputConnection, Leaf, Merge, Sequence


logger = logging.getLogger(__name__)

Handler = Callable[[SemanticNode, BuildContext, IncomingEdge | None], CompositeNode | None]


@dataclass
class _PlainFrame:
    """A declared plain node whose primary targets are being built."""
    leaf: Leaf
    slot: str
    connections: list[Connection]
    built: list[CompositeNode] = field(default_factory=list)
    position: int = 0

    def fold(self) -> CompositeNode:
        if not self.built:
            return self.leaf
        tail = self.built[0] if len(self.built) == 1 else FanOut(branches=self.built)
        return Sequence(head=self.leaf, tail=tail)


class CompositeBuilder:
    """Build composite trees from semantic graphs."""

    def __init__(self, config: BuildConfig | None = None):
        self.config = config or get_build_config()
        self._handlers: dict[ConstructKind, Handler] = {
            ConstructKind.PLAIN: self._build_plain,
            ConstructKind.IF_ELSE: partial(build_if_else, self),
            ConstructKind.SWITCH_CASE: partial(build_switch_case, self),
            ConstructKind.MERGE: partial(build_merge, self),
            ConstructKind.LOOP: partial(build_loop, self),
        }
        missing = set(ConstructKind) - set(self._handlers)
        if missing:
            raise NotImplementedError(f"No handler for construct kinds: {sorted(missing)}")

    def build(self, graph: SemanticGraph) -> BuildResult:
        """Build the composite forest for `graph`.

        Returns:
            BuildResult with one tree per root, resolved deferred work
            appended as extra roots, the node → identifier mapping and
            any warnings.

        Raises:
            StructuralError: unknown targets, dangling references or
                nesting beyond ``max_depth``.
            CycleError: a cycle that does not pass through a loop node.
            NamingCollisionError: two nodes share an identifier.
        """
        logger.debug("Building composite forest for %d nodes", len(graph))
        warnings = check_structure(graph, self.config)

        names = VariableNamer(self.config.reserved_suffix)
        for node in graph.iter_nodes():
            if is_variable_candidate(node, self.config):
                names.assign(node.name)

        ctx = BuildContext(graph=graph, config=self.config, names=names, warnings=warnings)

        try:
            roots = self._walk(ctx)
        except RecursionError:
            raise StructuralError("graph nesting exceeds the interpreter recursion limit")

        roots.extend(self._resolve_deferred(ctx))

        result = BuildResult(
            roots=roots,
            variable_names=names.as_dict(),
            warnings=ctx.warnings,
        )
        verify_forest(result, graph)
        names.verify()

        for warning in result.warnings:
            logger.warning("%s", warning)
        logger.debug("Built %d root trees", len(result.roots))
        return result

    # ===== TRAVERSAL =====

    def _walk(self, ctx: BuildContext) -> list[CompositeNode]:
        roots = []
        for node in ctx.graph.roots():
            tree = self.build_from(node.name, ctx)
            if tree is not None:
                roots.append(tree)

        # Nodes reachable only through a cycle or a secondary output
        subnodes = ctx.graph.subnode_names()
        for node in ctx.graph.iter_nodes():
            if node.name in ctx.visited or node.name in subnodes:
                continue
            logger.debug("Building unreached node %s as an extra root", node.name)
            tree = self.build_from(node.name, ctx)
            if tree is not None:
                roots.append(tree)
        return roots

    def build_from(
        self,
        name: str,
        ctx: BuildContext,
        incoming: IncomingEdge | None = None,
    ) -> CompositeNode | None:
        """Build the subtree starting at node `name`.

        Returns None when the path ends here without anything to emit:
        a loop body closing its cycle, or an edge deferred to root level.
        """
        node = ctx.graph.require(name)

        if name in ctx.open_loops:
            return None

        if name in ctx.visited:
            if incoming is not None and (
                construct_kind(node, self.config) is ConstructKind.MERGE
                or incoming.input_index != 0
            ):
                ctx.defer_connection(name, incoming.input_index, incoming.producer, incoming.output_slot)
                return None
            return ctx.reference(name)

        with ctx.descend(name):
            return self._handlers[construct_kind(node, self.config)](node, ctx, incoming)

    def declare_leaf(self, node: SemanticNode, ctx: BuildContext) -> Leaf:
        """Mark `node` visited and emit its single declaration."""
        ctx.mark_visited(node.name)
        leaf = Leaf(node=node)
        ctx.declare(leaf)

        for attachment in node.subnodes:
            key = attachment.connection_type.value
            if attachment.subnode_name in ctx.visited:
                child: CompositeNode = ctx.reference(attachment.subnode_name)
            else:
                subnode = ctx.graph.require(attachment.subnode_name)
                child = self.declare_leaf(subnode, ctx)
                # Main outputs of a subnode are wired at root level
                self._defer_secondary_outputs(subnode, None, ctx)
            leaf.subnodes.setdefault(key, []).append(child)

        leaf.error_handler = build_error_handler(self, node, ctx)
        return leaf

    def build_primary(self, node: SemanticNode, ctx: BuildContext) -> CompositeNode | None:
        """Continuation of an already-declared node along its primary output."""
        primary = primary_output(node)
        self._defer_secondary_outputs(node, primary, ctx)
        if primary is None:
            return None
        slot, connections = primary
        return build_targets(self, node, slot, connections, ctx)

    def _build_plain(
        self,
        node: SemanticNode,
        ctx: BuildContext,
        incoming: IncomingEdge | None = None,
    ) -> CompositeNode:
        # Plain nodes reached from plain nodes are walked with an explicit
        # stack, so recursion depth tracks construct nesting only.
        stack = [self._open_plain(node, ctx)]
        while True:
            frame = stack[-1]
            if frame.position < len(frame.connections):
                conn = frame.connections[frame.position]
                frame.position += 1
                if self._continues_chain(conn, ctx):
                    stack.append(self._open_plain(ctx.graph.require(conn.target), ctx))
                    continue
                edge = IncomingEdge(frame.leaf.node.name, frame.slot, conn.target_input_index)
                subtree = self.build_from(conn.target, ctx, edge)
                if subtree is not None:
                    frame.built.append(subtree)
                continue

            stack.pop()
            subtree = frame.fold()
            if not stack:
                return subtree
            stack[-1].built.append(subtree)

    def _open_plain(self, node: SemanticNode, ctx: BuildContext) -> _PlainFrame:
        leaf = self.declare_leaf(node, ctx)
        primary = primary_output(node)
        self._defer_secondary_outputs(node, primary, ctx)
        if primary is None:
            return _PlainFrame(leaf=leaf, slot="", connections=[])
        slot, connections = primary
        return _PlainFrame(leaf=leaf, slot=slot, connections=connections)

    def _continues_chain(self, conn: Connection, ctx: BuildContext) -> bool:
        target = ctx.graph.require(conn.target)
        return (
            target.name not in ctx.visited
            and target.name not in ctx.open_loops
            and construct_kind(target, self.config) is ConstructKind.PLAIN
        )

    def _defer_secondary_outputs(
        self,
        node: SemanticNode,
        primary: tuple[str, list[Connection]] | None,
        ctx: BuildContext,
    ) -> None:
        """Record wired outputs other than the primary and error slots."""
        primary_slot = primary[0] if primary else None
        for slot, connections in node.outputs.items():
            if slot in (primary_slot, ERROR_SLOT):
                continue
            for conn in connections:
                ctx.defer_connection(conn.target, conn.target_input_index, node.name, slot)

    # ===== RESOLUTION =====

    def _resolve_deferred(self, ctx: BuildContext) -> list[CompositeNode]:
        """Turn recorded work into root-level trees, each entry exactly once."""
        resolved: list[CompositeNode] = []

        while ctx.pending_merge_downstreams:
            merge_name = next(iter(ctx.pending_merge_downstreams))
            entry = ctx.pending_merge_downstreams.pop(merge_name)
            resolved.append(
                Merge(
                    merge=entry.merge,
                    inputs=[None] * merge_input_count(entry.merge.node, ctx.graph),
                    downstream=entry.downstream,
                )
            )

        while ctx.pending_connections:
            pending = ctx.pending_connections.pop(0)
            producer = ctx.graph.require(pending.producer)
            resolved.append(
                InputConnection(
                    producer=ctx.reference(pending.producer),
                    output_slot=pending.output_slot,
                    output_index=output_index(producer, pending.output_slot, self.config),
                    consumer=ctx.reference(pending.consumer),
                    input_index=pending.input_index,
                )
            )

        if resolved:
            logger.debug("Resolved %d deferred entries at root level", len(resolved))
        return resolved


# ===== STRUCTURE CHECKS =====

def check_structure(graph: SemanticGraph, config: BuildConfig) -> list[BuildWarning]:
    """Validate the graph properties the builder relies on.

    Raises on unknown targets and illegal cycles; returns warnings for
    merge nodes with fewer than two distinct inputs.
    """
    for node in graph.iter_nodes():
        for slot, connections in node.outputs.items():
            for conn in connections:
                if conn.target not in graph:
                    raise StructuralError(
                        f"output '{slot}' targets unknown node '{conn.target}'", node.name
                    )
        for attachment in node.subnodes:
            if attachment.subnode_name not in graph:
                raise StructuralError(
                    f"subnode '{attachment.subnode_name}' is missing from the graph", node.name
                )

    _check_cycles(graph, config)

    warnings = []
    for node in graph.iter_nodes():
        if construct_kind(node, config) is not ConstructKind.MERGE:
            continue
        input_count = len({edge.input_index for edge in graph.incoming(node.name)})
        if input_count < 2:
            warnings.append(
                BuildWarning(
                    code="MERGE_SINGLE_INPUT",
                    message=(
                        f"'{node.name}' has only {input_count} input connection(s). "
                        "Merge nodes require at least 2 inputs."
                    ),
                    node_name=node.name,
                )
            )
    return warnings


def _check_cycles(graph: SemanticGraph, config: BuildConfig) -> None:
    """Every cycle must pass through a loop node."""
    loops = {
        node.name for node in graph.iter_nodes()
        if construct_kind(node, config) is ConstructKind.LOOP
    }

    def successors(name: str) -> list[str]:
        return [
            conn.target
            for connections in graph.nodes[name].outputs.values()
            for conn in connections
            if conn.target not in loops
        ]

    in_progress: set[str] = set()
    done: set[str] = set()
    for start in graph.nodes:
        if start in loops or start in done:
            continue
        stack = [(start, iter(successors(start)))]
        in_progress.add(start)
        while stack:
            name, remaining = stack[-1]
            for target in remaining:
                if target in in_progress:
                    raise CycleError("cycle does not pass through a loop node", target)
                if target not in done:
                    in_progress.add(target)
                    stack.append((target, iter(successors(target))))
                    break
            else:
                stack.pop()
                in_progress.discard(name)
                done.add(name)


def verify_forest(result: BuildResult, graph: SemanticGraph) -> None:
    """Every node declared exactly once, every reference resolvable."""
    declared = Counter(leaf.node.name for leaf in result.leaves())

    for name, count in declared.items():
        if count > 1:
            raise StructuralError(f"node declared {count} times", name)

    for name in graph.nodes:
        if name not in declared:
            raise StructuralError("node was never declared", name)

    for reference in result.references():
        if reference.node_name not in declared:
            raise StructuralError("dangling variable reference", reference.node_name)


def build_composite(graph: SemanticGraph, config: BuildConfig | None = None) -> BuildResult:
    """Build the composite forest for `graph` with a fresh builder."""
    return CompositeBuilder(config).build(graph)
